import time
from datetime import datetime
from typing import Set, Tuple

from snapmatch import db, socketio
from snapmatch.models import Room


_scheduled_upload_keys: Set[Tuple[int, int, datetime]] = set()


def timer_key(room: Room) -> Tuple[int, int, datetime]:
    """A deadline belongs to one upload phase; a replayed round gets a new one."""
    return (room.id, int(room.current_round or 0), room.phase_end_time)


def schedule_upload_timer(app, room_id: int) -> None:
    """Schedule the upload-phase deadline check for the room's current round.

    - No-ops in TESTING mode
    - Ensures a single timer per (room_id, round, deadline)
    - On expiry, ends the upload phase unless the room has moved on or every
      player has already submitted (then the host advances)
    """
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return

    with app.app_context():
        room = db.session.get(Room, room_id)
        if not room or room.status != 'playing' or room.round_phase != 'upload' or not room.phase_end_time:
            return
        key = timer_key(room)
        round_idx = key[1]
        if key in _scheduled_upload_keys:
            app.logger.info(f"[timer-skip] room={room.code} round={round_idx} already scheduled")
            return
        _scheduled_upload_keys.add(key)
        delay = max(0.0, (room.phase_end_time - datetime.utcnow()).total_seconds())
        app.logger.info(
            f"[timer-set] room={room.code} round={round_idx} delay={delay:.1f}s deadline={room.phase_end_time.isoformat()}Z"
        )

    def _worker(wait: float):
        rid, expected_round = key[0], key[1]
        hb = int(app.config.get('TIMER_HEARTBEAT_SEC', 0))
        if hb > 0:
            slept = 0.0
            while slept < wait:
                step = min(hb, wait - slept)
                time.sleep(step)
                slept += step
                app.logger.info(f"[timer-heartbeat] room={rid} round={expected_round} remaining={max(0.0, wait - slept):.0f}s")
        else:
            time.sleep(wait)
        from .state_machine import auto_advance_upload
        with app.app_context():
            _scheduled_upload_keys.discard(key)
            app.logger.info(f"[timer-fire] room={rid} expected_round={expected_round}")
            try:
                advanced = auto_advance_upload(rid, expected_round)
            except Exception:
                db.session.rollback()
                app.logger.exception(f"[timer-error] room={rid} round={expected_round}")
                return
            if not advanced:
                app.logger.info(f"[timer-abort] room={rid} round={expected_round} moved on or all photos in")

    if app.config.get('TESTING'):
        _worker(delay)
    else:
        socketio.start_background_task(_worker, delay)
