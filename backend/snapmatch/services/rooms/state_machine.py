"""Room lifecycle: waiting -> prompts -> playing (upload/reveal/voting/results) -> finished.

Every transition is a conditional update ("only if the room is still where the
caller saw it"), so a duplicate or stale request leaves the room untouched and
simply returns its current state.
"""
import random
from datetime import datetime, timedelta
from typing import Optional

from flask import current_app

from snapmatch import db
from snapmatch.errors import InvalidRequest, NotAuthorized, PreconditionFailed
from snapmatch.models import Room, Player, Prompt, Submission, Vote, ROUND_PHASES
from . import feed, scheduler
from .lobby import ensure_member
from .scoring import apply_final_scores


def require_host(room: Room, player) -> Player:
    ensure_member(room, player)
    if not player.is_host:
        raise NotAuthorized('Only the host may do that')
    return player


def upload_deadline(now: Optional[datetime] = None) -> datetime:
    seconds = int(current_app.config.get('UPLOAD_DURATION_SEC', 120))
    return (now or datetime.utcnow()) + timedelta(seconds=seconds)


def round_submissions(room: Room, round_number: Optional[int] = None):
    rnd = room.current_round if round_number is None else round_number
    return Submission.query.filter_by(room_id=room.id, round=rnd).order_by(Submission.created_at, Submission.id).all()


def upload_complete(room: Room) -> bool:
    submitted = {s.player_id for s in round_submissions(room)}
    return all(p.id in submitted for p in room.players)


def deadline_passed(room: Room, now: Optional[datetime] = None) -> bool:
    if room.phase_end_time is None:
        return False
    return (now or datetime.utcnow()) >= room.phase_end_time


def _claim(room: Room, expected: dict, values: dict) -> bool:
    """UPDATE room SET values WHERE id = room.id AND expected. Caller commits."""
    updated = Room.query.filter_by(id=room.id, **expected).update(values, synchronize_session=False)
    if not updated:
        db.session.rollback()
        return False
    return True


def _publish_room(room: Room) -> None:
    feed.publish_change(room.code, 'rooms', 'update', room.to_dict())
    feed.publish_state(room.code)


def _start_upload_timer(room: Room) -> None:
    scheduler.schedule_upload_timer(current_app._get_current_object(), room.id)


def start_game(room: Room, player) -> Room:
    """waiting -> prompts, once at least MIN_PLAYERS have joined."""
    require_host(room, player)
    if room.status == 'prompts':
        return room
    if room.status != 'waiting':
        raise PreconditionFailed('Game has already started')
    min_players = int(current_app.config.get('MIN_PLAYERS', 3))
    if len(room.players) < min_players:
        raise PreconditionFailed(f'At least {min_players} players are required to start')
    if not _claim(room, {'status': 'waiting'}, {'status': 'prompts'}):
        return room
    db.session.commit()
    current_app.logger.info(f"[start-game] room={room.code} players={len(room.players)}")
    _publish_room(room)
    return room


def start_rounds(room: Room, player, rng=None) -> Room:
    """prompts -> playing/upload of round 1.

    Prompts are shuffled once to fix the round order: each prompt becomes the
    prompt of exactly one round, numbered 1..N.
    """
    require_host(room, player)
    if room.status == 'playing':
        return room
    if room.status != 'prompts':
        raise PreconditionFailed('Prompts are not being collected')
    players = list(room.players)
    prompts = Prompt.query.filter_by(room_id=room.id).order_by(Prompt.id).all()
    if not players or {p.player_id for p in prompts} != {p.id for p in players}:
        raise PreconditionFailed('All players must submit a prompt before starting')

    order = list(prompts)
    (rng or random).shuffle(order)
    values = {
        'status': 'playing',
        'current_round': 1,
        'round_phase': 'upload',
        'reveal_index': 0,
        'phase_end_time': upload_deadline(),
    }
    if not _claim(room, {'status': 'prompts'}, values):
        return room
    for number, prompt in enumerate(order, start=1):
        prompt.round_number = number
        db.session.add(prompt)
    db.session.commit()
    current_app.logger.info(f"[start-rounds] room={room.code} rounds={len(order)}")
    feed.publish_changes(room.code, 'prompts', 'update', [p.to_dict() for p in order])
    _publish_room(room)
    _start_upload_timer(room)
    return room


def _enter_next_phase(room: Room, phase: str, round_number: int) -> bool:
    nxt = ROUND_PHASES[ROUND_PHASES.index(phase) + 1]
    values = {'round_phase': nxt, 'phase_end_time': None}
    if nxt == 'reveal':
        values['reveal_index'] = 0
    expected = {'status': 'playing', 'round_phase': phase, 'current_round': round_number}
    if not _claim(room, expected, values):
        return False
    db.session.commit()
    current_app.logger.info(f"[phase] room={room.code} round={round_number} {phase} -> {nxt}")
    _publish_room(room)
    return True


def advance_phase(room: Room, player, expected_phase: Optional[str] = None,
                  expected_round: Optional[int] = None, now: Optional[datetime] = None) -> Room:
    """Move to the next phase of the round; from results, start the next round.

    ``expected_phase``/``expected_round`` describe where the caller saw the
    room. A request for a phase the room has already left is a no-op.
    """
    require_host(room, player)
    if expected_phase is not None and expected_phase not in ROUND_PHASES:
        raise InvalidRequest(f'Unknown phase {expected_phase!r}')
    if room.status == 'finished' and (expected_phase or expected_round):
        return room
    if room.status != 'playing':
        raise PreconditionFailed('Game is not in progress')

    phase = expected_phase or room.round_phase
    round_number = expected_round or room.current_round
    if room.round_phase != phase or room.current_round != round_number:
        current_app.logger.info(
            f"[phase-skip] room={room.code} expected={phase}@{round_number} actual={room.round_phase}@{room.current_round}"
        )
        return room

    if phase == 'results':
        return next_round(room, player, expected_round=round_number)
    if phase == 'upload' and not upload_complete(room) and not deadline_passed(room, now):
        raise PreconditionFailed('Waiting for every player to submit a photo')
    _enter_next_phase(room, phase, round_number)
    return room


def auto_advance_upload(room_id: int, expected_round: int, now: Optional[datetime] = None) -> bool:
    """Timer hook: end the upload phase once its deadline passes.

    Only fires while the room is still in that round's upload phase and some
    player has not submitted; when everyone is in, advancing stays with the host.
    """
    room = db.session.get(Room, room_id)
    if not room or room.status != 'playing' or room.round_phase != 'upload' or room.current_round != expected_round:
        return False
    if not deadline_passed(room, now) or upload_complete(room):
        return False
    return _enter_next_phase(room, 'upload', expected_round)


def step_reveal(room: Room, player, expected_index: Optional[int] = None) -> Room:
    """Reveal one more submission; the cursor stops at the round's submission count."""
    require_host(room, player)
    if room.status != 'playing' or room.round_phase != 'reveal':
        if expected_index is not None:
            return room
        raise PreconditionFailed('Photos are not being revealed')
    index = room.reveal_index if expected_index is None else expected_index
    if index != room.reveal_index or index >= len(round_submissions(room)):
        return room
    expected = {'status': 'playing', 'round_phase': 'reveal', 'current_round': room.current_round,
                'reveal_index': index}
    if not _claim(room, expected, {'reveal_index': index + 1}):
        return room
    db.session.commit()
    _publish_room(room)
    return room


def next_round(room: Room, player, expected_round: Optional[int] = None) -> Room:
    """results -> upload of the next round, or -> finished after the last round."""
    require_host(room, player)
    if room.status == 'finished':
        return room
    if expected_round is not None and room.current_round != expected_round:
        return room
    if room.status != 'playing' or room.round_phase != 'results':
        raise PreconditionFailed('Round results are not being shown')

    round_number = room.current_round
    expected = {'status': 'playing', 'round_phase': 'results', 'current_round': round_number}
    if round_number < room.total_rounds:
        values = {
            'current_round': round_number + 1,
            'round_phase': 'upload',
            'reveal_index': 0,
            'phase_end_time': upload_deadline(),
        }
        if not _claim(room, expected, values):
            return room
        db.session.commit()
        current_app.logger.info(f"[next-round] room={room.code} round {round_number} -> {round_number + 1}")
        _publish_room(room)
        _start_upload_timer(room)
        return room

    values = {'status': 'finished', 'round_phase': None, 'phase_end_time': None}
    if not _claim(room, expected, values):
        return room
    db.session.expire(room)
    scores = apply_final_scores(room)
    db.session.commit()
    current_app.logger.info(f"[finish] room={room.code} finished at round={round_number} scores={scores}")
    feed.publish_changes(room.code, 'players', 'update', [p.to_dict() for p in room.players])
    _publish_room(room)
    return room


def play_again(room: Room, player) -> Room:
    """finished -> waiting, keeping the room and its players but clearing the game."""
    require_host(room, player)
    if room.status == 'waiting':
        return room
    if room.status != 'finished':
        raise PreconditionFailed('The game is still in progress')

    votes = [v.to_dict() for v in Vote.query.filter_by(room_id=room.id).all()]
    submissions = [s.to_dict() for s in Submission.query.filter_by(room_id=room.id).all()]
    prompts = [p.to_dict() for p in Prompt.query.filter_by(room_id=room.id).all()]
    values = {
        'status': 'waiting',
        'current_round': 0,
        'round_phase': None,
        'reveal_index': 0,
        'phase_end_time': None,
    }
    if not _claim(room, {'status': 'finished'}, values):
        return room
    Vote.query.filter_by(room_id=room.id).delete(synchronize_session=False)
    Submission.query.filter_by(room_id=room.id).delete(synchronize_session=False)
    Prompt.query.filter_by(room_id=room.id).delete(synchronize_session=False)
    Player.query.filter_by(room_id=room.id).update({'score': 0}, synchronize_session=False)
    db.session.commit()
    current_app.logger.info(f"[play-again] room={room.code} cleared prompts={len(prompts)} submissions={len(submissions)} votes={len(votes)}")
    feed.publish_changes(room.code, 'votes', 'delete', votes)
    feed.publish_changes(room.code, 'submissions', 'delete', submissions)
    feed.publish_changes(room.code, 'prompts', 'delete', prompts)
    feed.publish_changes(room.code, 'players', 'update', [p.to_dict() for p in room.players])
    _publish_room(room)
    return room
