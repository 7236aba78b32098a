from flask import current_app
from sqlalchemy.exc import IntegrityError

from snapmatch import db
from snapmatch.errors import Conflict, InvalidRequest, NotAuthorized, PreconditionFailed, RoomNotFound, SessionMismatch
from snapmatch.models import Room, Player, Prompt, Submission, Vote, generate_room_code, generate_session_token
from . import feed


def normalize_code(code) -> str:
    return (code or '').strip().upper()


def get_room(code) -> Room:
    room = Room.query.filter_by(code=normalize_code(code)).first()
    if not room:
        raise RoomNotFound('Room not found. Check the code and try again.')
    return room


def ensure_member(room: Room, player) -> Player:
    """The caller must be a player of this room."""
    if player is None or not getattr(player, 'is_authenticated', False):
        raise SessionMismatch('No session found. Please rejoin the room.')
    if player.room_id != room.id:
        raise SessionMismatch('Session mismatch. Please rejoin the room.')
    return player


def _clean_username(username) -> str:
    name = (username or '').strip()
    if not name:
        raise InvalidRequest('Please enter a username')
    max_len = int(current_app.config.get('USERNAME_MAX_LENGTH', 24))
    if len(name) > max_len:
        raise InvalidRequest(f'Username must be at most {max_len} characters')
    return name


def _new_player(room: Room, username: str, is_host: bool):
    token = generate_session_token()
    player = Player(room=room, username=username, is_host=is_host)
    player.set_session_token(token)
    return player, token


def create_room(username):
    """Create a room in ``waiting`` with the caller as its host.

    Returns ``(room, host, session_token)``. The plain token is only ever
    handed out here; the database keeps its hash.
    """
    name = _clean_username(username)
    attempts = int(current_app.config.get('ROOM_CODE_ATTEMPTS', 5))
    for _ in range(attempts):
        code = generate_room_code()
        if Room.query.filter_by(code=code).first():
            continue
        room = Room(code=code)
        host, token = _new_player(room, name, is_host=True)
        db.session.add(room)
        db.session.add(host)
        try:
            db.session.commit()
        except IntegrityError:
            # Lost a race for the same code
            db.session.rollback()
            continue
        current_app.logger.info(f"[room-create] room={room.code} host={host.id}")
        return room, host, token
    raise Conflict('Failed to create room. Please try again.')


def join_room(code, username):
    room = get_room(code)
    name = _clean_username(username)
    if room.status != 'waiting':
        raise PreconditionFailed('This game has already started.')
    if Player.query.filter_by(room_id=room.id, username=name).first():
        raise Conflict('Username already taken in this room.')
    player, token = _new_player(room, name, is_host=False)
    db.session.add(player)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict('Username already taken in this room.')
    current_app.logger.info(f"[room-join] room={room.code} player={player.id} name={player.username}")
    feed.publish_change(room.code, 'players', 'insert', player.to_dict())
    feed.publish_state(room.code)
    return room, player, token


def reconnect(code, player_id, session_token):
    room = get_room(code)
    try:
        player = db.session.get(Player, int(player_id))
    except (TypeError, ValueError):
        player = None
    if not player or player.room_id != room.id:
        raise SessionMismatch('Session mismatch. Please rejoin the room.')
    if not session_token or not player.check_session_token(session_token):
        raise NotAuthorized('Invalid session token')
    return room, player


# Lobby rooms nobody started and games that ended
IDLE_STATUSES = ('waiting', 'finished')


def purge_stale_rooms(cutoff, include_active=False) -> list:
    """Delete rooms created before ``cutoff`` with everything in them.

    Only idle rooms go unless ``include_active``. Rows are removed child
    tables first (votes, submissions, prompts, players) so foreign keys hold
    at every statement. Returns the purged room codes.
    """
    query = Room.query.filter(Room.created_at < cutoff)
    if not include_active:
        query = query.filter(Room.status.in_(IDLE_STATUSES))
    stale = query.all()
    if not stale:
        return []
    ids = [room.id for room in stale]
    codes = [room.code for room in stale]
    for model in (Vote, Submission, Prompt, Player):
        model.query.filter(model.room_id.in_(ids)).delete(synchronize_session=False)
    Room.query.filter(Room.id.in_(ids)).delete(synchronize_session=False)
    db.session.commit()
    current_app.logger.info(f"[purge] removed rooms={','.join(codes)}")
    return codes
