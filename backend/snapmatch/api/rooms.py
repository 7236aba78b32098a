from flask import Blueprint, jsonify, request, current_app
from flask_login import current_user, login_user
import time

from snapmatch.errors import InvalidRequest, RoomError
from snapmatch.models import Player, Prompt, Submission, Vote
from snapmatch.services.rooms import entries, lobby, state_machine
from snapmatch.services.rooms.projector import project_room_view
from snapmatch.services import storage


rooms = Blueprint('rooms', __name__)

_last_controller_action: dict[str, float] = {}


@rooms.errorhandler(RoomError)
def handle_room_error(exc):
    return jsonify(exc.to_dict()), exc.status_code


def _optional_int(value, field):
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidRequest(f'{field} must be an integer')


def _required(data, field):
    """Host steps name the state they were issued from, so a repeat is a no-op."""
    value = data.get(field)
    if value is None or value == '':
        raise InvalidRequest(f'{field} is required')
    return value


def _caller():
    return current_user._get_current_object()


def _debounced(action: str, room_code: str) -> bool:
    """True when the same host action repeats inside CONTROLLER_DEBOUNCE_MS."""
    debounce_ms = int(current_app.config.get('CONTROLLER_DEBOUNCE_MS', 0))
    if debounce_ms <= 0:
        return False
    key = f"{action}:{room_code.upper()}:{current_user.get_id()}"
    now = time.time() * 1000.0
    last = _last_controller_action.get(key, 0)
    if now - last < debounce_ms:
        return True
    _last_controller_action[key] = now
    return False


def _view(room, status=200):
    """Projected room state for the calling player."""
    cfg = current_app.config
    payload = project_room_view(
        room,
        Player.query.filter_by(room_id=room.id).all(),
        Prompt.query.filter_by(room_id=room.id).all(),
        Submission.query.filter_by(room_id=room.id).all(),
        Vote.query.filter_by(room_id=room.id).all(),
        viewer_id=int(current_user.get_id()) if current_user.is_authenticated else None,
        min_players=int(cfg.get('MIN_PLAYERS', 3)),
    )
    payload['durations'] = {
        'upload': int(cfg.get('UPLOAD_DURATION_SEC', 120)),
        'reveal_interval': int(cfg.get('REVEAL_INTERVAL_SEC', 5)),
    }
    return jsonify(payload), status


def _member_room(room_code):
    room = lobby.get_room(room_code)
    lobby.ensure_member(room, _caller())
    return room


def _session_payload(room, player, token=None):
    payload = {'room': room.to_dict(), 'player': player.to_dict()}
    if token:
        payload['session_token'] = token
    return payload


@rooms.route('/create', methods=['POST'])
def create_room():
    data = request.get_json(silent=True) or {}
    room, host, token = lobby.create_room(data.get('username'))
    login_user(host)
    return jsonify(_session_payload(room, host, token)), 201


@rooms.route('/join', methods=['POST'])
def join_room():
    data = request.get_json(silent=True) or {}
    if not data.get('room_code'):
        return jsonify({'error': 'Please enter a room code'}), 400
    room, player, token = lobby.join_room(data.get('room_code'), data.get('username'))
    login_user(player)
    return jsonify(_session_payload(room, player, token)), 201


@rooms.route('/<string:room_code>/reconnect', methods=['POST'])
def reconnect(room_code):
    data = request.get_json(silent=True) or {}
    room, player = lobby.reconnect(room_code, data.get('player_id'), data.get('session_token'))
    login_user(player)
    return jsonify(_session_payload(room, player))


@rooms.route('/<string:room_code>/state', methods=['GET'])
def get_room_state(room_code):
    return _view(_member_room(room_code))


@rooms.route('/<string:room_code>/start', methods=['POST'])
def start_game(room_code):
    if _debounced('start', room_code):
        return jsonify({'message': 'debounced'}), 202
    room = lobby.get_room(room_code)
    state_machine.start_game(room, _caller())
    return _view(room)


@rooms.route('/<string:room_code>/prompts', methods=['POST'])
def submit_prompt(room_code):
    data = request.get_json(silent=True) or {}
    room = _member_room(room_code)
    prompt = entries.submit_prompt(room, _caller(), data.get('text'))
    return jsonify(prompt.to_dict()), 201


@rooms.route('/<string:room_code>/rounds/start', methods=['POST'])
def start_rounds(room_code):
    if _debounced('rounds', room_code):
        return jsonify({'message': 'debounced'}), 202
    room = lobby.get_room(room_code)
    state_machine.start_rounds(room, _caller())
    return _view(room)


@rooms.route('/<string:room_code>/photos/upload', methods=['POST'])
def upload_photo(room_code):
    room = _member_room(room_code)
    player = _caller()
    # Check before touching storage so a late upload leaves no orphan file
    entries.ensure_photo_open(room, player)
    stored = storage.save_photo(request.files.get('photo'), room, player, room.current_round)
    try:
        submission = entries.submit_photo(room, player, storage.photo_url(stored))
    except RoomError:
        storage.discard_photo(stored)
        raise
    return jsonify(submission.to_dict()), 201


@rooms.route('/<string:room_code>/submissions', methods=['POST'])
def submit_photo(room_code):
    data = request.get_json(silent=True) or {}
    room = _member_room(room_code)
    submission = entries.submit_photo(room, _caller(), data.get('photo_url'))
    return jsonify(submission.to_dict()), 201


@rooms.route('/<string:room_code>/votes', methods=['POST'])
def submit_vote(room_code):
    data = request.get_json(silent=True) or {}
    room = _member_room(room_code)
    vote = entries.submit_vote(room, _caller(), data.get('submission_id'))
    return jsonify(vote.to_dict()), 201


@rooms.route('/<string:room_code>/advance', methods=['POST'])
def advance_phase(room_code):
    data = request.get_json(silent=True) or {}
    if _debounced('advance', room_code):
        return jsonify({'message': 'debounced'}), 202
    room = lobby.get_room(room_code)
    state_machine.advance_phase(room, _caller(), expected_phase=_required(data, 'from_phase'),
                                expected_round=_optional_int(data.get('round'), 'round'))
    return _view(room)


@rooms.route('/<string:room_code>/reveal', methods=['POST'])
def step_reveal(room_code):
    data = request.get_json(silent=True) or {}
    room = lobby.get_room(room_code)
    state_machine.step_reveal(room, _caller(), expected_index=_optional_int(_required(data, 'index'), 'index'))
    return _view(room)


@rooms.route('/<string:room_code>/next', methods=['POST'])
def next_round(room_code):
    data = request.get_json(silent=True) or {}
    if _debounced('next', room_code):
        return jsonify({'message': 'debounced'}), 202
    room = lobby.get_room(room_code)
    state_machine.next_round(room, _caller(), expected_round=_optional_int(_required(data, 'round'), 'round'))
    return _view(room)


@rooms.route('/<string:room_code>/play-again', methods=['POST'])
def play_again(room_code):
    room = lobby.get_room(room_code)
    state_machine.play_again(room, _caller())
    return _view(room)
