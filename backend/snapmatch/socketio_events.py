from flask_socketio import join_room, leave_room, emit

from snapmatch import socketio
from snapmatch.models import Room
from snapmatch.services.rooms.feed import NAMESPACE, channel_for


def handle_connect():
    emit('connected', {'message': f'Connected to {NAMESPACE}'})


def _room_code(data):
    code = ((data or {}).get('room_code') or '').strip().upper()
    if not code:
        emit('error', {'message': 'room_code is required'})
        return None
    return code


def handle_join_room(data):
    """Subscribe this socket to the room's change feed."""
    code = _room_code(data)
    if not code:
        return
    if not Room.query.filter_by(code=code).first():
        emit('error', {'message': 'Room not found', 'room_code': code})
        return
    channel = channel_for(code)
    join_room(channel)
    emit('joined', {'room': channel, 'room_code': code})


def handle_leave_room(data):
    code = _room_code(data)
    if not code:
        return
    channel = channel_for(code)
    leave_room(channel)
    emit('left', {'room': channel, 'room_code': code})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    namespaces = [NAMESPACE, '/'] if testing else [NAMESPACE]
    for namespace in namespaces:
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('join_room', handle_join_room, namespace=namespace)
        socketio.on_event('leave_room', handle_leave_room, namespace=namespace)
        socketio.on_event('ping', handle_ping, namespace=namespace)
