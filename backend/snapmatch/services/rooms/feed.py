"""Per-room change feed over Socket.IO.

Clients subscribe to ``room:<CODE>`` on the ``/ws`` namespace. Each committed
write is published as a ``change`` event naming the table, the kind of change
and the affected record, followed by a ``state_update`` nudge so thin clients
can simply re-fetch their projected view.
"""
from typing import Iterable

from snapmatch import socketio

NAMESPACE = '/ws'
TABLES = ('rooms', 'players', 'prompts', 'submissions', 'votes')


def channel_for(room_code: str) -> str:
    return f"room:{room_code.upper()}"


def publish_change(room_code: str, table: str, event: str, record: dict) -> None:
    if table not in TABLES:
        raise ValueError(f"unknown table {table!r}")
    if event not in ('insert', 'update', 'delete'):
        raise ValueError(f"unknown event {event!r}")
    socketio.emit('change', {'table': table, 'event': event, 'record': record},
                  to=channel_for(room_code), namespace=NAMESPACE)


def publish_changes(room_code: str, table: str, event: str, records: Iterable[dict]) -> None:
    for record in records:
        publish_change(room_code, table, event, record)


def publish_state(room_code: str) -> None:
    socketio.emit('state_update', {'room_code': room_code.upper()},
                  to=channel_for(room_code), namespace=NAMESPACE)
