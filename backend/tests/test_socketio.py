from snapmatch import socketio


def _connected(sio_client):
    if not sio_client.is_connected('/ws'):
        sio_client.connect(namespace='/ws')
    assert sio_client.is_connected('/ws')
    # Flush the connect greeting
    sio_client.get_received('/ws')
    return sio_client


def _create_room(client, username='Alice'):
    res = client.post('/api/rooms/create', json={'username': username})
    assert res.status_code == 201
    return res.get_json()['room']['code']


def test_socket_connect_and_join(sio_client, client):
    code = _create_room(client)
    _connected(sio_client)

    sio_client.emit('join_room', {'room_code': code.lower()}, namespace='/ws')
    received = sio_client.get_received('/ws')
    joined = [pkt for pkt in received if pkt['name'] == 'joined']
    assert joined
    assert joined[0]['args'][0] == {'room': f'room:{code}', 'room_code': code}


def test_join_unknown_room_reports_error(sio_client):
    _connected(sio_client)
    sio_client.emit('join_room', {'room_code': 'QQQQ'}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert [pkt['name'] for pkt in received] == ['error']
    assert received[0]['args'][0]['message'] == 'Room not found'


def test_join_requires_room_code(sio_client):
    _connected(sio_client)
    sio_client.emit('join_room', {}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert received[0]['name'] == 'error'


def test_subscriber_sees_player_insert(flask_app, sio_client, client):
    code = _create_room(client)
    _connected(sio_client)
    sio_client.emit('join_room', {'room_code': code}, namespace='/ws')
    sio_client.get_received('/ws')

    guest = flask_app.test_client()
    res = guest.post('/api/rooms/join', json={'room_code': code, 'username': 'Bob'})
    assert res.status_code == 201

    events = sio_client.get_received('/ws')
    changes = [e['args'][0] for e in events if e['name'] == 'change']
    assert {'table': 'players', 'event': 'insert'} == {k: changes[0][k] for k in ('table', 'event')}
    assert changes[0]['record']['username'] == 'Bob'
    assert 'session_token' not in changes[0]['record']
    assert any(e['name'] == 'state_update' for e in events)


def test_left_room_stops_delivery(flask_app, sio_client, client):
    code = _create_room(client)
    _connected(sio_client)
    sio_client.emit('join_room', {'room_code': code}, namespace='/ws')
    sio_client.emit('leave_room', {'room_code': code}, namespace='/ws')
    names = [e['name'] for e in sio_client.get_received('/ws')]
    assert names == ['joined', 'left']

    flask_app.test_client().post('/api/rooms/join', json={'room_code': code, 'username': 'Bob'})
    assert sio_client.get_received('/ws') == []


def test_other_rooms_are_not_notified(flask_app, client):
    first = _create_room(client)
    second = _create_room(flask_app.test_client(), 'Zed')
    watcher = socketio.test_client(flask_app, namespace='/ws')
    watcher.get_received('/ws')
    watcher.emit('join_room', {'room_code': second}, namespace='/ws')
    watcher.get_received('/ws')

    flask_app.test_client().post('/api/rooms/join', json={'room_code': first, 'username': 'Bob'})
    assert watcher.get_received('/ws') == []
    watcher.disconnect(namespace='/ws')


def test_ping_pong(sio_client):
    _connected(sio_client)
    sio_client.emit('ping', {'n': 1}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert received[0]['name'] == 'pong'
    assert received[0]['args'][0] == {'n': 1}
