import os
import sys
from types import SimpleNamespace

import pytest

# Ensure the backend root (containing the `snapmatch` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from snapmatch import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    BCRYPT_LOG_ROUNDS = 4
    MIN_PLAYERS = 3
    UPLOAD_DURATION_SEC = 120
    REVEAL_INTERVAL_SEC = 5
    ROOM_CODE_ATTEMPTS = 5
    PROMPT_MAX_LENGTH = 100
    USERNAME_MAX_LENGTH = 24
    MAX_UPLOAD_BYTES = 1024
    CONTROLLER_DEBOUNCE_MS = 0


@pytest.fixture()
def flask_app(tmp_path):
    application = create_app(TestConfig)
    application.config['UPLOAD_FOLDER'] = str(tmp_path / 'uploads')
    # Each request pushes its own app context so every test client keeps
    # its own logged-in player
    with application.app_context():
        import snapmatch.models  # noqa: F401
        db.create_all()
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


class GameDriver:
    """Drives a room over HTTP with one test client (one browser) per player."""

    def __init__(self, flask_app):
        self.app = flask_app
        self.code = None
        self.seats = {}
        self.host_name = None

    def create(self, names=('Alice', 'Bob', 'Carol')):
        host, *others = names
        c = self.app.test_client()
        res = c.post('/api/rooms/create', json={'username': host})
        assert res.status_code == 201, res.get_json()
        data = res.get_json()
        self.code = data['room']['code']
        self.host_name = host
        self.seats[host] = SimpleNamespace(client=c, player=data['player'], token=data['session_token'])
        for name in others:
            self.join(name)
        return self

    def join(self, name):
        c = self.app.test_client()
        res = c.post('/api/rooms/join', json={'room_code': self.code, 'username': name})
        assert res.status_code == 201, res.get_json()
        data = res.get_json()
        self.seats[name] = SimpleNamespace(client=c, player=data['player'], token=data['session_token'])
        return self.seats[name]

    def pid(self, name):
        return self.seats[name].player['id']

    def post(self, name, path, json=None):
        return self.seats[name].client.post(f'/api/rooms/{self.code}{path}', json=json or {})

    def host_post(self, path, json=None):
        return self.post(self.host_name, path, json)

    def state(self, name=None):
        res = self.seats[name or self.host_name].client.get(f'/api/rooms/{self.code}/state')
        assert res.status_code == 200, res.get_json()
        return res.get_json()

    def start_playing(self):
        assert self.host_post('/start').status_code == 200
        for name in self.seats:
            assert self.post(name, '/prompts', {'text': f'{name} prompt'}).status_code == 201
        res = self.host_post('/rounds/start')
        assert res.status_code == 200, res.get_json()
        return res.get_json()

    def upload_all(self):
        state = self.state()
        rnd = state['room']['current_round']
        for name in self.seats:
            res = self.post(name, '/submissions', {'photo_url': f'https://img.test/{rnd}/{name}.jpg'})
            assert res.status_code == 201, res.get_json()

    def submission_of(self, state, name):
        return next(s for s in state['submissions'] if s['player_id'] == self.pid(name))

    def play_round(self, votes):
        """Upload, reveal, vote (voter name -> author name) and land on results."""
        self.upload_all()
        assert self.host_post('/advance', {'from_phase': 'upload'}).get_json()['room']['round_phase'] == 'reveal'
        assert self.host_post('/advance', {'from_phase': 'reveal'}).get_json()['room']['round_phase'] == 'voting'
        state = self.state()
        for voter, author in votes.items():
            sub = self.submission_of(state, author)
            res = self.post(voter, '/votes', {'submission_id': sub['id']})
            assert res.status_code == 201, res.get_json()
        results = self.host_post('/advance', {'from_phase': 'voting'}).get_json()
        assert results['room']['round_phase'] == 'results'
        return results


@pytest.fixture()
def game(flask_app):
    return GameDriver(flask_app)
