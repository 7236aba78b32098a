from datetime import datetime, timedelta

from sqlalchemy import text

from snapmatch import db
from snapmatch.models import Room, Player, Prompt, Submission, Vote


def _enforce_foreign_keys():
    # In-memory SQLite keeps one connection, so the pragma sticks for the test
    db.session.execute(text('PRAGMA foreign_keys=ON'))
    db.session.commit()
    assert db.session.execute(text('PRAGMA foreign_keys')).scalar() == 1


def _age(code, days, status=None):
    room = Room.query.filter_by(code=code).first()
    room.created_at = datetime.utcnow() - timedelta(days=days)
    if status:
        room.status = status
    db.session.commit()


def _played_room(game):
    game.create()
    game.start_playing()
    game.upload_all()
    game.host_post('/advance', {'from_phase': 'upload', 'round': 1})
    game.host_post('/advance', {'from_phase': 'reveal', 'round': 1})
    with game.app.app_context():
        carol_id = Submission.query.filter_by(player_id=game.pid('Carol')).first().id
    assert game.post('Bob', '/votes', {'submission_id': carol_id}).status_code == 201


def _new_room(flask_app, username):
    res = flask_app.test_client().post('/api/rooms/create', json={'username': username})
    return res.get_json()['room']['code']


def test_purge_rooms_removes_old_idle_rooms_with_their_entries(game, flask_app):
    _played_room(game)
    active = _new_room(flask_app, 'Zed')
    fresh = _new_room(flask_app, 'Yan')
    with flask_app.app_context():
        _enforce_foreign_keys()
        _age(game.code, 5, status='finished')
        _age(active, 5, status='playing')

    result = flask_app.test_cli_runner().invoke(args=['purge-rooms', '--days', '1'])
    assert result.exit_code == 0, result.output
    assert 'Purged 1 rooms.' in result.output

    with flask_app.app_context():
        assert {r.code for r in Room.query.all()} == {active, fresh}
        assert Vote.query.count() == 0
        assert Submission.query.count() == 0
        assert Prompt.query.count() == 0
        assert Player.query.filter_by(username='Alice').count() == 0


def test_purge_rooms_can_include_games_in_progress(game, flask_app):
    _played_room(game)
    with flask_app.app_context():
        _enforce_foreign_keys()
        _age(game.code, 3)

    runner = flask_app.test_cli_runner()
    assert 'Purged 0 rooms.' in runner.invoke(args=['purge-rooms', '--days', '1']).output
    result = runner.invoke(args=['purge-rooms', '--days', '1', '--include-active'])
    assert result.exit_code == 0, result.output
    assert 'Purged 1 rooms.' in result.output
    with flask_app.app_context():
        assert Room.query.count() == 0
        assert Vote.query.count() == 0


def test_db_reset_empties_tables(game, flask_app):
    game.create()
    result = flask_app.test_cli_runner().invoke(args=['db-reset'])
    assert result.exit_code == 0, result.output
    with flask_app.app_context():
        assert Room.query.count() == 0
        assert Player.query.count() == 0
