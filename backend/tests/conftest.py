import json
import os
import sys
import pytest

# Ensure the backend root (containing the `blanks` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from blanks import create_app, db, socketio
from blanks.config import Config


SINGLE_BLANK_SET = {
    'id': 'test-set',
    'name': 'Test Set',
    'official': True,
    'prompts': [{'text': f'Prompt number {i} wants _.', 'pick': 1} for i in range(6)],
    'answers': [f'Answer {i}' for i in range(40)] + ['Fish &amp; chips', 'Rock &amp; roll'],
}

DOUBLE_BLANK_SET = {
    'codeName': 'double-set',
    'name': 'Double Set',
    'official': False,
    'blackCards': [{'text': 'First _ then _.', 'pick': 2}],
    'whiteCards': [f'Double answer {i}' for i in range(30)],
}


@pytest.fixture()
def card_sets_dir(tmp_path):
    directory = tmp_path / 'sets'
    directory.mkdir()
    (directory / 'test-set.json').write_text(json.dumps(SINGLE_BLANK_SET), encoding='utf-8')
    (directory / 'double-set.json').write_text(json.dumps(DOUBLE_BLANK_SET), encoding='utf-8')
    (directory / 'broken.json').write_text('{not json', encoding='utf-8')
    return directory


@pytest.fixture()
def flask_app(tmp_path, card_sets_dir):
    class TestConfig(Config):
        TESTING = True
        SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
        # A file database so tests can write through a second connection
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'test.db'}"
        SQLALCHEMY_TRACK_MODIFICATIONS = False
        CARD_SETS_DIR = str(card_sets_dir)
        HAND_SIZE = 10
        MIN_PLAYERS = 2
        DEFAULT_MAX_POINTS = 8

    application = create_app(TestConfig)
    with application.app_context():
        import blanks.models  # noqa: F401
        db.create_all()
    # No context stays pushed: requests must not share flask.g (and the
    # logged-in user cached on it) across test clients.
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def app_ctx(flask_app):
    """App context for calling services directly."""
    with flask_app.app_context():
        yield flask_app
        db.session.remove()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def make_client(flask_app):
    """Factory for test clients that already hold an anonymous identity."""
    def _make():
        test_client = flask_app.test_client()
        res = test_client.post('/api/session')
        assert res.status_code == 201
        test_client.identity_id = res.get_json()['id']
        return test_client
    return _make


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


@pytest.fixture()
def start_room(app_ctx):
    """Factory: create a room, seat players, start it and return the code."""
    from blanks.cards import get_catalog
    from blanks.services.game import mutators

    def _start(player_ids=('h', 'a', 'b'), selected=('test-set',), **config):
        room = mutators.create_room(player_ids[0], 'Host', {'selected_card_set_ids': list(selected), **config})
        code = room.code
        for pid in player_ids[1:]:
            mutators.join_room(code, pid, pid.upper())
        assert mutators.start_game(code, get_catalog().values())
        return code
    return _start


@pytest.fixture()
def concurrent_write(app_ctx):
    """Write a room row through a second connection, as another client would."""
    from blanks.models import Room

    def _write(room_code, **values):
        table = Room.__table__
        with db.engine.begin() as conn:
            conn.execute(
                table.update()
                .where(table.c.code == room_code)
                .values(version=table.c.version + 1, **values)
            )
    return _write
