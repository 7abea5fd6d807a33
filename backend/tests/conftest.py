import os
import sys
import pytest

# Ensure the backend root (containing the `livequiz` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from livequiz import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    BCRYPT_LOG_ROUNDS = 4
    QUESTION_GRACE_PERIOD_SEC = 2
    LEADERBOARD_SIZE = 20
    AUTO_FINISH_QUESTIONS = True
    AUTO_FINISH_WHEN_ALL_ANSWERED = False
    HOST_DISCONNECT_GRACE_SEC = 0


QUIZ_PAYLOAD = {
    'title': 'Test quiz',
    'questions': [
        {'type': 'single-choice', 'prompt': 'Pick B', 'options': ['A', 'B', 'C', 'D'],
         'correct_index': 1, 'time_limit': 20},
        {'type': 'multiple-choice', 'prompt': 'Pick A and C', 'options': ['A', 'B', 'C', 'D'],
         'correct_indices': [0, 2], 'time_limit': 20},
        {'type': 'poll-single', 'prompt': 'Any', 'options': ['Yes', 'No'], 'time_limit': 20},
        {'type': 'slider', 'prompt': 'Fifty', 'min_value': 0, 'max_value': 100,
         'correct_value': 50, 'time_limit': 20},
    ],
}


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import livequiz.models  # noqa: F401
        db.create_all()
        yield application
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
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')


@pytest.fixture()
def new_game(client):
    """Create a quiz and a game for it; returns a dict with pin, host key and quiz id."""
    def _create(quiz=None):
        res = client.post('/api/quizzes', json=quiz or QUIZ_PAYLOAD)
        assert res.status_code == 201
        quiz_id = res.get_json()['id']
        res = client.post('/api/games/create', json={'quiz_id': quiz_id})
        assert res.status_code == 201
        data = res.get_json()
        return {'pin': data['game_pin'], 'host_key': data['host_key'], 'game_id': data['game_id'], 'quiz_id': quiz_id}
    return _create


def join(client, pin, name):
    res = client.post('/api/games/join', json={'game_pin': pin, 'name': name})
    assert res.status_code == 201
    return res.get_json()


def host(client, pin, host_key, action, **extra):
    return client.post(f'/api/games/{pin}/{action}', json={'host_key': host_key, **extra})
