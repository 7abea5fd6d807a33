import time

from conftest import join, host
from livequiz import db
from livequiz.models import Game


def test_create_game(client, new_game):
    game = new_game()
    assert len(game['pin']) == 6
    assert game['host_key']
    state = client.get(f"/api/games/{game['pin']}/state").get_json()
    assert state['state'] == 'lobby'
    assert state['revision'] == 0
    assert state['current_question'] is None
    assert state['question_count'] == 4


def test_create_game_requires_existing_quiz(client):
    res = client.post('/api/games/create', json={'quiz_id': 999})
    assert res.status_code == 404
    assert res.get_json()['code'] == 'not-found'
    res = client.post('/api/games/create', json={})
    assert res.status_code == 400


def test_create_quiz_rejects_bad_questions(client):
    res = client.post('/api/quizzes', json={'title': 'Broken', 'questions': [{'type': 'single-choice'}]})
    assert res.status_code == 400
    assert res.get_json()['code'] == 'invalid-argument'


def test_join_and_rejoin(client, new_game):
    game = new_game()
    alice = join(client, game['pin'], 'Alice')
    assert alice['score'] == 0
    res = client.post(f"/api/games/{game['pin']}/rejoin", json={'player_id': alice['id']})
    assert res.status_code == 200
    data = res.get_json()
    assert data['player']['name'] == 'Alice'
    assert data['game']['leaderboard']['total_players'] == 1
    res = client.post(f"/api/games/{game['pin']}/rejoin", json={'player_id': 12345})
    assert res.status_code == 404


def test_join_unknown_game(client):
    res = client.post('/api/games/join', json={'game_pin': '000000', 'name': 'Alice'})
    assert res.status_code == 404
    res = client.post('/api/games/join', json={'game_pin': '000000'})
    assert res.status_code == 400


def test_host_actions_need_the_host_key(client, new_game):
    game = new_game()
    res = host(client, game['pin'], 'wrong-key', 'start')
    assert res.status_code == 403
    assert res.get_json()['code'] == 'permission-denied'
    res = client.post(f"/api/games/{game['pin']}/start", json={})
    assert res.status_code == 403


def test_full_game_flow(client, new_game):
    game = new_game()
    pin, key = game['pin'], game['host_key']
    alice = join(client, pin, 'Alice')
    bob = join(client, pin, 'Bob')

    state = host(client, pin, key, 'start').get_json()
    assert state['state'] == 'preparing'
    assert state['current_question']['type'] == 'single-choice'
    state = host(client, pin, key, 'question/start').get_json()
    assert state['state'] == 'question'
    assert state['question_start_time'] is not None

    res = client.post(f'/api/games/{pin}/answers', json={
        'player_id': alice['id'], 'question_index': 0, 'answer_index': 1, 'time_remaining': 20,
    })
    assert res.status_code == 200
    result = res.get_json()
    assert result['points'] == 1000
    assert result['is_correct'] is True
    assert result['rank'] == 1
    assert result['total_players'] == 2

    result = client.post(f'/api/games/{pin}/answers', json={
        'player_id': bob['id'], 'question_index': 0, 'answer_index': 0, 'time_remaining': 15,
    }).get_json()
    assert result['points'] == 0
    assert result['rank'] == 2

    state = host(client, pin, key, 'question/finish').get_json()
    assert state['state'] == 'leaderboard'
    assert state['leaderboard']['results_question_index'] == 0
    assert state['leaderboard']['answer_counts'] == [1, 1]
    assert state['results_error'] is None

    state = host(client, pin, key, 'advance').get_json()
    assert state['state'] == 'preparing'
    assert state['current_question_index'] == 1
    assert state['leaderboard']['total_answered'] == 0
    assert state['leaderboard']['answer_counts'] == []

    # question -> leaderboard -> preparing for questions 1 and 2, then open and close question 3
    for _ in range(2 * 3 + 2):
        assert host(client, pin, key, 'advance').status_code == 200
    state = client.get(f'/api/games/{pin}/state').get_json()
    assert state['state'] == 'leaderboard'
    assert state['current_question_index'] == 3

    state = host(client, pin, key, 'advance').get_json()
    assert state['state'] == 'ended'
    leaderboard = client.get(f'/api/games/{pin}/leaderboard').get_json()
    assert leaderboard['top_players'][0]['name'] == 'Alice'
    assert leaderboard['top_players'][0]['score'] == 1000

    res = host(client, pin, key, 'advance')
    assert res.status_code == 409


def test_revision_bumps_on_every_transition(client, new_game):
    game = new_game()
    pin, key = game['pin'], game['host_key']
    revisions = [client.get(f'/api/games/{pin}/state').get_json()['revision']]
    for _ in range(4):
        revisions.append(host(client, pin, key, 'advance').get_json()['revision'])
    assert revisions == sorted(set(revisions))
    assert len(revisions) == 5


def test_invalid_transition_is_rejected(client, new_game):
    game = new_game()
    res = host(client, game['pin'], game['host_key'], 'question/finish')
    assert res.status_code == 409
    assert res.get_json()['code'] == 'failed-precondition'


def test_duplicate_answer_returns_recorded_result(client, new_game):
    game = new_game()
    pin, key = game['pin'], game['host_key']
    alice = join(client, pin, 'Alice')
    host(client, pin, key, 'start')
    host(client, pin, key, 'question/start')

    payload = {'player_id': alice['id'], 'question_index': 0, 'answer_index': 1, 'time_remaining': 10}
    first = client.post(f'/api/games/{pin}/answers', json=payload).get_json()
    payload['time_remaining'] = 20
    second = client.post(f'/api/games/{pin}/answers', json=payload).get_json()
    assert first['accepted'] is True
    assert second['accepted'] is False
    assert second['duplicate'] is True
    assert second['points'] == first['points'] == 550
    assert second['new_score'] == 550
    assert client.get(f'/api/games/{pin}/leaderboard').get_json()['total_answered'] == 1


def test_late_answers(client, new_game, flask_app):
    game = new_game()
    pin, key = game['pin'], game['host_key']
    alice = join(client, pin, 'Alice')
    bob = join(client, pin, 'Bob')
    host(client, pin, key, 'start')
    host(client, pin, key, 'question/start')

    # Move the question start back past its limit plus grace
    row = db.session.get(Game, game['game_id'])
    row.question_start_time = time.time() - 60
    db.session.commit()

    res = client.post(f'/api/games/{pin}/answers', json={
        'player_id': alice['id'], 'question_index': 0, 'timed_out': True, 'time_remaining': 0,
    })
    assert res.status_code == 200
    assert res.get_json()['accepted'] is False
    assert res.get_json()['was_timeout'] is True

    res = client.post(f'/api/games/{pin}/answers', json={
        'player_id': bob['id'], 'question_index': 0, 'answer_index': 1, 'time_remaining': 5,
    })
    assert res.status_code == 409
    assert res.get_json()['code'] == 'question-closed'


def test_answer_for_another_question_is_closed(client, new_game):
    game = new_game()
    pin, key = game['pin'], game['host_key']
    alice = join(client, pin, 'Alice')
    host(client, pin, key, 'start')
    host(client, pin, key, 'question/start')
    res = client.post(f'/api/games/{pin}/answers', json={
        'player_id': alice['id'], 'question_index': 1, 'answer_indices': [0], 'time_remaining': 5,
    })
    assert res.status_code == 409


def test_answer_validation(client, new_game):
    game = new_game()
    pin, key = game['pin'], game['host_key']
    alice = join(client, pin, 'Alice')
    host(client, pin, key, 'start')
    host(client, pin, key, 'question/start')
    url = f'/api/games/{pin}/answers'
    assert client.post(url, json={'player_id': alice['id'], 'question_index': 0, 'time_remaining': 5}).status_code == 400
    assert client.post(url, json={'player_id': alice['id'], 'question_index': 0, 'answer_index': 1}).status_code == 400
    assert client.post(url, json={'player_id': alice['id'], 'question_index': 9, 'answer_index': 1,
                                  'time_remaining': 5}).status_code == 400
    assert client.post(url, json={'player_id': 999, 'question_index': 0, 'answer_index': 1,
                                  'time_remaining': 5}).status_code == 404


def test_answer_index_must_name_an_option(client, new_game):
    game = new_game()
    pin, key = game['pin'], game['host_key']
    alice = join(client, pin, 'Alice')
    host(client, pin, key, 'start')
    host(client, pin, key, 'question/start')
    url = f'/api/games/{pin}/answers'

    for bad in (4, 2_000_000, -2):
        res = client.post(url, json={'player_id': alice['id'], 'question_index': 0, 'answer_index': bad,
                                     'time_remaining': 5})
        assert res.status_code == 400
        assert res.get_json()['code'] == 'invalid-argument'
    leaderboard = client.get(f'/api/games/{pin}/leaderboard').get_json()
    assert leaderboard['total_answered'] == 0
    assert len(leaderboard['answer_counts']) <= 4

    # Move on to the multiple-choice question
    host(client, pin, key, 'question/finish')
    host(client, pin, key, 'advance')
    host(client, pin, key, 'question/start')
    for bad in ([0, 9], [0, 2_000_000], [-1]):
        res = client.post(url, json={'player_id': alice['id'], 'question_index': 1, 'answer_indices': bad,
                                     'time_remaining': 5})
        assert res.status_code == 400
    res = client.post(url, json={'player_id': alice['id'], 'question_index': 1, 'answer_indices': [0, 2],
                                 'time_remaining': 5})
    assert res.status_code == 200

    state = host(client, pin, key, 'question/finish').get_json()
    counts = state['leaderboard']['answer_counts']
    assert len(counts) <= 4
    assert counts[0] == counts[2] == 1


def test_auto_finish_when_everyone_answered(client, new_game, flask_app):
    flask_app.config['AUTO_FINISH_WHEN_ALL_ANSWERED'] = True
    game = new_game()
    pin, key = game['pin'], game['host_key']
    alice = join(client, pin, 'Alice')
    bob = join(client, pin, 'Bob')
    host(client, pin, key, 'start')
    host(client, pin, key, 'question/start')

    client.post(f'/api/games/{pin}/answers', json={
        'player_id': alice['id'], 'question_index': 0, 'answer_index': 1, 'time_remaining': 9,
    })
    assert client.get(f'/api/games/{pin}/state').get_json()['state'] == 'question'
    client.post(f'/api/games/{pin}/answers', json={
        'player_id': bob['id'], 'question_index': 0, 'timed_out': True, 'time_remaining': 0,
    })
    assert client.get(f'/api/games/{pin}/state').get_json()['state'] == 'leaderboard'


def test_results_failure_does_not_block_the_end(client, new_game, monkeypatch):
    game = new_game({
        'title': 'One question',
        'questions': [{'type': 'single-choice', 'prompt': 'Pick A', 'options': ['A', 'B'], 'correct_index': 0}],
    })
    pin, key = game['pin'], game['host_key']
    alice = join(client, pin, 'Alice')
    host(client, pin, key, 'start')
    host(client, pin, key, 'question/start')
    client.post(f'/api/games/{pin}/answers', json={
        'player_id': alice['id'], 'question_index': 0, 'answer_index': 0, 'time_remaining': 20,
    })

    def _broken(game_id, question_index):
        raise RuntimeError('aggregate store unavailable')

    monkeypatch.setattr('livequiz.services.games.leaderboard.compute_question_results', _broken)
    state = host(client, pin, key, 'question/finish').get_json()
    assert state['state'] == 'leaderboard'
    assert state['results_error']
    # The live standings stay visible
    assert state['leaderboard']['top_players'][0]['score'] == 1000

    res = host(client, pin, key, 'results/recompute')
    assert res.status_code == 503
    assert res.get_json()['recomputed'] is False

    state = host(client, pin, key, 'advance').get_json()
    assert state['state'] == 'ended'

    monkeypatch.undo()
    res = host(client, pin, key, 'results/recompute', question_index=0)
    assert res.status_code == 200
    assert res.get_json()['results_error'] is None
    assert res.get_json()['leaderboard']['player_ranks'][str(alice['id'])]['rank'] == 1


def test_cancel(client, new_game):
    game = new_game()
    pin, key = game['pin'], game['host_key']
    host(client, pin, key, 'start')
    state = host(client, pin, key, 'cancel').get_json()
    assert state['state'] == 'canceled'
    assert host(client, pin, key, 'cancel').status_code == 409
    res = client.post('/api/games/join', json={'game_pin': pin, 'name': 'Late'})
    assert res.status_code == 409


def test_question_timer_finishes_the_question(client, new_game, flask_app):
    flask_app.config['ENABLE_SCHEDULER_IN_TESTS'] = True
    flask_app.config['QUESTION_GRACE_PERIOD_SEC'] = 0
    game = new_game({
        'title': 'Quick',
        'questions': [{'type': 'single-choice', 'prompt': 'Pick A', 'options': ['A', 'B'],
                       'correct_index': 0, 'time_limit': 1}],
    })
    pin, key = game['pin'], game['host_key']
    join(client, pin, 'Alice')
    host(client, pin, key, 'start')
    host(client, pin, key, 'question/start')
    db.session.expire_all()
    state = client.get(f'/api/games/{pin}/state').get_json()
    assert state['state'] == 'leaderboard'


def test_player_details(client, new_game):
    game = new_game()
    pin, key = game['pin'], game['host_key']
    alice = join(client, pin, 'Alice')
    host(client, pin, key, 'start')
    host(client, pin, key, 'question/start')
    client.post(f'/api/games/{pin}/answers', json={
        'player_id': alice['id'], 'question_index': 0, 'answer_index': 1, 'time_remaining': 20,
    })
    data = client.get(f"/api/games/{pin}/players/{alice['id']}").get_json()
    assert data['score'] == 1000
    assert data['current_streak'] == 1
    assert data['answers'][0]['selection'] == {'answer_index': 1}
    assert client.get(f'/api/games/{pin}/players/999').status_code == 404


def test_cleanup_command(flask_app, new_game):
    game = new_game()
    row = db.session.get(Game, game['game_id'])
    row.created_at = time.time() - 90 * 24 * 3600
    db.session.commit()
    runner = flask_app.test_cli_runner()
    result = runner.invoke(args=['cleanup-games', '--days', '30'])
    assert 'Deleted 1 game(s)' in result.output
    assert db.session.get(Game, game['game_id']) is None
