import threading
import time

import pytest

from conftest import QUIZ_PAYLOAD, TestConfig
from livequiz import create_app, db
from livequiz.models import Answer, Game, Leaderboard, Player
from livequiz.services.games.answers import submit_answer
from livequiz.services.games.leaderboard import live_answer_counts
from livequiz.services.games.scoring import Submission
from livequiz.services.quizzes import create_quiz

PLAYERS = 12


@pytest.fixture()
def file_app(tmp_path):
    """An app on a SQLite file so every thread gets its own connection."""

    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'livequiz.db'}"
        SQLALCHEMY_ENGINE_OPTIONS = {'connect_args': {'timeout': 30, 'check_same_thread': False}}

    application = create_app(FileConfig)
    with application.app_context():
        import livequiz.models  # noqa: F401
        db.create_all()
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def _open_game(app, player_count):
    with app.app_context():
        quiz = create_quiz(QUIZ_PAYLOAD['title'], QUIZ_PAYLOAD['questions'])
        game = Game(quiz_id=quiz.id, state='question', current_question_index=0, question_start_time=time.time())
        db.session.add(game)
        db.session.commit()
        players = [Player(name=f'Player {i}', game_id=game.id) for i in range(player_count)]
        db.session.add_all(players)
        db.session.commit()
        return game.id, [p.id for p in players]


def _submit_in_threads(app, game_id, jobs):
    """Run (player_id, answer_index) jobs at once, one thread each."""
    barrier = threading.Barrier(len(jobs), timeout=30)
    results, errors = [], []
    lock = threading.Lock()

    def _play(player_id, answer_index):
        with app.app_context():
            try:
                game = db.session.get(Game, game_id)
                question = game.quiz.questions[0].to_variant()
                # Nothing may stay open while the others line up
                db.session.commit()
                barrier.wait()
                result = submit_answer(game, player_id, 0,
                                       Submission(time_remaining=10, answer_index=answer_index), question)
                with lock:
                    results.append(result)
            except Exception as exc:
                with lock:
                    errors.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=_play, args=job) for job in jobs]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    assert not any(thread.is_alive() for thread in threads)
    assert errors == []
    return results


def test_parallel_answers_keep_every_count(file_app):
    game_id, player_ids = _open_game(file_app, PLAYERS)
    jobs = [(player_id, i % 4) for i, player_id in enumerate(player_ids)]

    results = _submit_in_threads(file_app, game_id, jobs)
    assert len(results) == PLAYERS
    assert all(r['accepted'] for r in results)

    with file_app.app_context():
        leaderboard = db.session.get(Leaderboard, game_id)
        assert leaderboard.total_answered == PLAYERS
        assert leaderboard.total_players == PLAYERS
        assert len(leaderboard.top_players_data) == PLAYERS
        assert live_answer_counts(game_id, 0) == [PLAYERS // 4] * 4
        assert Answer.query.filter_by(game_id=game_id).count() == PLAYERS
        scores = sum(p.score for p in Player.query.filter_by(game_id=game_id))
        assert scores == sum(r['points'] for r in results)


def test_parallel_copies_of_one_answer_are_stored_once(file_app):
    game_id, (player_id,) = _open_game(file_app, 1)

    results = _submit_in_threads(file_app, game_id, [(player_id, 1)] * 6)
    assert sum(1 for r in results if r['accepted']) == 1
    assert sum(1 for r in results if r['duplicate']) == 5
    assert {r['new_score'] for r in results} == {results[0]['new_score']}

    with file_app.app_context():
        assert db.session.get(Leaderboard, game_id).total_answered == 1
        assert live_answer_counts(game_id, 0) == [0, 1]
        assert db.session.get(Player, player_id).score == results[0]['new_score']
