import time
from typing import Set, Tuple

from flask import has_app_context

from livequiz import db, socketio
from livequiz.models import Game


_scheduled_question_keys: Set[Tuple[int, int, int]] = set()


def schedule_question_timer(app, game_id: int) -> None:
    """Schedule the auto-finish of the game's running question.

    - No-ops in TESTING mode unless ENABLE_SCHEDULER_IN_TESTS is set
    - Fires after the question's time limit plus the grace period
    - Ensures a single timer per (game_id, question, revision)
    - Aborts if the host already moved on by the time it fires
    """
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return
    if not app.config.get('AUTO_FINISH_QUESTIONS', True):
        return

    game = db.session.get(Game, game_id)
    if not game or game.state != 'question':
        return
    question = game.current_question()
    if question is None:
        return

    question_index = game.current_question_index
    revision = game.revision
    key = (game.id, question_index, revision)
    if key in _scheduled_question_keys:
        app.logger.info(f"[timer-skip] game={game.id} question={question_index} already scheduled")
        return
    _scheduled_question_keys.add(key)

    delay = question.time_limit + float(app.config.get('QUESTION_GRACE_PERIOD_SEC', 2))
    app.logger.info(f"[timer-set] game={game.id} question={question_index} delay={delay}s")

    def _worker(gid: int, expected_index: int, expected_revision: int, delay: float):
        hb = int(app.config.get('TIMER_HEARTBEAT_SEC', 0))
        if hb > 0:
            slept = 0.0
            while slept < delay:
                step = min(hb, delay - slept)
                time.sleep(step)
                slept += step
                app.logger.info(f"[timer-heartbeat] game={gid} question={expected_index} remaining={max(0, delay - slept)}s")
        else:
            time.sleep(delay)

        if has_app_context():
            _fire(gid, expected_index, expected_revision)
        else:
            with app.app_context():
                _fire(gid, expected_index, expected_revision)

    def _fire(gid: int, expected_index: int, expected_revision: int):
        _scheduled_question_keys.discard((gid, expected_index, expected_revision))
        g = db.session.get(Game, gid, populate_existing=True)
        if not g:
            return
        app.logger.info(
            f"[timer-fire] game={gid} expected_question={expected_index} actual_state={g.state} actual_question={g.current_question_index}"
        )
        if g.state != 'question' or g.current_question_index != expected_index or g.revision != expected_revision:
            app.logger.info(f"[timer-abort] game={gid} host already moved on")
            return

        from .host import HostController
        HostController(g, app).finish_question()

    if app.config.get('TESTING'):
        _worker(game.id, question_index, revision, delay)
    else:
        socketio.start_background_task(_worker, game.id, question_index, revision, delay)
