import time

from flask import current_app

from livequiz import db, socketio
from livequiz.models import Game, TERMINAL_STATES
from .errors import FailedPrecondition
from .events import broadcast_state
from .leaderboard import reset_for_next_question, run_question_results
from .scheduler import schedule_question_timer


class HostController:
    """Issues the host's game transitions.

    lobby -> preparing -> question -> leaderboard -> preparing ... -> ended,
    with canceled reachable from any non-terminal state. Every transition
    bumps ``game.revision`` and is pushed to the game's room.
    """

    def __init__(self, game: Game, app=None):
        self.game = game
        self.app = app or current_app._get_current_object()

    def _require(self, *states):
        if self.game.state not in states:
            raise FailedPrecondition(
                f"Game is in '{self.game.state}', expected {' or '.join(repr(s) for s in states)}"
            )

    def _transition(self, new_state, **changes):
        game = self.game
        previous = game.state
        game.state = new_state
        for name, value in changes.items():
            setattr(game, name, value)
        game.revision = (game.revision or 0) + 1
        db.session.add(game)
        db.session.commit()
        self.app.logger.info(
            f"[transition] game={game.id} {previous} -> {new_state} question={game.current_question_index} rev={game.revision}"
        )
        broadcast_state(game)

    def start_game(self):
        self._require('lobby')
        if self.game.question_count == 0:
            raise FailedPrecondition('Quiz has no questions')
        self._transition('preparing', current_question_index=0, question_start_time=None)

    def start_question(self):
        self._require('preparing')
        self._transition('question', question_start_time=time.time(), results_error=None)
        schedule_question_timer(self.app, self.game.id)

    def finish_question(self):
        """Show results right away; the authoritative recompute follows."""
        self._require('question')
        self._transition('leaderboard')
        game_id, question_index = self.game.id, self.game.current_question_index
        if self.app.config.get('TESTING'):
            run_question_results(self.app, game_id, question_index)
        else:
            socketio.start_background_task(run_question_results, self.app, game_id, question_index)

    def next_question(self):
        # Waits for answers still being recorded against the current index
        Game.lock(self.game.id)
        self._require('leaderboard')
        if self.game.is_last_question:
            self.end_game()
            return
        # Counters must be cleared before the index moves so a late answer to
        # the old question cannot land on the new one.
        reset_for_next_question(self.game)
        self._transition(
            'preparing',
            current_question_index=self.game.current_question_index + 1,
            question_start_time=None,
        )

    def end_game(self):
        self._require('leaderboard')
        # Catch last-second answers; a failure here must not keep the game open
        if not run_question_results(self.app, self.game.id, self.game.current_question_index):
            self.app.logger.warning(f"[end] game={self.game.id} ended without accurate final results")
        db.session.refresh(self.game)
        self._transition('ended', ended_at=time.time())

    def advance(self):
        """Move to whatever comes next from the current state."""
        state = self.game.state
        if state == 'lobby':
            self.start_game()
        elif state == 'preparing':
            self.start_question()
        elif state == 'question':
            self.finish_question()
        elif state == 'leaderboard':
            self.next_question()
        else:
            raise FailedPrecondition('Game is over')

    def cancel(self):
        if self.game.state in TERMINAL_STATES:
            raise FailedPrecondition('Game is over')
        self._transition('canceled', ended_at=time.time())

    def recompute(self, question_index=None):
        if question_index is None:
            question_index = self.game.current_question_index
        ok = run_question_results(self.app, self.game.id, question_index)
        db.session.refresh(self.game)
        return ok
