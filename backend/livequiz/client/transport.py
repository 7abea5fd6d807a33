import logging

from flask import has_app_context

from livequiz.models import Game
from livequiz.services.games.answers import submit_answer
from livequiz.services.games.errors import GameError, InvalidArgument, NotFound
from livequiz.services.games.scoring import Submission
from .player_machine import PlayerStateMachine, SubmitTimeoutCommand
from .session import PlayerSession

logger = logging.getLogger(__name__)


class ServiceTransport:
    """Delivers player commands to the answer service in this process."""

    def __init__(self, app):
        self.app = app

    def send(self, session: PlayerSession, command) -> dict:
        if has_app_context():
            return self._send(session, command)
        with self.app.app_context():
            return self._send(session, command)

    def _send(self, session: PlayerSession, command) -> dict:
        game = Game.query.filter_by(game_pin=session.game_pin).first()
        if not game:
            raise NotFound('Game not found')
        questions = game.quiz.questions
        if command.question_index >= len(questions):
            raise InvalidArgument('question_index is out of range')
        question = questions[command.question_index].to_variant()
        if isinstance(command, SubmitTimeoutCommand):
            submission = Submission(time_remaining=0, timed_out=True)
        else:
            submission = command.submission
        return submit_answer(game, session.player_id, command.question_index, submission, question)


def drain(machine: PlayerStateMachine, transport) -> int:
    """Send every queued command in order and feed the replies back."""
    sent = 0
    while machine.outbox:
        command = machine.outbox.popleft()
        if machine.session is None:
            machine.fail(command.question_index, 'Not joined to a game')
            continue
        try:
            result = transport.send(machine.session, command)
        except GameError as exc:
            machine.fail(command.question_index, exc)
        else:
            machine.confirm(command.question_index, result)
        sent += 1
    logger.debug(f"[player] drained {sent} command(s)")
    return sent
