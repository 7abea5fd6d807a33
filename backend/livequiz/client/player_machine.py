"""Player state machine.

Driven only by explicit inputs: game snapshots (``sync``), timer ticks
(``tick``), the player's own answer (``submit``) and server replies
(``confirm``/``fail``). Answers bound for the server are queued on
``outbox`` and delivered by ``livequiz.client.transport.drain``.

joining/reconnecting -> lobby -> preparing -> question -> waiting/result
-> preparing ... -> ended, with canceled when the game goes away.
"""

import logging
from collections import deque
from dataclasses import dataclass, replace
from typing import Deque, Optional, Union

from livequiz.services.games.errors import GameError
from livequiz.services.games.questions import QuestionVariant, question_from_dict
from livequiz.services.games.scoring import Submission, score_answer
from .session import PlayerSession
from .timer import QuestionTimer

logger = logging.getLogger(__name__)

PLAYER_STATES = (
    'joining',
    'reconnecting',
    'lobby',
    'preparing',
    'question',
    'waiting',
    'result',
    'ended',
    'canceled',
)
PLAYER_TERMINAL_STATES = ('ended', 'canceled')


@dataclass(frozen=True)
class AnswerOutcome:
    """What the result screen shows for the current question."""

    points: int = 0
    is_correct: bool = False
    is_partially_correct: bool = False
    was_timeout: bool = False
    confirmed: bool = False
    failed: bool = False


NO_ANSWER = AnswerOutcome(was_timeout=True)


@dataclass(frozen=True)
class SubmitAnswerCommand:
    question_index: int
    submission: Submission


@dataclass(frozen=True)
class SubmitTimeoutCommand:
    question_index: int


Command = Union[SubmitAnswerCommand, SubmitTimeoutCommand]


class PlayerStateMachine:

    def __init__(self, session: Optional[PlayerSession] = None):
        self.session = session
        self.state = 'reconnecting' if session else 'joining'
        self.revision = -1
        self.host_state: Optional[str] = None
        self.question_index = -1
        self.question: Optional[QuestionVariant] = None
        self.timer: Optional[QuestionTimer] = None
        self.score = 0
        self.current_streak = 0
        self.last_error: Optional[str] = None
        self.outbox: Deque[Command] = deque()
        self.question_resets = 0
        self._clear_question_state()

    def _clear_question_state(self):
        self.selection: Optional[dict] = None
        self.timed_out = False
        self.submitted = False
        self.last_answer: Optional[AnswerOutcome] = None
        # Points added to the score ahead of the server reply
        self.pending_points = 0

    def _set_state(self, new_state: str, reason: str):
        if new_state not in PLAYER_STATES:
            raise ValueError(f"Unknown player state: {new_state}")
        if new_state == self.state:
            return
        logger.info(f"[player] {self.state} -> {new_state} ({reason}) question={self.question_index}")
        self.state = new_state

    def attach(self, session: PlayerSession):
        """Bind the session returned by a successful join."""
        self.session = session

    @property
    def is_finished(self) -> bool:
        return self.state in PLAYER_TERMINAL_STATES

    # ---- inputs ----

    def sync(self, snapshot: Optional[dict]) -> bool:
        """Apply a game snapshot; returns False when it was stale or ignored.

        ``None`` means the game no longer exists.
        """
        if self.is_finished:
            return False
        if snapshot is None:
            if self.state != 'joining':
                self._set_state('canceled', 'game gone')
            return self.state == 'canceled'

        revision = snapshot.get('revision')
        if revision is not None:
            if revision <= self.revision:
                logger.debug(f"[player] drop snapshot rev={revision} current={self.revision}")
                return False
            self.revision = revision

        host_state = snapshot.get('state')
        index = snapshot.get('current_question_index', 0)
        self.host_state = host_state
        self._load_question(snapshot)

        if index != self.question_index:
            if self.question_index != -1:
                # One reset per index change, however many snapshots repeat it
                self._clear_question_state()
                self.question_resets += 1
                if self.state not in ('joining', 'reconnecting', 'lobby'):
                    self._set_state('preparing', f'question changed to {index}')
            self.question_index = index

        if host_state == 'canceled':
            self._set_state('canceled', 'host canceled')
        elif host_state == 'ended':
            self._set_state('ended', 'game over')
        elif self.state in ('joining', 'reconnecting'):
            self._resume(host_state)
        elif host_state == 'lobby':
            pass
        elif host_state == 'preparing':
            if self.state == 'lobby':
                self._set_state('preparing', 'game starting')
        elif host_state == 'question':
            if self.state in ('lobby', 'preparing'):
                self._set_state('question', 'question open')
        elif host_state == 'leaderboard':
            if self.state == 'question':
                # The host closed a question this player saw but never answered
                self._record_no_answer('forced')
            if self.state in ('question', 'waiting'):
                self._set_state('result', 'results shown')
        return True

    def _resume(self, host_state):
        if host_state in ('lobby', 'preparing', 'question'):
            self._set_state(host_state, 'synced')
        elif host_state == 'leaderboard':
            self._set_state('result', 'synced')

    def _load_question(self, snapshot: dict):
        data = snapshot.get('current_question')
        if not data:
            return
        try:
            self.question = question_from_dict(data)
        except GameError as exc:
            self.last_error = exc.message
            logger.warning(f"[player] unreadable question in snapshot: {exc.message}")
            return
        started_at = snapshot.get('question_start_time')
        if started_at is not None:
            self.timer = QuestionTimer(self.question.time_limit, started_at)

    def tick(self, remaining: Optional[float] = None) -> bool:
        """Feed the countdown; at zero an unanswered question times out."""
        if remaining is None:
            remaining = self.timer.remaining() if self.timer else None
        if remaining is None or remaining > 0:
            return False
        if self.state != 'question' or self.submitted:
            return False
        self._record_no_answer('timer')
        self._set_state('result', 'time up')
        return True

    def submit(self, submission: Submission) -> bool:
        """Record the player's answer locally and queue it for the server."""
        if self.state != 'question' or self.submitted or self.question is None:
            return False
        # Set before anything else so a second tap is refused
        self.submitted = True
        self.selection = submission.selection()
        predicted = score_answer(self.question, submission)
        self.last_answer = AnswerOutcome(
            points=predicted.points,
            is_correct=predicted.is_correct,
            is_partially_correct=predicted.is_partially_correct,
            was_timeout=submission.timed_out,
        )
        self.score += predicted.points
        self.pending_points = predicted.points
        self.outbox.append(SubmitAnswerCommand(self.question_index, submission))
        self._set_state('waiting', 'answer sent')
        return True

    def _record_no_answer(self, reason: str):
        self.submitted = True
        self.timed_out = True
        self.last_answer = NO_ANSWER
        if self.question is not None and self.question.kind != 'slide':
            self.outbox.append(SubmitTimeoutCommand(self.question_index))
        logger.info(f"[player] no answer ({reason}) question={self.question_index}")

    def confirm(self, question_index: int, result: dict) -> bool:
        """Reconcile the optimistic result with what the server recorded."""
        if question_index != self.question_index:
            return False
        self.score = result.get('new_score', self.score)
        self.pending_points = 0
        self.current_streak = result.get('current_streak', self.current_streak)
        if result.get('accepted') or result.get('duplicate'):
            self.last_answer = replace(
                self.last_answer or NO_ANSWER,
                points=result.get('points', 0),
                is_correct=bool(result.get('is_correct')),
                is_partially_correct=bool(result.get('is_partially_correct')),
                was_timeout=bool(result.get('was_timeout')),
                confirmed=True,
            )
        self.last_error = None
        return True

    def fail(self, question_index: int, error) -> None:
        """Keep playing; the optimistic points are taken back and the error shown."""
        message = getattr(error, 'message', None) or str(error)
        self.last_error = message
        if question_index == self.question_index:
            self.score -= self.pending_points
            self.pending_points = 0
            if self.last_answer is not None and not self.last_answer.confirmed:
                self.last_answer = replace(self.last_answer, points=0, failed=True)
        logger.warning(f"[player] submission for question={question_index} failed: {message}")
