"""Player-side game flow: session context, question timer and state machine."""

from .session import PlayerSession
from .timer import QuestionTimer
from .player_machine import PlayerStateMachine, SubmitAnswerCommand, SubmitTimeoutCommand
from .transport import ServiceTransport, drain

__all__ = [
    'PlayerSession',
    'QuestionTimer',
    'PlayerStateMachine',
    'SubmitAnswerCommand',
    'SubmitTimeoutCommand',
    'ServiceTransport',
    'drain',
]
