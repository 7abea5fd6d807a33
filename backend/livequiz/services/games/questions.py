"""Question variants.

Each question kind is its own frozen dataclass so scoring can dispatch on
the type. ``question_from_dict`` parses the stored JSON shape (the same
shape ``Question.to_dict`` produces) and raises ``InvalidArgument`` on
malformed input.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple, Union

from .errors import InvalidArgument

DEFAULT_TIME_LIMIT = 20

QUESTION_KINDS = (
    'single-choice',
    'multiple-choice',
    'slider',
    'free-response',
    'slide',
    'poll-single',
    'poll-multiple',
)
SCORED_KINDS = ('single-choice', 'multiple-choice', 'slider', 'free-response')
POLL_KINDS = ('poll-single', 'poll-multiple')


@dataclass(frozen=True)
class SingleChoice:
    prompt: str
    options: Tuple[str, ...]
    correct_index: int
    time_limit: int = DEFAULT_TIME_LIMIT
    kind: str = field(default='single-choice', init=False)


@dataclass(frozen=True)
class MultipleChoice:
    prompt: str
    options: Tuple[str, ...]
    correct_indices: Tuple[int, ...]
    time_limit: int = DEFAULT_TIME_LIMIT
    kind: str = field(default='multiple-choice', init=False)


@dataclass(frozen=True)
class Slider:
    prompt: str
    min_value: float
    max_value: float
    correct_value: float
    acceptable_error: Optional[float] = None
    time_limit: int = DEFAULT_TIME_LIMIT
    kind: str = field(default='slider', init=False)


@dataclass(frozen=True)
class FreeResponse:
    prompt: str
    correct_answer: str
    alternative_answers: Tuple[str, ...] = ()
    case_sensitive: bool = False
    allow_typos: bool = True
    time_limit: int = DEFAULT_TIME_LIMIT
    kind: str = field(default='free-response', init=False)


@dataclass(frozen=True)
class Slide:
    prompt: str
    time_limit: int = DEFAULT_TIME_LIMIT
    kind: str = field(default='slide', init=False)


@dataclass(frozen=True)
class PollSingle:
    prompt: str
    options: Tuple[str, ...]
    time_limit: int = DEFAULT_TIME_LIMIT
    kind: str = field(default='poll-single', init=False)


@dataclass(frozen=True)
class PollMultiple:
    prompt: str
    options: Tuple[str, ...]
    time_limit: int = DEFAULT_TIME_LIMIT
    kind: str = field(default='poll-multiple', init=False)


QuestionVariant = Union[SingleChoice, MultipleChoice, Slider, FreeResponse, Slide, PollSingle, PollMultiple]


def _options(data: dict) -> Tuple[str, ...]:
    options = data.get('options')
    if not isinstance(options, list) or len(options) < 2:
        raise InvalidArgument('Choice questions need at least two options')
    return tuple(str(o) for o in options)


def _index(value, options: Tuple[str, ...], name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value < len(options):
        raise InvalidArgument(f'{name} must be a valid option index')
    return value


def _number(data: dict, name: str) -> float:
    value = data.get(name)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidArgument(f'{name} must be a number')
    return float(value)


def _time_limit(data: dict) -> int:
    value = data.get('time_limit', DEFAULT_TIME_LIMIT)
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise InvalidArgument('time_limit must be an integer')
    if value <= 0:
        raise InvalidArgument('time_limit must be positive')
    return value


def question_from_dict(data: dict) -> QuestionVariant:
    kind = data.get('type')
    if kind not in QUESTION_KINDS:
        raise InvalidArgument(f'Unknown question type: {kind}')
    prompt = str(data.get('prompt') or '')
    time_limit = _time_limit(data)

    if kind == 'single-choice':
        options = _options(data)
        return SingleChoice(prompt, options, _index(data.get('correct_index'), options, 'correct_index'), time_limit)

    if kind == 'multiple-choice':
        options = _options(data)
        raw = data.get('correct_indices')
        if not isinstance(raw, list) or not raw:
            raise InvalidArgument('correct_indices must be a non-empty list')
        indices = tuple(sorted({_index(i, options, 'correct_indices') for i in raw}))
        return MultipleChoice(prompt, options, indices, time_limit)

    if kind == 'slider':
        min_value = _number(data, 'min_value')
        max_value = _number(data, 'max_value')
        correct_value = _number(data, 'correct_value')
        if max_value <= min_value:
            raise InvalidArgument('max_value must be greater than min_value')
        if not min_value <= correct_value <= max_value:
            raise InvalidArgument('correct_value must lie within the slider range')
        acceptable_error = data.get('acceptable_error')
        if acceptable_error is not None:
            acceptable_error = _number(data, 'acceptable_error')
        return Slider(prompt, min_value, max_value, correct_value, acceptable_error, time_limit)

    if kind == 'free-response':
        correct_answer = data.get('correct_answer')
        if not isinstance(correct_answer, str) or not correct_answer.strip():
            raise InvalidArgument('correct_answer is required')
        alternatives = tuple(str(a) for a in (data.get('alternative_answers') or []))
        return FreeResponse(
            prompt,
            correct_answer,
            alternatives,
            bool(data.get('case_sensitive', False)),
            bool(data.get('allow_typos', True)),
            time_limit,
        )

    if kind == 'slide':
        return Slide(prompt, time_limit)

    if kind == 'poll-single':
        return PollSingle(prompt, _options(data), time_limit)

    if kind == 'poll-multiple':
        return PollMultiple(prompt, _options(data), time_limit)

    raise InvalidArgument(f'Unknown question type: {kind}')


def question_params(question: QuestionVariant) -> dict:
    """Variant-specific parameters as stored in ``Question.params``."""
    if isinstance(question, SingleChoice):
        return {'options': list(question.options), 'correct_index': question.correct_index}
    if isinstance(question, MultipleChoice):
        return {'options': list(question.options), 'correct_indices': list(question.correct_indices)}
    if isinstance(question, Slider):
        return {
            'min_value': question.min_value,
            'max_value': question.max_value,
            'correct_value': question.correct_value,
            'acceptable_error': question.acceptable_error,
        }
    if isinstance(question, FreeResponse):
        return {
            'correct_answer': question.correct_answer,
            'alternative_answers': list(question.alternative_answers),
            'case_sensitive': question.case_sensitive,
            'allow_typos': question.allow_typos,
        }
    if isinstance(question, Slide):
        return {}
    if isinstance(question, (PollSingle, PollMultiple)):
        return {'options': list(question.options)}
    raise TypeError(f'Unhandled question variant: {type(question).__name__}')

