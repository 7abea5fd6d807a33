"""Answer scoring.

Pure and deterministic: the player client uses the same functions for its
optimistic prediction that the server uses for the authoritative score, so
identical inputs must give identical points. Numeric inputs are clamped or
defaulted instead of raising.
"""

import math
from dataclasses import dataclass
from typing import Optional, Tuple

from .fuzzy import match_answer
from .questions import (
    DEFAULT_TIME_LIMIT,
    POLL_KINDS,
    FreeResponse,
    MultipleChoice,
    PollMultiple,
    PollSingle,
    QuestionVariant,
    SingleChoice,
    Slide,
    Slider,
)

BASE_POINTS = 100
MAX_TIME_BONUS = 900
MAX_POINTS = 1000
WRONG_SELECTION_PENALTY = 0.2
SLIDER_DEFAULT_TOLERANCE = 0.05


@dataclass(frozen=True)
class Submission:
    """A player's response to one question. ``timed_out`` means no selection."""

    time_remaining: float = 0
    answer_index: Optional[int] = None
    answer_indices: Optional[Tuple[int, ...]] = None
    slider_value: Optional[float] = None
    text_answer: Optional[str] = None
    timed_out: bool = False

    def selection(self) -> Optional[dict]:
        if self.timed_out:
            return None
        if self.answer_index is not None:
            return {'answer_index': self.answer_index}
        if self.answer_indices is not None:
            return {'answer_indices': list(self.answer_indices)}
        if self.slider_value is not None:
            return {'slider_value': self.slider_value}
        if self.text_answer is not None:
            return {'text_answer': self.text_answer}
        return None


@dataclass(frozen=True)
class ScoringResult:
    points: int
    is_correct: bool
    is_partially_correct: bool = False


NO_POINTS = ScoringResult(0, False, False)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _finite(value, default: float = 0.0) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(value) or math.isinf(value):
        return default
    return value


def time_fraction(time_remaining, time_limit) -> float:
    """Share of the time limit left, clamped to [0, 1]."""
    limit = _finite(time_limit)
    if limit <= 0:
        limit = float(DEFAULT_TIME_LIMIT)
    remaining = min(max(_finite(time_remaining), 0.0), limit)
    return remaining / limit


def time_bonus(time_remaining, time_limit) -> int:
    return round_half_up(MAX_TIME_BONUS * time_fraction(time_remaining, time_limit))


def score_single_choice(answer_index, correct_index, time_remaining, time_limit) -> ScoringResult:
    is_correct = answer_index is not None and answer_index >= 0 and answer_index == correct_index
    if not is_correct:
        return NO_POINTS
    points = min(MAX_POINTS, BASE_POINTS + time_bonus(time_remaining, time_limit))
    return ScoringResult(points, True, False)


def score_multiple_choice(answer_indices, correct_indices, time_remaining, time_limit) -> ScoringResult:
    selected = set(answer_indices or ())
    correct = set(correct_indices or ())
    if not correct:
        return NO_POINTS
    correct_selected = len(selected & correct)
    wrong_selected = len(selected - correct)

    multiplier = max(0.0, correct_selected / len(correct) - WRONG_SELECTION_PENALTY * wrong_selected)
    points = round_half_up(MAX_POINTS * multiplier)
    is_correct = correct_selected == len(correct) and wrong_selected == 0
    if is_correct:
        points = min(MAX_POINTS, points + time_bonus(time_remaining, time_limit))
    is_partially_correct = not is_correct and multiplier > 0
    return ScoringResult(min(points, MAX_POINTS), is_correct, is_partially_correct)


def score_slider(value, correct_value, min_value, max_value, time_remaining, time_limit,
                 acceptable_error=None) -> ScoringResult:
    if value is None:
        return NO_POINTS
    value = _finite(value, default=float('nan'))
    if math.isnan(value):
        return NO_POINTS

    value_range = _finite(max_value) - _finite(min_value)
    distance = abs(value - _finite(correct_value))
    if value_range > 0:
        accuracy = max(0.0, 1.0 - distance / value_range)
    else:
        accuracy = 1.0 if distance == 0 else 0.0

    accuracy_points = round_half_up(500 * accuracy ** 2)
    speed_points = round_half_up(500 * time_fraction(time_remaining, time_limit))
    threshold = _finite(acceptable_error) if acceptable_error is not None else value_range * SLIDER_DEFAULT_TOLERANCE
    return ScoringResult(min(MAX_POINTS, accuracy_points + speed_points), distance <= threshold, False)


def score_free_response(text, question: FreeResponse, time_remaining, time_limit) -> ScoringResult:
    is_correct, _, _ = match_answer(
        text or '',
        (question.correct_answer,) + tuple(question.alternative_answers),
        case_sensitive=question.case_sensitive,
        allow_typos=question.allow_typos,
    )
    if not is_correct:
        return NO_POINTS
    return ScoringResult(min(MAX_POINTS, BASE_POINTS + time_bonus(time_remaining, time_limit)), True, False)


def score_answer(question: QuestionVariant, submission: Submission) -> ScoringResult:
    if submission.timed_out:
        return NO_POINTS

    limit = question.time_limit
    remaining = submission.time_remaining
    if isinstance(question, SingleChoice):
        return score_single_choice(submission.answer_index, question.correct_index, remaining, limit)
    if isinstance(question, MultipleChoice):
        return score_multiple_choice(submission.answer_indices, question.correct_indices, remaining, limit)
    if isinstance(question, Slider):
        return score_slider(
            submission.slider_value,
            question.correct_value,
            question.min_value,
            question.max_value,
            remaining,
            limit,
            question.acceptable_error,
        )
    if isinstance(question, FreeResponse):
        return score_free_response(submission.text_answer, question, remaining, limit)
    if isinstance(question, (Slide, PollSingle, PollMultiple)):
        return NO_POINTS
    raise TypeError(f'Unhandled question variant: {type(question).__name__}')


def calculate_streak(kind: str, is_correct: bool, current_streak: int) -> int:
    """Polls and slides leave the streak alone; scored questions extend or reset it."""
    if kind in POLL_KINDS or kind == 'slide':
        return current_streak
    return current_streak + 1 if is_correct else 0
