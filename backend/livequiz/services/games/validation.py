"""Request validation for answer submissions.

Checks shapes and types only; numeric ranges are clamped later by the
scoring functions.
"""

from .errors import InvalidArgument
from .questions import QuestionVariant
from .scoring import Submission

MAX_TEXT_ANSWER_LENGTH = 200


def _is_int(value):
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_question_index(data: dict) -> int:
    question_index = data.get('question_index')
    if not _is_int(question_index) or question_index < 0:
        raise InvalidArgument('question_index must be a non-negative integer')
    return question_index


def parse_submission(data: dict, question: QuestionVariant) -> Submission:
    time_remaining = data.get('time_remaining')
    if not _is_number(time_remaining) or time_remaining < 0:
        raise InvalidArgument('Invalid time_remaining value')

    if data.get('timed_out'):
        return Submission(time_remaining=0, timed_out=True)

    kind = question.kind
    if kind in ('single-choice', 'poll-single'):
        answer_index = data.get('answer_index')
        if not _is_int(answer_index):
            raise InvalidArgument(f'{kind} question requires answer_index')
        # -1 is the legacy "no answer" marker
        if answer_index == -1:
            return Submission(time_remaining=0, timed_out=True)
        if not 0 <= answer_index < len(question.options):
            raise InvalidArgument('Invalid answer index')
        return Submission(time_remaining=time_remaining, answer_index=answer_index)

    if kind in ('multiple-choice', 'poll-multiple'):
        answer_indices = data.get('answer_indices')
        if not isinstance(answer_indices, list):
            raise InvalidArgument(f'{kind} question requires answer_indices')
        if kind == 'poll-multiple' and not answer_indices:
            raise InvalidArgument('Poll multiple choice question requires answer_indices')
        for idx in answer_indices:
            if not _is_int(idx) or not 0 <= idx < len(question.options):
                raise InvalidArgument(f'Invalid answer index: {idx}')
        return Submission(time_remaining=time_remaining, answer_indices=tuple(sorted(set(answer_indices))))

    if kind == 'slider':
        slider_value = data.get('slider_value')
        if not _is_number(slider_value):
            raise InvalidArgument('slider_value must be a valid number')
        return Submission(time_remaining=time_remaining, slider_value=float(slider_value))

    if kind == 'free-response':
        text_answer = data.get('text_answer')
        if not isinstance(text_answer, str):
            raise InvalidArgument('text_answer must be a string')
        if len(text_answer) > MAX_TEXT_ANSWER_LENGTH:
            raise InvalidArgument(f'text_answer exceeds maximum length of {MAX_TEXT_ANSWER_LENGTH} characters')
        return Submission(time_remaining=time_remaining, text_answer=text_answer)

    if kind == 'slide':
        # Viewing a slide is recorded without a selection
        return Submission(time_remaining=time_remaining)

    raise InvalidArgument(f'Unknown question type: {kind}')
