import json

from flask import current_app

from livequiz import db
from livequiz.models import Quiz, Question
from livequiz.services.games.errors import InvalidArgument
from livequiz.services.games.questions import DEFAULT_TIME_LIMIT, question_from_dict, question_params

DEMO_QUIZ = {
    'title': 'Demo quiz',
    'questions': [
        {'type': 'single-choice', 'prompt': 'What is 2 + 2?', 'options': ['3', '4', '5', '22'],
         'correct_index': 1, 'time_limit': 20},
        {'type': 'multiple-choice', 'prompt': 'Which are prime?', 'options': ['2', '4', '7', '9'],
         'correct_indices': [0, 2], 'time_limit': 20},
        {'type': 'slider', 'prompt': 'Boiling point of water (C)?', 'min_value': 0, 'max_value': 200,
         'correct_value': 100, 'time_limit': 20},
        {'type': 'poll-single', 'prompt': 'Favourite season?',
         'options': ['Spring', 'Summer', 'Autumn', 'Winter'], 'time_limit': 15},
        {'type': 'free-response', 'prompt': 'Capital of France?', 'correct_answer': 'Paris',
         'time_limit': 20},
    ],
}


def create_quiz(title, questions_data) -> Quiz:
    if not isinstance(title, str) or not title.strip():
        raise InvalidArgument('title is required')
    if not isinstance(questions_data, list) or not questions_data:
        raise InvalidArgument('questions must be a non-empty list')

    quiz = Quiz(title=title.strip())
    for position, data in enumerate(questions_data):
        if not isinstance(data, dict):
            raise InvalidArgument(f'Question {position} must be an object')
        if data.get('time_limit') is None:
            data = dict(data, time_limit=current_app.config.get('DEFAULT_QUESTION_TIME_LIMIT', DEFAULT_TIME_LIMIT))
        variant = question_from_dict(data)
        quiz.questions.append(Question(
            position=position,
            kind=variant.kind,
            prompt=variant.prompt,
            time_limit=variant.time_limit,
            params=json.dumps(question_params(variant)),
        ))
    db.session.add(quiz)
    db.session.commit()
    return quiz
