from flask import Blueprint, jsonify, request
from livequiz import db
from livequiz.models import Quiz
from livequiz.services.games.errors import GameError
from livequiz.services.quizzes import create_quiz


quizzes = Blueprint('quizzes', __name__)


@quizzes.errorhandler(GameError)
def handle_game_error(exc):
    return jsonify(exc.to_dict()), exc.status_code


@quizzes.route('', methods=['POST'])
def create():
    data = request.get_json(silent=True) or {}
    quiz = create_quiz(data.get('title'), data.get('questions'))
    return jsonify(quiz.to_dict()), 201


@quizzes.route('/<int:quiz_id>', methods=['GET'])
def get_quiz(quiz_id):
    quiz = db.get_or_404(Quiz, quiz_id)
    return jsonify(quiz.to_dict())
