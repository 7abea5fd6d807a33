from flask import Blueprint, jsonify, request, current_app
from livequiz import db
from livequiz.models import Answer, Game, Player, Quiz, TERMINAL_STATES
from livequiz.services.games.answers import submit_answer
from livequiz.services.games.errors import GameError, FailedPrecondition, InvalidArgument, NotFound, PermissionDenied
from livequiz.services.games.events import broadcast_leaderboard
from livequiz.services.games.host import HostController
from livequiz.services.games.leaderboard import leaderboard_snapshot
from livequiz.services.games.validation import parse_question_index, parse_submission


games = Blueprint('games', __name__)


@games.errorhandler(GameError)
def handle_game_error(exc):
    return jsonify(exc.to_dict()), exc.status_code


def _get_game(game_pin) -> Game:
    game = Game.query.filter_by(game_pin=game_pin).first()
    if not game:
        raise NotFound('Game not found')
    return game


def _host_controller(game_pin) -> HostController:
    data = request.get_json(silent=True) or {}
    game = _get_game(game_pin)
    if not game.check_host_key(data.get('host_key')):
        raise PermissionDenied('Only the host may control this game')
    return HostController(game, current_app._get_current_object())


def _state_payload(game: Game) -> dict:
    payload = game.to_dict()
    payload['leaderboard'] = leaderboard_snapshot(game)
    return payload


@games.route('/create', methods=['POST'])
def create_game():
    data = request.get_json(silent=True) or {}
    quiz_id = data.get('quiz_id')
    if not isinstance(quiz_id, int) or isinstance(quiz_id, bool):
        raise InvalidArgument('quiz_id is required')
    quiz = db.session.get(Quiz, quiz_id)
    if not quiz:
        raise NotFound('Quiz not found')

    new_game = Game(quiz_id=quiz.id)
    host_key = new_game.issue_host_key()
    db.session.add(new_game)
    db.session.commit()
    current_app.logger.info(f"[create] game={new_game.id} pin={new_game.game_pin} quiz={quiz.id}")
    return jsonify({
        'message': 'New game created!',
        'game_id': new_game.id,
        'game_pin': new_game.game_pin,
        'host_key': host_key,
    }), 201


@games.route('/join', methods=['POST'])
def join_game():
    data = request.get_json(silent=True) or {}
    game_pin = data.get('game_pin')
    name = (data.get('name') or '').strip()
    if not game_pin or not name:
        raise InvalidArgument('Game PIN and player name are required')
    if len(name) > 64:
        raise InvalidArgument('Player name is too long')

    game = _get_game(str(game_pin))
    if game.state in TERMINAL_STATES:
        raise FailedPrecondition('This game is over')

    new_player = Player(name=name, game_id=game.id)
    db.session.add(new_player)
    db.session.commit()
    current_app.logger.info(f"[join] game={game.id} player={new_player.id} name={name!r}")
    return jsonify(new_player.to_dict()), 201


@games.route('/<string:game_pin>/rejoin', methods=['POST'])
def rejoin_game(game_pin):
    data = request.get_json(silent=True) or {}
    game = _get_game(game_pin)
    player = Player.query.filter_by(id=data.get('player_id'), game_id=game.id).first()
    if not player:
        raise NotFound('Player not found')
    return jsonify({'player': player.to_dict(include_answers=True), 'game': _state_payload(game)})


@games.route('/<string:game_pin>/state', methods=['GET'])
def get_game_state(game_pin):
    return jsonify(_state_payload(_get_game(game_pin)))


@games.route('/<string:game_pin>/leaderboard', methods=['GET'])
def get_leaderboard(game_pin):
    return jsonify(leaderboard_snapshot(_get_game(game_pin)))


@games.route('/<string:game_pin>/players/<int:player_id>', methods=['GET'])
def get_player(game_pin, player_id):
    game = _get_game(game_pin)
    player = Player.query.filter_by(id=player_id, game_id=game.id).first()
    if not player:
        raise NotFound('Player not found')
    return jsonify(player.to_dict(include_answers=True))


@games.route('/<string:game_pin>/start', methods=['POST'])
def start_game(game_pin):
    controller = _host_controller(game_pin)
    controller.start_game()
    return jsonify(_state_payload(controller.game))


@games.route('/<string:game_pin>/question/start', methods=['POST'])
def start_question(game_pin):
    controller = _host_controller(game_pin)
    controller.start_question()
    return jsonify(_state_payload(controller.game))


@games.route('/<string:game_pin>/question/finish', methods=['POST'])
def finish_question(game_pin):
    controller = _host_controller(game_pin)
    controller.finish_question()
    return jsonify(_state_payload(controller.game))


@games.route('/<string:game_pin>/advance', methods=['POST'])
def advance(game_pin):
    controller = _host_controller(game_pin)
    controller.advance()
    return jsonify(_state_payload(controller.game))


@games.route('/<string:game_pin>/cancel', methods=['POST'])
def cancel_game(game_pin):
    controller = _host_controller(game_pin)
    controller.cancel()
    return jsonify(_state_payload(controller.game))


@games.route('/<string:game_pin>/results/recompute', methods=['POST'])
def recompute_results(game_pin):
    controller = _host_controller(game_pin)
    data = request.get_json(silent=True) or {}
    question_index = parse_question_index(data) if 'question_index' in data else None
    ok = controller.recompute(question_index)
    payload = _state_payload(controller.game)
    payload['recomputed'] = ok
    return jsonify(payload), 200 if ok else 503


@games.route('/<string:game_pin>/answers', methods=['POST'])
def post_answer(game_pin):
    data = request.get_json(silent=True) or {}
    game = _get_game(game_pin)
    question_index = parse_question_index(data)

    questions = game.quiz.questions
    if question_index >= len(questions):
        raise InvalidArgument('question_index is out of range')
    question = questions[question_index].to_variant()
    submission = parse_submission(data, question)

    result = submit_answer(game, data.get('player_id'), question_index, submission, question)

    if result['accepted']:
        snapshot = leaderboard_snapshot(game)
        broadcast_leaderboard(game, snapshot)
        # Early finish: everyone has answered the running question
        answered = Answer.query.filter_by(game_id=game.id, question_index=question_index).count()
        if (current_app.config.get('AUTO_FINISH_WHEN_ALL_ANSWERED')
                and game.state == 'question'
                and game.current_question_index == question_index
                and answered >= snapshot['total_players'] > 0):
            current_app.logger.info(f"[auto-finish] game={game.id} question={question_index} all players answered")
            HostController(game, current_app._get_current_object()).finish_question()
    return jsonify(result)
