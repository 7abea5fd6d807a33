from livequiz import socketio

NAMESPACE = '/ws'


def room_for(game_pin: str) -> str:
    return f"game:{game_pin}"


def broadcast_state(game) -> None:
    socketio.emit('state_update', {
        'game_pin': game.game_pin,
        'state': game.state,
        'current_question_index': game.current_question_index,
        'revision': game.revision,
    }, to=room_for(game.game_pin), namespace=NAMESPACE)


def broadcast_leaderboard(game, snapshot: dict) -> None:
    socketio.emit('leaderboard_update', {'game_pin': game.game_pin, 'leaderboard': snapshot},
                  to=room_for(game.game_pin), namespace=NAMESPACE)


def broadcast_results_failed(game, question_index: int, message: str) -> None:
    socketio.emit('results_failed', {
        'game_pin': game.game_pin,
        'question_index': question_index,
        'message': message,
    }, to=room_for(game.game_pin), namespace=NAMESPACE)


def broadcast_session_ended(game_pin: str) -> None:
    socketio.emit('session_ended', {'game_pin': game_pin}, to=room_for(game_pin), namespace=NAMESPACE)
