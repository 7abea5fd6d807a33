from flask_socketio import join_room, leave_room, emit
from livequiz import socketio, db
from flask import current_app, has_app_context, request
from livequiz.models import Game, TERMINAL_STATES
from livequiz.services.games.events import NAMESPACE, room_for, broadcast_session_ended
from livequiz.services.games.errors import FailedPrecondition
from typing import Dict, Any
import time


def handle_connect():
    emit('connected', {'message': f'Connected to {NAMESPACE}'})


def handle_disconnect(reason=None):
    # A host socket going away cancels the game once no other host socket
    # is left and the grace period has passed
    ctx = _sid_to_ctx.pop(_get_sid(), None)
    if not ctx:
        return
    game_pin = ctx.get('game_pin')
    if ctx.get('is_host') and game_pin:
        _owner_count[game_pin] = max(0, _owner_count.get(game_pin, 0) - 1)
        app = current_app._get_current_object()
        # Tests end immediately for determinism
        if app.config.get('TESTING'):
            if _owner_count.get(game_pin, 0) == 0:
                _end_session(app, game_pin)
            return
        _schedule_end_if_no_owner(app, game_pin, float(app.config.get('HOST_DISCONNECT_GRACE_SEC', 30)))


def handle_join_game(data):
    game_pin = str((data or {}).get('game_pin') or '').strip()
    if not game_pin:
        emit('error', {'message': 'game_pin is required'})
        return
    game = Game.query.filter_by(game_pin=game_pin).first()
    if not game:
        emit('error', {'message': 'Game not found'})
        return

    host_key = (data or {}).get('host_key')
    is_host = False
    if host_key:
        if not game.check_host_key(host_key):
            emit('error', {'message': 'Invalid host key'})
            return
        is_host = True

    room = room_for(game_pin)
    join_room(room)
    _sid_to_ctx[_get_sid()] = {'game_pin': game_pin, 'is_host': is_host}
    if is_host:
        _owner_count[game_pin] = _owner_count.get(game_pin, 0) + 1
        _cancel_scheduled_end(game_pin)
    current_app.logger.info(f"[ws-join] game={game.id} pin={game_pin} host={is_host}")
    emit('joined', {'room': room, 'state': game.state, 'revision': game.revision, 'is_host': is_host})


def handle_leave_game(data):
    game_pin = str((data or {}).get('game_pin') or '').strip()
    if not game_pin:
        emit('error', {'message': 'game_pin is required'})
        return
    room = room_for(game_pin)
    leave_room(room)
    emit('left', {'room': room})
    # A host leaving on purpose ends the game right away
    ctx = _sid_to_ctx.pop(_get_sid(), None)
    if ctx and ctx.get('is_host') and ctx.get('game_pin') == game_pin:
        _owner_count[game_pin] = max(0, _owner_count.get(game_pin, 0) - 1)
        _end_session(current_app._get_current_object(), game_pin)


def handle_ping(data):
    emit('pong', data or {})

# ---- Host presence helpers ----

_sid_to_ctx: Dict[str, Dict[str, Any]] = {}
_owner_count: Dict[str, int] = {}
_end_deadline: Dict[str, float] = {}

def _get_sid() -> str:
    return request.sid  # type: ignore

def _end_session(app, game_pin: str) -> None:
    """Cancel the game if it is still running and tell the room it is over."""
    if has_app_context():
        _cancel_game(app, game_pin)
    else:
        with app.app_context():
            _cancel_game(app, game_pin)
    _owner_count.pop(game_pin, None)
    _end_deadline.pop(game_pin, None)

def _cancel_game(app, game_pin: str) -> None:
    game = Game.query.filter_by(game_pin=game_pin).first()
    if game and game.state not in TERMINAL_STATES:
        from livequiz.services.games.host import HostController
        try:
            HostController(game, app).cancel()
        except FailedPrecondition:
            # Ended by the host between the check and the cancel
            db.session.rollback()
        app.logger.info(f"[host-gone] game={game.id} pin={game_pin} state={game.state}")
    broadcast_session_ended(game_pin)

def _schedule_end_if_no_owner(app, game_pin: str, delay_sec: float) -> None:
    if _owner_count.get(game_pin, 0) > 0:
        return
    _end_deadline[game_pin] = time.time() + delay_sec

    def _runner(pin: str, deadline: float):
        sleep_for = max(0.0, deadline - time.time())
        if sleep_for:
            socketio.sleep(sleep_for)
        if _owner_count.get(pin, 0) == 0 and _end_deadline.get(pin) == deadline:
            _end_session(app, pin)

    socketio.start_background_task(_runner, game_pin, _end_deadline[game_pin])

def _cancel_scheduled_end(game_pin: str) -> None:
    _end_deadline.pop(game_pin, None)


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=NAMESPACE)
    socketio.on_event('join_game', handle_join_game, namespace=NAMESPACE)
    socketio.on_event('leave_game', handle_leave_game, namespace=NAMESPACE)
    socketio.on_event('ping', handle_ping, namespace=NAMESPACE)

    if testing:
        # Test-only mirror on default namespace
        socketio.on_event('connect', handle_connect, namespace='/')
        socketio.on_event('disconnect', handle_disconnect, namespace='/')
        socketio.on_event('join_game', handle_join_game, namespace='/')
        socketio.on_event('leave_game', handle_leave_game, namespace='/')
        socketio.on_event('ping', handle_ping, namespace='/')
