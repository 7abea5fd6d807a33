import time

from flask import current_app

from livequiz import db
from livequiz.models import Answer, Game, Leaderboard, LiveAnswerCount, Player


def delete_game(game: Game) -> None:
    """Delete a game together with its players, answers and aggregates. Caller commits."""
    LiveAnswerCount.query.filter_by(game_id=game.id).delete()
    Leaderboard.query.filter_by(game_id=game.id).delete()
    Answer.query.filter_by(game_id=game.id).delete()
    Player.query.filter_by(game_id=game.id).delete()
    db.session.delete(game)


def cleanup_old_games(retention_days: int, now: float = None) -> int:
    now = time.time() if now is None else now
    cutoff = now - retention_days * 24 * 60 * 60
    old_games = Game.query.filter(Game.created_at < cutoff).all()
    for game in old_games:
        delete_game(game)
    db.session.commit()
    current_app.logger.info(f"[cleanup] deleted {len(old_games)} game(s) created before {cutoff:.0f}")
    return len(old_games)
