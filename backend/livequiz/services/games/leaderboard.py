"""Leaderboard aggregate maintenance.

Two write paths touch the per-game ``Leaderboard`` row:

- the live path, run for every answer: atomic ``+1`` updates on the
  answered counter and the per-option ``LiveAnswerCount`` rows, plus a merge
  of the submitting player into the bounded top-N list under a row lock;
- the results compute, run by the host when a question ends: a full,
  idempotent rebuild from Player and Answer rows that supersedes whatever
  the live path accumulated.

Ranking order: score descending, then whoever reached that score first,
then player id.
"""

import json
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List

from flask import current_app, has_app_context
from sqlalchemy import select, update, delete
from sqlalchemy.exc import IntegrityError

from livequiz import db
from livequiz.models import Answer, Game, Leaderboard, LiveAnswerCount, Player
from .errors import NotFound
from .events import broadcast_leaderboard, broadcast_results_failed
from .questions import SCORED_KINDS


@dataclass
class QuestionResults:
    question_index: int
    top_players: List[dict] = field(default_factory=list)
    total_players: int = 0
    total_answered: int = 0
    answer_counts: List[int] = field(default_factory=list)
    player_ranks: Dict[str, dict] = field(default_factory=dict)
    player_streaks: Dict[str, int] = field(default_factory=dict)


def ranking_key(entry: dict):
    return (-entry['score'], entry.get('reached_at') or 0.0, entry['id'])


def leaderboard_size() -> int:
    if has_app_context():
        return int(current_app.config.get('LEADERBOARD_SIZE', 20))
    return 20


def _player_entry(player: Player, last_question_points: int) -> dict:
    return {
        'id': player.id,
        'name': player.name,
        'score': player.score,
        'current_streak': player.current_streak,
        'last_question_points': last_question_points,
        'reached_at': player.score_reached_at,
    }


def merge_top_players(entries: List[dict], entry: dict, size: int) -> List[dict]:
    """Insert or replace ``entry`` and keep the ``size`` best, ranked."""
    merged = [e for e in entries if e['id'] != entry['id']]
    merged.append(entry)
    merged.sort(key=ranking_key)
    return merged[:size]


def ensure_leaderboard(game_id: int) -> Leaderboard:
    leaderboard = db.session.get(Leaderboard, game_id)
    if leaderboard is not None:
        return leaderboard
    try:
        with db.session.begin_nested():
            leaderboard = Leaderboard(game_id=game_id, total_players=0, total_answered=0)
            db.session.add(leaderboard)
    except IntegrityError:
        # Another submission created it first
        leaderboard = db.session.get(Leaderboard, game_id, populate_existing=True)
    return leaderboard


def _lock_leaderboard(game_id: int) -> Leaderboard:
    ensure_leaderboard(game_id)
    stmt = (
        select(Leaderboard)
        .where(Leaderboard.game_id == game_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return db.session.execute(stmt).scalar_one()


def _increment_live_count(game_id: int, question_index: int, option_index: int) -> None:
    stmt = (
        update(LiveAnswerCount)
        .where(
            LiveAnswerCount.game_id == game_id,
            LiveAnswerCount.question_index == question_index,
            LiveAnswerCount.option_index == option_index,
        )
        .values(count=LiveAnswerCount.count + 1)
        .execution_options(synchronize_session=False)
    )
    if db.session.execute(stmt).rowcount:
        return
    try:
        with db.session.begin_nested():
            db.session.add(LiveAnswerCount(game_id=game_id, question_index=question_index,
                                           option_index=option_index, count=1))
    except IntegrityError:
        # Lost the race to create the counter row; it exists now
        db.session.execute(stmt)


def record_live_answer(game: Game, player: Player, answer: Answer) -> None:
    """Fold one accepted answer into the live aggregate. Caller commits."""
    leaderboard = _lock_leaderboard(game.id)

    # Only the question the game is on feeds the live counters
    if not answer.was_timeout and answer.question_index == game.current_question_index:
        db.session.execute(
            update(Leaderboard)
            .where(Leaderboard.game_id == game.id)
            .values(total_answered=Leaderboard.total_answered + 1)
            .execution_options(synchronize_session=False)
        )
        for option_index in answer.selected_options():
            _increment_live_count(game.id, answer.question_index, option_index)

    entries = merge_top_players(leaderboard.top_players_data, _player_entry(player, answer.points),
                                leaderboard_size())
    leaderboard.top_players = json.dumps(entries)
    leaderboard.total_players = Player.query.filter_by(game_id=game.id).count()
    leaderboard.last_updated = time.time()


def live_answer_counts(game_id: int, question_index: int) -> List[int]:
    rows = LiveAnswerCount.query.filter_by(game_id=game_id, question_index=question_index).all()
    if not rows:
        return []
    counts = [0] * (max(r.option_index for r in rows) + 1)
    for row in rows:
        counts[row.option_index] = row.count
    return counts


def reset_for_next_question(game: Game) -> bool:
    """Clear the per-question live counters. Caller commits.

    A game whose first question got no answers has no aggregate yet;
    there is nothing to reset.
    """
    leaderboard = db.session.get(Leaderboard, game.id)
    if leaderboard is None:
        current_app.logger.info(f"[reset-skip] game={game.id} no aggregate yet")
        return False
    db.session.execute(
        update(Leaderboard)
        .where(Leaderboard.game_id == game.id)
        .values(answer_counts=None, total_answered=0, results_question_index=None)
    )
    db.session.execute(
        delete(LiveAnswerCount)
        .where(LiveAnswerCount.game_id == game.id)
        .execution_options(synchronize_session=False)
    )
    current_app.logger.info(f"[reset] game={game.id} cleared live counts before question {game.current_question_index + 1}")
    return True


def leaderboard_snapshot(game: Game) -> dict:
    leaderboard = db.session.get(Leaderboard, game.id)
    if leaderboard is None:
        return {
            'top_players': [],
            'total_players': Player.query.filter_by(game_id=game.id).count(),
            'total_answered': 0,
            'answer_counts': [],
            'results_question_index': None,
            'player_ranks': {},
            'player_streaks': {},
            'last_updated': None,
        }
    return leaderboard.to_dict(
        question_index=game.current_question_index,
        live_counts=live_answer_counts(game.id, game.current_question_index),
    )


def compute_question_results(game_id: int, question_index: int) -> QuestionResults:
    """Rebuild the aggregate for ``question_index`` from player and answer records.

    Scores are reconciled to the sum of recorded points and streaks are
    replayed from the full answer history, so running this any number of
    times over the same records writes the same aggregate.
    """
    game = db.session.get(Game, game_id)
    if game is None:
        raise NotFound('Game not found')

    kinds = [q.kind for q in game.quiz.questions]
    players = Player.query.filter_by(game_id=game_id).all()
    answers_by_player = defaultdict(dict)
    for answer in Answer.query.filter_by(game_id=game_id).all():
        answers_by_player[answer.player_id][answer.question_index] = answer

    answer_counts: List[int] = []
    total_answered = 0
    entries = []
    streaks: Dict[str, int] = {}

    for player in players:
        history = answers_by_player.get(player.id, {})

        score = sum(a.points for a in history.values())
        scoring_times = [a.created_at for a in history.values() if a.points > 0]
        reached_at = max(scoring_times) if scoring_times else player.joined_at

        streak = 0
        for idx in range(min(question_index + 1, len(kinds))):
            if kinds[idx] not in SCORED_KINDS:
                continue
            answer = history.get(idx)
            streak = streak + 1 if answer is not None and answer.is_correct else 0

        current = history.get(question_index)
        if current is not None and not current.was_timeout:
            total_answered += 1
            for option_index in current.selected_options():
                while len(answer_counts) <= option_index:
                    answer_counts.append(0)
                answer_counts[option_index] += 1

        player.score = score
        player.current_streak = streak
        player.score_reached_at = reached_at
        streaks[str(player.id)] = streak
        entries.append({
            'id': player.id,
            'name': player.name,
            'score': score,
            'current_streak': streak,
            'last_question_points': current.points if current is not None else 0,
            'reached_at': reached_at,
        })

    entries.sort(key=ranking_key)
    ranks = {str(e['id']): {'rank': i + 1, 'total_players': len(entries)} for i, e in enumerate(entries)}
    results = QuestionResults(
        question_index=question_index,
        top_players=entries[:leaderboard_size()],
        total_players=len(entries),
        total_answered=total_answered,
        answer_counts=answer_counts,
        player_ranks=ranks,
        player_streaks=streaks,
    )

    leaderboard = _lock_leaderboard(game_id)
    leaderboard.top_players = json.dumps(results.top_players)
    leaderboard.total_players = results.total_players
    leaderboard.total_answered = results.total_answered
    leaderboard.answer_counts = json.dumps(results.answer_counts)
    leaderboard.results_question_index = question_index
    leaderboard.player_ranks = json.dumps(results.player_ranks)
    leaderboard.player_streaks = json.dumps(results.player_streaks)
    leaderboard.last_updated = time.time()
    db.session.commit()
    return results


def run_question_results(app, game_id: int, question_index: int) -> bool:
    """Compute results without letting a failure escape to the caller.

    Used for the host's question -> leaderboard and final transitions: on
    failure the error is logged, stored on the game and pushed to clients,
    and the live data stays visible until a retry succeeds.
    """
    if has_app_context():
        return _run_question_results(app, game_id, question_index)
    with app.app_context():
        return _run_question_results(app, game_id, question_index)


def _run_question_results(app, game_id: int, question_index: int) -> bool:
    try:
        results = compute_question_results(game_id, question_index)
    except Exception as exc:
        db.session.rollback()
        app.logger.warning(f"[results-failed] game={game_id} question={question_index} error={exc!r}")
        game = db.session.get(Game, game_id)
        if game is not None:
            game.results_error = 'Failed to compute accurate results'
            db.session.commit()
            broadcast_results_failed(game, question_index, game.results_error)
        return False

    game = db.session.get(Game, game_id)
    if game.results_error:
        game.results_error = None
        db.session.commit()
    app.logger.info(
        f"[results] game={game_id} question={question_index} players={results.total_players} answered={results.total_answered}"
    )
    broadcast_leaderboard(game, leaderboard_snapshot(game))
    return True
