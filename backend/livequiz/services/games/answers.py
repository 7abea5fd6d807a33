import json
import time

from flask import current_app
from sqlalchemy import and_, or_, update
from sqlalchemy.exc import IntegrityError

from livequiz import db
from livequiz.models import Answer, Game, Player
from .errors import NotFound, QuestionClosed
from .leaderboard import record_live_answer
from .questions import QuestionVariant
from .scoring import Submission, calculate_streak, score_answer


def question_is_open(game: Game, question_index: int, question: QuestionVariant, now: float = None) -> bool:
    """Answers are taken for the current question until its timer plus grace runs out.

    The results screen does not close the window by itself: last-second
    answers still land and are picked up by the final recompute.
    """
    if game.state not in ('question', 'leaderboard'):
        return False
    if game.current_question_index != question_index:
        return False
    if game.question_start_time is None:
        return True
    grace = float(current_app.config.get('QUESTION_GRACE_PERIOD_SEC', 2))
    now = time.time() if now is None else now
    return now <= game.question_start_time + question.time_limit + grace


def _result(player: Player, answer: Answer, **extra) -> dict:
    payload = {
        'points': answer.points,
        'new_score': player.score,
        'is_correct': answer.is_correct,
        'is_partially_correct': answer.is_partially_correct,
        'was_timeout': answer.was_timeout,
        'current_streak': player.current_streak,
        'accepted': True,
        'duplicate': False,
    }
    payload.update(extra)
    return payload


def _rank(game: Game, player: Player):
    higher = Player.query.filter(
        Player.game_id == game.id,
        or_(
            Player.score > player.score,
            and_(Player.score == player.score, Player.score_reached_at < player.score_reached_at),
            and_(Player.score == player.score, Player.score_reached_at == player.score_reached_at,
                 Player.id < player.id),
        ),
    ).count()
    total = Player.query.filter_by(game_id=game.id).count()
    return higher + 1, total


def submit_answer(game: Game, player_id: int, question_index: int, submission: Submission,
                  question: QuestionVariant) -> dict:
    """Score and record one answer, then fold it into the live leaderboard.

    At most one answer per player and question is stored; repeats return
    the recorded result without writing. A timeout that arrives after the
    question closed is a no-op; a real answer that late is rejected.
    """
    # Held until commit; the host cannot advance past this question meanwhile
    if Game.lock(game.id, shared=True) is None:
        raise NotFound('Game not found')

    player =Player.query.filter_by(id=player_id, game_id=game.id).first()
    if not player:
        raise NotFound('Player not found')

    existing = Answer.query.filter_by(player_id=player.id, question_index=question_index).first()
    if existing:
        current_app.logger.info(f"[submit-duplicate] game={game.id} player={player.id} question={question_index}")
        rank, total = _rank(game, player)
        return _result(player, existing, accepted=False, duplicate=True, rank=rank, total_players=total)

    if not question_is_open(game, question_index, question):
        if submission.timed_out:
            current_app.logger.info(f"[submit-late-timeout] game={game.id} player={player.id} question={question_index}")
            rank, total = _rank(game, player)
            return {
                'points': 0,
                'new_score': player.score,
                'is_correct': False,
                'is_partially_correct': False,
                'was_timeout': True,
                'current_streak': player.current_streak,
                'accepted': False,
                'duplicate': False,
                'rank': rank,
                'total_players': total,
            }
        raise QuestionClosed('This question is no longer accepting answers')

    result = score_answer(question, submission)
    now = time.time()
    selection = submission.selection()
    answer = Answer(
        player_id=player.id,
        game_id=game.id,
        question_index=question_index,
        kind=question.kind,
        selection=json.dumps(selection) if selection is not None else None,
        points=result.points,
        is_correct=result.is_correct,
        is_partially_correct=result.is_partially_correct,
        was_timeout=submission.timed_out,
        created_at=now,
    )
    try:
        with db.session.begin_nested():
            db.session.add(answer)
    except IntegrityError:
        # A concurrent copy of this submission got in first
        existing = Answer.query.filter_by(player_id=player.id, question_index=question_index).first()
        db.session.refresh(player)
        rank, total = _rank(game, player)
        return _result(player, existing, accepted=False, duplicate=True, rank=rank, total_players=total)

    values = {
        'score': Player.score + result.points,
        'current_streak': calculate_streak(question.kind, result.is_correct, Player.current_streak),
    }
    if result.points > 0:
        values['score_reached_at'] = now
    db.session.execute(
        update(Player)
        .where(Player.id == player.id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db.session.refresh(player)

    record_live_answer(game, player, answer)
    rank, total = _rank(game, player)
    db.session.commit()

    current_app.logger.info(
        f"[submit] game={game.id} player={player.id} question={question_index} type={question.kind} "
        f"points={answer.points} score={player.score} timeout={answer.was_timeout}"
    )
    return _result(player, answer, rank=rank, total_players=total)
