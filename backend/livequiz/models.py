from livequiz import db, bcrypt
import json
import random
import secrets
import time

TERMINAL_STATES = ('ended', 'canceled')


def _loads(raw, default):
    if not raw:
        return default
    try:
        return json.loads(raw)
    except ValueError:
        return default


class Quiz(db.Model):
    __tablename__ = 'quiz'
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    created_at = db.Column(db.Float, default=time.time, nullable=False)
    questions = db.relationship('Question', back_populates='quiz', order_by='Question.position',
                                cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'questions': [q.to_dict() for q in self.questions],
        }


class Question(db.Model):
    __tablename__ = 'question'
    id = db.Column(db.Integer, primary_key=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey('quiz.id'), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)
    kind = db.Column(db.String(32), nullable=False)
    prompt = db.Column(db.Text, nullable=False, default='')
    time_limit = db.Column(db.Integer, nullable=False, default=20)
    params = db.Column(db.Text, nullable=True)  # JSON-encoded variant parameters
    quiz = db.relationship('Quiz', back_populates='questions')

    def to_dict(self):
        payload = {
            'id': self.id,
            'position': self.position,
            'type': self.kind,
            'prompt': self.prompt,
            'time_limit': self.time_limit,
        }
        payload.update(_loads(self.params, {}))
        return payload

    def to_variant(self):
        from livequiz.services.games.questions import question_from_dict
        return question_from_dict(self.to_dict())


def generate_game_pin(length=6):
    """Generate a numeric PIN not used by any other game."""
    while True:
        pin = ''.join(random.choices('0123456789', k=length))
        if not Game.query.filter_by(game_pin=pin).first():
            return pin


class Game(db.Model):
    __tablename__ = 'game'
    id = db.Column(db.Integer, primary_key=True)
    game_pin = db.Column(db.String(6), unique=True, index=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey('quiz.id'), nullable=False)
    state = db.Column(db.String(32), default='lobby', nullable=False)
    current_question_index = db.Column(db.Integer, default=0, nullable=False)
    question_start_time = db.Column(db.Float, nullable=True)
    # Bumped on every transition so clients can drop out-of-order snapshots
    revision = db.Column(db.Integer, default=0, nullable=False)
    host_key_hash = db.Column(db.String(128), nullable=True)
    results_error = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.Float, default=time.time, nullable=False)
    ended_at = db.Column(db.Float, nullable=True)
    quiz = db.relationship('Quiz')
    players = db.relationship('Player', back_populates='game', order_by='Player.id')

    def __init__(self, **kwargs):
        super(Game, self).__init__(**kwargs)
        if not self.game_pin:
            self.game_pin = generate_game_pin()

    @classmethod
    def lock(cls, game_id, shared=False):
        """Reload the game row under a row lock held until commit.

        Answers take the shared lock and host transitions the exclusive one,
        so the question index cannot move while an answer is being recorded.
        SQLite has no row locks and ignores this.
        """
        stmt = (
            db.select(cls)
            .where(cls.id == game_id)
            .with_for_update(read=shared)
            .execution_options(populate_existing=True)
        )
        return db.session.execute(stmt).scalar_one_or_none()

    def issue_host_key(self):
        """Create a fresh host key; only its hash is stored."""
        host_key = secrets.token_urlsafe(16)
        self.host_key_hash = bcrypt.generate_password_hash(host_key).decode('utf-8')
        return host_key

    def check_host_key(self, host_key):
        if not host_key or not self.host_key_hash:
            return False
        return bcrypt.check_password_hash(self.host_key_hash, host_key)

    @property
    def question_count(self):
        return len(self.quiz.questions) if self.quiz else 0

    @property
    def is_last_question(self):
        return self.current_question_index >= self.question_count - 1

    def current_question(self):
        questions = self.quiz.questions if self.quiz else []
        if 0 <= self.current_question_index < len(questions):
            return questions[self.current_question_index]
        return None

    def to_dict(self):
        question = self.current_question()
        return {
            'id': self.id,
            'game_pin': self.game_pin,
            'quiz_id': self.quiz_id,
            'state': self.state,
            'current_question_index': self.current_question_index,
            'question_count': self.question_count,
            'question_start_time': self.question_start_time,
            'revision': self.revision,
            'results_error': self.results_error,
            'current_question': question.to_dict() if question and self.state != 'lobby' else None,
        }


class Player(db.Model):
    __tablename__ = 'player'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False, index=True)
    score = db.Column(db.Integer, default=0, nullable=False)
    current_streak = db.Column(db.Integer, default=0, nullable=False)
    # When the current score was first reached; earlier wins ties
    score_reached_at = db.Column(db.Float, default=time.time, nullable=False)
    joined_at = db.Column(db.Float, default=time.time, nullable=False)
    game = db.relationship('Game', back_populates='players')
    answers = db.relationship('Answer', back_populates='player', order_by='Answer.question_index',
                              cascade='all, delete-orphan')

    def to_dict(self, include_answers=False):
        payload = {
            'id': self.id,
            'name': self.name,
            'game_id': self.game_id,
            'score': self.score,
            'current_streak': self.current_streak,
        }
        if include_answers:
            payload['answers'] = [a.to_dict() for a in self.answers]
        return payload


class Answer(db.Model):
    __tablename__ = 'answer'
    __table_args__ = (
        db.UniqueConstraint('player_id', 'question_index', name='uq_answer_player_question'),
    )
    id = db.Column(db.Integer, primary_key=True)
    player_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=False, index=True)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False, index=True)
    question_index = db.Column(db.Integer, nullable=False)
    kind = db.Column(db.String(32), nullable=False)
    selection = db.Column(db.Text, nullable=True)  # JSON-encoded response, null on timeout
    points = db.Column(db.Integer, default=0, nullable=False)
    is_correct = db.Column(db.Boolean, default=False, nullable=False)
    is_partially_correct = db.Column(db.Boolean, default=False, nullable=False)
    was_timeout = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.Float, default=time.time, nullable=False)
    player = db.relationship('Player', back_populates='answers')

    @property
    def selection_data(self):
        return _loads(self.selection, None)

    def selected_options(self):
        """Option indices this answer counts towards in the distribution."""
        data = self.selection_data or {}
        if data.get('answer_index') is not None and data['answer_index'] >= 0:
            return [data['answer_index']]
        return list(data.get('answer_indices') or [])

    def to_dict(self):
        return {
            'question_index': self.question_index,
            'type': self.kind,
            'selection': self.selection_data,
            'points': self.points,
            'is_correct': self.is_correct,
            'is_partially_correct': self.is_partially_correct,
            'was_timeout': self.was_timeout,
        }


class Leaderboard(db.Model):
    """Per-game aggregate; derived from Player and Answer rows, never authoritative."""
    __tablename__ = 'leaderboard'
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), primary_key=True)
    top_players = db.Column(db.Text, nullable=True)  # JSON list, score-ordered
    total_players = db.Column(db.Integer, default=0, nullable=False)
    total_answered = db.Column(db.Integer, default=0, nullable=False)
    answer_counts = db.Column(db.Text, nullable=True)  # JSON list, from the last recompute
    results_question_index = db.Column(db.Integer, nullable=True)
    player_ranks = db.Column(db.Text, nullable=True)
    player_streaks = db.Column(db.Text, nullable=True)
    last_updated = db.Column(db.Float, nullable=True)

    @property
    def top_players_data(self):
        return _loads(self.top_players, [])

    def to_dict(self, question_index=None, live_counts=None):
        static_counts = _loads(self.answer_counts, [])
        # Live counters until the question is finalised; the recomputed counts supersede them
        if question_index is not None and self.results_question_index == question_index:
            counts = static_counts
        else:
            counts = list(live_counts or [])
        return {
            'top_players': self.top_players_data,
            'total_players': self.total_players,
            'total_answered': self.total_answered,
            'answer_counts': counts,
            'results_question_index': self.results_question_index,
            'player_ranks': _loads(self.player_ranks, {}),
            'player_streaks': _loads(self.player_streaks, {}),
            'last_updated': self.last_updated,
        }


class LiveAnswerCount(db.Model):
    __tablename__ = 'live_answer_count'
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), primary_key=True)
    question_index = db.Column(db.Integer, primary_key=True)
    option_index = db.Column(db.Integer, primary_key=True)
    count = db.Column(db.Integer, default=0, nullable=False)
