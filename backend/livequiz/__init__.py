from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from sqlalchemy import event
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
migrate = Migrate()
allowed_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

def _serialize_sqlite_writes(engine):
    """File-backed SQLite has no row locks: every transaction takes the write lock up front."""
    if engine.dialect.name != 'sqlite' or engine.url.database in (None, '', ':memory:'):
        return

    @event.listens_for(engine, 'connect')
    def _no_implicit_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, 'begin')
    def _begin_immediate(conn):
        conn.exec_driver_sql('BEGIN IMMEDIATE')


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    migrate.init_app(flask_app, db)
    with flask_app.app_context():
        _serialize_sqlite_writes(db.engine)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from livequiz.main import main
    flask_app.register_blueprint(main)

    from livequiz.api.quizzes import quizzes
    flask_app.register_blueprint(quizzes, url_prefix='/api/quizzes')

    from livequiz.api.games import games
    flask_app.register_blueprint(games, url_prefix='/api/games')

    from livequiz.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database with a demo quiz."""
        from livequiz.services.quizzes import create_quiz, DEMO_QUIZ
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            quiz = create_quiz(DEMO_QUIZ['title'], DEMO_QUIZ['questions'])
            print(f'Database has been reset and seeded! Demo quiz id={quiz.id}')

    @click.command('cleanup-games')
    @click.option('--days', type=int, default=None, help='Retention window in days.')
    def cleanup_games_command(days):
        """Deletes games (with players, answers and aggregates) older than the retention window."""
        from livequiz.services.games.cleanup import cleanup_old_games
        with flask_app.app_context():
            retention = days if days is not None else flask_app.config.get('GAME_RETENTION_DAYS', 30)
            deleted = cleanup_old_games(retention)
            print(f'Deleted {deleted} game(s) older than {retention} day(s)')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(cleanup_games_command)

    return flask_app
