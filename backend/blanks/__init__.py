from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from blanks.config import Config, ROOM_CODE_MAX_LENGTH

db = SQLAlchemy()
login_manager = LoginManager()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    code_length = flask_app.config.get('ROOM_CODE_LENGTH', 5)
    if not 1 <= code_length <= ROOM_CODE_MAX_LENGTH:
        raise ValueError(f'ROOM_CODE_LENGTH must be between 1 and {ROOM_CODE_MAX_LENGTH}')

    db.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from blanks.main import main
    flask_app.register_blueprint(main, url_prefix='/api')

    from blanks.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')

    from blanks.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    # Anonymous identities stand in for the external identity provider
    from blanks.models import Identity

    @login_manager.user_loader
    def load_user(identity_id):
        return db.session.get(Identity, identity_id)

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'Sign in before joining a room', 'code': 'unauthorized'}), 401

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates every table."""
        import blanks.models  # noqa: F401
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
