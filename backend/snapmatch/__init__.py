from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
from datetime import datetime, timedelta
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
allowed_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from snapmatch.main import main
    flask_app.register_blueprint(main)

    from snapmatch.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')

    from snapmatch.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    # Player identity: session cookie after create/join/reconnect, or
    # X-Player-Id / X-Session-Token headers for stateless clients
    from snapmatch.models import Player

    @login_manager.user_loader
    def load_player(player_id):
        return db.session.get(Player, int(player_id))

    @login_manager.request_loader
    def load_player_from_headers(request):
        player_id = request.headers.get('X-Player-Id')
        token = request.headers.get('X-Session-Token')
        if not (player_id and token):
            return None
        try:
            player = db.session.get(Player, int(player_id))
        except ValueError:
            return None
        if player and player.check_session_token(token):
            return player
        return None

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'No session found. Please rejoin the room.'}), 401

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates the database tables."""
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    @click.command('purge-rooms')
    @click.option('--days', default=1, show_default=True, help='Delete rooms created more than this many days ago.')
    @click.option('--include-active', is_flag=True, help='Also delete rooms whose game is still in progress.')
    def purge_rooms_command(days, include_active):
        """Deletes waiting and finished rooms together with their players and entries."""
        from snapmatch.services.rooms.lobby import purge_stale_rooms
        cutoff = datetime.utcnow() - timedelta(days=days)
        with flask_app.app_context():
            codes = purge_stale_rooms(cutoff, include_active=include_active)
            print(f'Purged {len(codes)} rooms.')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(purge_rooms_command)

    return flask_app
