from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
from datetime import datetime, timedelta, timezone
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
socketio = SocketIO(async_mode=None)


def _allowed_origins(config):
    raw = config.get('CLIENT_URL') or ''
    return [origin.strip() for origin in raw.split(',') if origin.strip()]


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    allowed_origins = _allowed_origins(flask_app.config) or '*'

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # In-memory relay authority; one per app so tests start clean
    from wavy.services.rooms import RoomLifecycle
    from wavy.services.rooms.race import RaceSettings
    flask_app.extensions['wavy'] = RoomLifecycle(
        settings=RaceSettings.from_config(flask_app.config),
        id_attempts=int(flask_app.config.get('ROOM_ID_ATTEMPTS', 5)),
    )

    # Import and register blueprints here
    from wavy.main import main
    flask_app.register_blueprint(main)

    from wavy.api.rooms import rooms, typing
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')
    flask_app.register_blueprint(typing, url_prefix='/api/typing')

    from wavy.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    @click.command('prune-rooms')
    @click.option('--hours', type=int, default=None, help='Minimum age of an empty room, in hours.')
    def prune_rooms_command(hours):
        """Deletes empty canvas rooms older than the given age."""
        from wavy.services.rooms.store import RoomStore
        age = hours if hours is not None else int(flask_app.config.get('STALE_ROOM_HOURS', 24))
        cutoff = datetime.now(timezone.utc) - timedelta(hours=age)
        store = RoomStore()
        with flask_app.app_context():
            stale = store.find_stale(cutoff)
            for room in stale:
                store.delete_by_id(room.room_id)
                flask_app.logger.info(f"[prune] room={room.room_id} created_at={room.created_at}")
            click.echo(f'Pruned {len(stale)} room(s)')

    flask_app.cli.add_command(prune_rooms_command)

    return flask_app
