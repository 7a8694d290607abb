import logging

from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO
from ttt_arena.config import Config

socketio = SocketIO(async_mode=None)


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(getattr(logging, str(flask_app.config.get('LOG_LEVEL', 'INFO')), logging.INFO))

    origins = flask_app.config.get('CORS_ORIGINS') or ['*']
    allowed_origins = '*' if '*' in origins else origins
    CORS(flask_app, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from ttt_arena.main import main
    flask_app.register_blueprint(main)

    # Room services live for the whole process; handlers and routes reach them
    # through app.extensions
    from ttt_arena.socketio_events import build_coordinator, register_socketio_handlers
    coordinator = build_coordinator(flask_app, socketio)
    flask_app.extensions['ttt_arena'] = coordinator
    register_socketio_handlers(socketio, coordinator)
    flask_app.logger.info(
        f"[startup] ruleset={coordinator.ruleset} symbol_cap={coordinator.registry.symbol_cap} "
        f"namespace={coordinator.namespace}"
    )

    return flask_app
