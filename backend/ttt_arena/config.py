import os


def _env_int_from(environ, name, default):
    try:
        return int(environ.get(name, default))
    except (TypeError, ValueError):
        return default


def _env_int(name, default):
    return _env_int_from(os.environ, name, default)


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    CORS_ORIGINS = [o.strip() for o in os.environ.get('CORS_ORIGINS', '*').split(',') if o.strip()]
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').strip().upper()
    # 'standard' (timers, rate limit, rematch, no undo) or 'classic' (undo, no turn timer)
    RULESET = os.environ.get('RULESET', 'standard').strip().lower()
    # Game rules
    MAX_SYMBOLS_PER_ROLE = _env_int('MAX_SYMBOLS_PER_ROLE', 3)
    # Turn and room timers (milliseconds)
    MOVE_TIMEOUT_MS = _env_int('MOVE_TIMEOUT_MS', 30000)
    ROOM_EXPIRY_MS = _env_int('ROOM_EXPIRY_MS', 3600000)
    # Room ids and member input
    MAX_ROOM_ID_LENGTH = _env_int('MAX_ROOM_ID_LENGTH', 50)
    MAX_DISPLAY_NAME_LENGTH = _env_int('MAX_DISPLAY_NAME_LENGTH', 32)
    MAX_CHAT_LENGTH = _env_int('MAX_CHAT_LENGTH', 200)
    # Per-connection action throttle
    RATE_LIMIT_WINDOW_MS = _env_int('RATE_LIMIT_WINDOW_MS', 1000)
    MAX_ACTIONS_PER_WINDOW = _env_int('MAX_ACTIONS_PER_WINDOW', 5)
    # Socket.IO namespace the game events live on
    SOCKETIO_NAMESPACE = os.environ.get('SOCKETIO_NAMESPACE', '/')
    # Timers spawn background tasks unless TESTING is set without this flag
    ENABLE_TIMERS_IN_TESTS = False


def server_options(environ=os.environ):
    """Keyword arguments for ``socketio.run`` in the dev entry point."""
    debug = environ.get('FLASK_DEBUG') == '1'
    return {
        'host': environ.get('HOST', '0.0.0.0'),
        'port': _env_int_from(environ, 'PORT', 3000),
        'debug': debug,
        # outside debug, serve with eventlet or gevent instead of Werkzeug
        'allow_unsafe_werkzeug': debug,
    }
