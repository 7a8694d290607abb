from ttt_arena import create_app, socketio
from ttt_arena.config import server_options

app = create_app()

if __name__ == '__main__':
    # Use SocketIO server to enable websockets in dev
    socketio.run(app, **server_options())
