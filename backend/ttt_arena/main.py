from flask import Blueprint, current_app, jsonify

from ttt_arena.errors import InvalidRoomId

main = Blueprint('main', __name__)


def _coordinator():
    return current_app.extensions['ttt_arena']


@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the tic-tac-toe arena server!'})


@main.route('/health')
def health():
    coordinator = _coordinator()
    return jsonify({'status': 'ok', 'rooms': len(coordinator.registry), 'ruleset': coordinator.ruleset})


@main.route('/api/rooms/<string:room_id>', methods=['GET'])
def room_info(room_id):
    coordinator = _coordinator()
    registry = coordinator.registry
    with registry.lock:
        try:
            registry.validate_room_id(room_id)
        except InvalidRoomId as exc:
            return jsonify({'error': exc.message}), 400
        room = registry.get(room_id)
        if room is None:
            return jsonify({'error': 'Room not found'}), 404
        return jsonify(coordinator.state(room))
