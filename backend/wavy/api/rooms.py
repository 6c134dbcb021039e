from flask import Blueprint, current_app, jsonify, request

from wavy.services.rooms import ConflictError, NotFoundError, StoreError, ValidationError
from wavy.services.rooms.ids import normalize_room_id

rooms = Blueprint('rooms', __name__)
typing = Blueprint('typing', __name__)


def _relay():
    return current_app.extensions['wavy']


@rooms.route('/create', methods=['POST'])
def create_room():
    try:
        room = _relay().create_canvas_room()
    except (ConflictError, StoreError) as exc:
        current_app.logger.warning(f"[canvas-create] failed: {exc.message}")
        return jsonify({'error': 'Failed to create room'}), 500
    current_app.logger.info(f"[canvas-create] room={room.room_id}")
    return jsonify({'roomId': room.room_id}), 201


@rooms.route('/<string:room_id>', methods=['GET'])
def get_room(room_id):
    room_id = normalize_room_id(room_id)
    if not room_id:
        return jsonify({'error': 'Room ID is required'}), 400
    try:
        room = _relay().store.find_by_id(room_id)
    except StoreError as exc:
        return jsonify({'error': exc.message}), 500
    if not room:
        return jsonify({'error': 'Room not found'}), 404
    return jsonify(room.to_dict())


@typing.route('/create-room', methods=['POST'])
def create_typing_room():
    data = request.get_json(silent=True) or {}
    rounds = data.get('rounds')
    if rounds is not None and not isinstance(rounds, list):
        return jsonify({'error': 'rounds must be a list of prompts'}), 400
    try:
        room = _relay().create_typing_room(rounds)
    except ConflictError as exc:
        return jsonify({'error': exc.message}), 500
    current_app.logger.info(f"[typing-create] room={room.room_id} rounds={room.total_rounds}")
    payload = room.to_dict()
    payload.pop('createdAt', None)
    payload.pop('participantCount', None)
    return jsonify(payload), 201


@typing.route('/<string:room_id>', methods=['GET'])
def get_typing_room(room_id):
    try:
        room = _relay().get_typing_room(room_id)
    except ValidationError as exc:
        return jsonify({'error': exc.message}), 400
    except NotFoundError as exc:
        return jsonify({'error': exc.message}), 404
    return jsonify(room.to_dict())
