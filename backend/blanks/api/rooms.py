from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user
from blanks.cards import get_catalog, parse_custom_set
from blanks.services.game import mutators, store
from blanks.services.game.errors import GameError, InvalidPayload

rooms = Blueprint('rooms', __name__)

MAX_NAME_LENGTH = 32


@rooms.errorhandler(GameError)
def handle_game_error(exc):
    return jsonify(exc.to_dict()), exc.status_code


def _clean_name(raw) -> str:
    name = (raw or '').strip() if isinstance(raw, str) else ''
    if not name or len(name) > MAX_NAME_LENGTH:
        raise InvalidPayload(f'Name must be 1-{MAX_NAME_LENGTH} characters')
    if '<' in name or '>' in name or any(ord(ch) < 32 for ch in name):
        raise InvalidPayload('Name contains invalid characters')
    return name


def _card_list(raw, field):
    if not isinstance(raw, list) or not all(isinstance(c, str) for c in raw):
        raise InvalidPayload(f'{field} must be a list of strings')
    return raw


def _state(code):
    room = store.require_room(code)
    return room.to_dict(viewer_id=current_user.id, players=store.get_players(room))


@rooms.route('', methods=['POST'])
@login_required
def create_room():
    """
    Creates a new lobby with the caller as host and only player.
    """
    data = request.get_json(silent=True) or {}
    name = _clean_name(data.get('name'))
    room = mutators.create_room(current_user.id, name, data.get('config'))
    return jsonify({
        'message': 'New room created!',
        'room_code': room.code,
        'room': _state(room.code),
    }), 201


@rooms.route('/<string:room_code>/state', methods=['GET'])
@login_required
def get_room_state(room_code):
    return jsonify(_state(room_code))


@rooms.route('/<string:room_code>/join', methods=['POST'])
@login_required
def join_room(room_code):
    data = request.get_json(silent=True) or {}
    name = _clean_name(data.get('name'))
    player = mutators.join_room(room_code, current_user.id, name)
    return jsonify(player.to_dict(include_hand=True)), 200


@rooms.route('/<string:room_code>/config', methods=['PATCH'])
@login_required
def update_config(room_code):
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidPayload()
    config = mutators.update_room_config(room_code, current_user.id, data)
    return jsonify(config.to_dict())


@rooms.route('/<string:room_code>/start', methods=['POST'])
@login_required
def start_game(room_code):
    """
    Builds the deck from the room's selected card sets plus any custom sets
    uploaded with the request, then deals the first round.
    """
    data = request.get_json(silent=True) or {}
    raw_custom = data.get('custom_sets') or []
    if not isinstance(raw_custom, list):
        raise InvalidPayload('custom_sets must be a list')
    custom_sets = []
    for i, raw in enumerate(raw_custom):
        card_set = parse_custom_set(raw, name=f'Custom {i + 1}')
        if card_set is None:
            raise InvalidPayload('Unreadable custom card set')
        custom_sets.append(card_set)

    started = mutators.start_game(room_code, get_catalog().values(), actor_id=current_user.id, custom_sets=custom_sets)
    payload = _state(room_code)
    payload['started'] = started
    return jsonify(payload)


@rooms.route('/<string:room_code>/submit', methods=['POST'])
@login_required
def submit_cards(room_code):
    data = request.get_json(silent=True) or {}
    cards = _card_list(data.get('cards'), 'cards')
    submission_id = mutators.submit_cards(room_code, current_user.id, cards)
    # The last submission opens the reveal; losing that race to another
    # client is fine since the transition is idempotent.
    revealed = mutators.advance_to_reveal(room_code)
    return jsonify({'submission_id': submission_id, 'revealed': revealed}), 201


@rooms.route('/<string:room_code>/reveal', methods=['POST'])
@login_required
def advance_to_reveal(room_code):
    moved = mutators.advance_to_reveal(room_code)
    payload = _state(room_code)
    payload['advanced'] = moved
    return jsonify(payload)


@rooms.route('/<string:room_code>/verdict', methods=['POST'])
@login_required
def advance_to_verdict(room_code):
    moved = mutators.advance_to_verdict(room_code, actor_id=current_user.id)
    payload = _state(room_code)
    payload['advanced'] = moved
    return jsonify(payload)


@rooms.route('/<string:room_code>/winners', methods=['POST'])
@login_required
def pick_winners(room_code):
    data = request.get_json(silent=True) or {}
    submission_ids = _card_list(data.get('submission_ids'), 'submission_ids')
    winner_ids = mutators.pick_winners(room_code, submission_ids, actor_id=current_user.id)
    payload = _state(room_code)
    payload['winners'] = winner_ids
    return jsonify(payload)


@rooms.route('/<string:room_code>/next', methods=['POST'])
@login_required
def next_round(room_code):
    moved = mutators.next_round(room_code, actor_id=current_user.id)
    payload = _state(room_code)
    payload['advanced'] = moved
    return jsonify(payload)


@rooms.route('/<string:room_code>/leave', methods=['POST'])
@login_required
def leave_room(room_code):
    left = mutators.leave_room(room_code, current_user.id)
    # Whoever left may have been the last player the round was waiting on
    if store.get_room(room_code) is not None:
        mutators.advance_to_reveal(room_code)
    return jsonify({'message': 'You have left the room.', 'left': left}), 200
