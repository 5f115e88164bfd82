from flask_socketio import join_room, leave_room, emit
from flask_login import current_user
from blanks.services.game import store


def _channel(room_code: str) -> str:
    return f"room:{store.normalize_code(room_code)}"


def _viewer_id():
    try:
        return current_user.id if current_user.is_authenticated else None
    except AttributeError:
        return None


def handle_connect(auth=None):
    emit('connected', {'message': 'Connected to /ws'})


def handle_subscribe(data):
    """Join the room's channel and push the current state for this viewer.

    After this the client receives ``state_update`` for every committed
    change and re-fetches ``/api/rooms/<code>/state``.
    """
    room_code = store.normalize_code((data or {}).get('room_code'))
    if not room_code:
        emit('error', {'message': 'room_code is required'})
        return
    channel = _channel(room_code)
    join_room(channel)
    emit('subscribed', {'room': channel})
    room = store.get_room(room_code)
    if room is None:
        emit('error', {'message': 'Room not found', 'room_code': room_code})
        return
    emit('room_state', room.to_dict(viewer_id=_viewer_id(), players=store.get_players(room)))


def handle_unsubscribe(data):
    room_code = store.normalize_code((data or {}).get('room_code'))
    if not room_code:
        emit('error', {'message': 'room_code is required'})
        return
    channel = _channel(room_code)
    leave_room(channel)
    emit('unsubscribed', {'room': channel})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    from blanks import socketio

    namespaces = ['/ws', '/'] if testing else ['/ws']
    for namespace in namespaces:
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('subscribe', handle_subscribe, namespace=namespace)
        socketio.on_event('unsubscribe', handle_unsubscribe, namespace=namespace)
        socketio.on_event('ping', handle_ping, namespace=namespace)
