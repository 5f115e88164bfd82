"""Addressing and transactions for the room aggregate (Room + Players + Deck).

``run_transaction`` is the only way the game writes. Every row carries a
version column, so a commit whose reads were overtaken by another writer
fails with ``StaleDataError`` and the work function is run again from
scratch against fresh rows. Mutators that change anything also write the
Room row, which makes the Room version the guard for the whole aggregate.
"""

from datetime import datetime, timezone
from typing import List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from blanks import db, socketio
from blanks.models import Deck, Player, Room
from .errors import RoomNotFound, TransactionConflict


def normalize_code(room_code) -> str:
    return str(room_code or '').strip().upper()


def get_room(room_code) -> Optional[Room]:
    code = normalize_code(room_code)
    if not code:
        return None
    return Room.query.filter_by(code=code).first()


def require_room(room_code) -> Room:
    room = get_room(room_code)
    if room is None:
        raise RoomNotFound()
    return room


def get_player(room: Room, player_id) -> Optional[Player]:
    if not player_id:
        return None
    return db.session.get(Player, (room.id, str(player_id)))


def get_players(room: Room) -> List[Player]:
    return Player.query.filter_by(room_id=room.id).order_by(Player.order_index).all()


def get_deck(room: Room) -> Optional[Deck]:
    return db.session.get(Deck, room.id)


def touch(room: Room) -> None:
    """Force a write (and version bump) on the room row."""
    room.updated_at = datetime.now(timezone.utc).replace(tzinfo=None)


def _log_retry(work, attempt, max_attempts, exc):
    current_app.logger.info(
        f"[tx-retry] work={getattr(work, '__name__', work)} attempt={attempt}/{max_attempts} error={exc.__class__.__name__}"
    )


def run_transaction(work, *args, **kwargs):
    """Run ``work`` and commit it atomically, retrying on write conflicts.

    ``work`` must derive everything from rows it reads itself; it may be
    executed several times. Game errors roll back and propagate untouched.
    Version conflicts that never settle raise ``TransactionConflict``; an
    ``IntegrityError`` that survives every attempt is re-raised as is.
    """
    max_attempts = int(current_app.config.get('TRANSACTION_MAX_ATTEMPTS', 5))
    for attempt in range(1, max_attempts + 1):
        db.session.expire_all()
        try:
            result = work(*args, **kwargs)
            db.session.commit()
            return result
        except StaleDataError as exc:
            db.session.rollback()
            _log_retry(work, attempt, max_attempts, exc)
        except IntegrityError as exc:
            db.session.rollback()
            if attempt == max_attempts:
                # Still failing against fresh reads: a broken write, not a race
                current_app.logger.warning(
                    f"[tx-failed] work={getattr(work, '__name__', work)} error={exc.orig}"
                )
                raise
            _log_retry(work, attempt, max_attempts, exc)
        except Exception:
            db.session.rollback()
            raise
    raise TransactionConflict()


def publish(room_code: str) -> None:
    """Tell subscribers of the room that committed state changed."""
    code = normalize_code(room_code)
    socketio.emit('state_update', {'room_code': code}, to=f"room:{code}", namespace='/ws')
