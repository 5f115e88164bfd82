from blanks import db
from blanks.config import ROOM_CODE_MAX_LENGTH
from flask_login import UserMixin
from dataclasses import dataclass, field
from typing import List, Optional
import random
import uuid

# Room status
LOBBY = 'lobby'
PLAYING = 'playing'
FINISHED = 'finished'

# Round phase, meaningful only while PLAYING
SELECTION = 'selection'
REVEAL = 'reveal'
VERDICT = 'verdict'

# No I, O, 0 or 1: codes get read aloud and typed on phones
ROOM_CODE_ALPHABET = 'ABCDEFGHJKLMNPQRSTUVWXYZ23456789'


def generate_room_code(length=5):
    """Generate a short room code. Uniqueness is checked by the caller."""
    return ''.join(random.choices(ROOM_CODE_ALPHABET, k=length))


def new_identity_id():
    return uuid.uuid4().hex


@dataclass(frozen=True)
class RoomConfig:
    max_points: int = 8
    max_rounds: Optional[int] = None
    selected_card_set_ids: List[str] = field(default_factory=list)

    def to_dict(self):
        return {
            'max_points': self.max_points,
            'max_rounds': self.max_rounds,
            'selected_card_set_ids': list(self.selected_card_set_ids),
        }


class Identity(UserMixin, db.Model):
    __tablename__ = 'identity'
    id = db.Column(db.String(32), primary_key=True, default=new_identity_id)
    created_at = db.Column(db.DateTime, server_default=db.func.now())

    def to_dict(self):
        return {'id': self.id}


class Room(db.Model):
    __tablename__ = 'room'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(ROOM_CODE_MAX_LENGTH), unique=True, index=True, nullable=False)
    host_id = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), default=LOBBY, nullable=False)
    phase = db.Column(db.String(16), default=SELECTION, nullable=False)
    current_round = db.Column(db.Integer, default=0, nullable=False)
    zar_player_id = db.Column(db.String(32), nullable=True)
    zar_rotation_index = db.Column(db.Integer, default=0, nullable=False)
    player_order = db.Column(db.JSON, default=list, nullable=False)
    current_prompt_card = db.Column(db.JSON, nullable=True)  # {"text": ..., "blanks_to_fill": ...}
    submissions = db.Column(db.JSON, default=dict, nullable=False)  # submission id -> cards
    submission_map = db.Column(db.JSON, default=dict, nullable=False)  # player id -> submission id
    submitted_count = db.Column(db.Integer, default=0, nullable=False)
    winner_player_ids = db.Column(db.JSON, default=list, nullable=False)
    # Config
    max_points = db.Column(db.Integer, default=8, nullable=False)
    max_rounds = db.Column(db.Integer, nullable=True)
    selected_card_set_ids = db.Column(db.JSON, default=list, nullable=False)
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    updated_at = db.Column(db.DateTime, nullable=True)
    version = db.Column(db.Integer, nullable=False)

    players = db.relationship('Player', back_populates='room', order_by='Player.order_index')
    deck = db.relationship('Deck', back_populates='room', uselist=False)

    __mapper_args__ = {'version_id_col': version}

    @property
    def config(self) -> RoomConfig:
        return RoomConfig(
            max_points=self.max_points,
            max_rounds=self.max_rounds,
            selected_card_set_ids=list(self.selected_card_set_ids or []),
        )

    @config.setter
    def config(self, value: RoomConfig) -> None:
        self.max_points = value.max_points
        self.max_rounds = value.max_rounds
        self.selected_card_set_ids = list(value.selected_card_set_ids)

    @property
    def verdict_resolved(self) -> bool:
        return bool(self.winner_player_ids) or self.status == FINISHED

    def to_dict(self, viewer_id=None, players=None):
        """Serialize the room as seen by one viewer.

        Hands are only shown to their owner. Submitted cards stay hidden
        until the reveal, and the player -> submission link is withheld
        until the judge has picked winners.
        """
        if players is None:
            players = self.players
        submissions = self.submissions or {}
        submission_map = self.submission_map or {}
        cards_visible = self.status != LOBBY and (self.phase in (REVEAL, VERDICT) or self.status == FINISHED)

        return {
            'room_code': self.code,
            'host_id': self.host_id,
            'status': self.status,
            'phase': self.phase,
            'current_round': self.current_round,
            'zar_player_id': self.zar_player_id,
            'zar_rotation_index': self.zar_rotation_index,
            'player_order': list(self.player_order or []),
            'current_prompt_card': self.current_prompt_card,
            'submissions': {sid: list(submissions[sid]) for sid in sorted(submissions)} if cards_visible else {},
            'submission_map': dict(submission_map) if self.verdict_resolved else {},
            'my_submission_id': submission_map.get(viewer_id) if viewer_id else None,
            'submitted_count': self.submitted_count,
            'winner_player_ids': list(self.winner_player_ids or []),
            'config': self.config.to_dict(),
            'players': [p.to_dict(include_hand=(p.id == viewer_id)) for p in players],
        }


class Player(db.Model):
    __tablename__ = 'player'
    room_id = db.Column(db.Integer, db.ForeignKey('room.id'), primary_key=True)
    id = db.Column(db.String(32), primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    is_host = db.Column(db.Boolean, default=False, nullable=False)
    order_index = db.Column(db.Integer, default=0, nullable=False)
    points = db.Column(db.Integer, default=0, nullable=False)
    hand = db.Column(db.JSON, default=list, nullable=False)
    has_submitted = db.Column(db.Boolean, default=False, nullable=False)
    active = db.Column(db.Boolean, default=True, nullable=False)
    joined_at = db.Column(db.DateTime, server_default=db.func.now())
    version = db.Column(db.Integer, nullable=False)

    room = db.relationship('Room', back_populates='players')

    __mapper_args__ = {'version_id_col': version}

    def to_dict(self, include_hand=False):
        data = {
            'id': self.id,
            'name': self.name,
            'is_host': self.is_host,
            'order_index': self.order_index,
            'points': self.points,
            'has_submitted': self.has_submitted,
            'active': self.active,
            'hand_size': len(self.hand or []),
        }
        if include_hand:
            data['hand'] = list(self.hand or [])
        return data


class Deck(db.Model):
    """Kept apart from Room so the frequently written room row stays small."""
    __tablename__ = 'deck'
    room_id = db.Column(db.Integer, db.ForeignKey('room.id'), primary_key=True)
    prompt_cards = db.Column(db.JSON, default=list, nullable=False)
    answer_cards = db.Column(db.JSON, default=list, nullable=False)
    prompt_deal_index = db.Column(db.Integer, default=0, nullable=False)
    answer_deal_index = db.Column(db.Integer, default=0, nullable=False)
    version = db.Column(db.Integer, nullable=False)

    room = db.relationship('Room', back_populates='deck')

    __mapper_args__ = {'version_id_col': version}
