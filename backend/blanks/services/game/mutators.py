"""Transactional mutators: the only code paths that change a room.

Each public function wraps an inner ``_work`` in ``store.run_transaction``.
``_work`` re-reads the room, re-checks its preconditions against that fresh
read and only then writes, so it stays correct when several clients race
and when the store re-runs it after a conflict.

Auto-triggered transitions (``advance_to_reveal``, ``advance_to_verdict``,
``next_round``, ``start_game``) return False instead of failing when the
game has already moved past them. Player actions (``submit_cards``,
``pick_winners``, ``join_room``) raise ``GameError`` so the caller can
correct itself.
"""

import uuid
from typing import Iterable, List, Optional, Sequence

from flask import current_app

from blanks import db
from blanks.cards import CardSet
from blanks.models import (
    FINISHED,
    LOBBY,
    PLAYING,
    REVEAL,
    SELECTION,
    VERDICT,
    Deck,
    Player,
    Room,
    RoomConfig,
    generate_room_code,
)
from . import deck as deck_builder
from . import rounds, rules, store
from .errors import EmptyDeckSelection, PlayerNotFound, RoomCodeUnavailable, StaleTransition


def _hand_size() -> int:
    return int(current_app.config.get('HAND_SIZE', 10))


def _reset_round(room: Room) -> None:
    room.submissions = {}
    room.submission_map = {}
    room.submitted_count = 0
    room.winner_player_ids = []


def create_room(host_id: str, host_name: str, config: Optional[dict] = None) -> Room:
    """Create a lobby with the caller as its only player and host."""
    default = RoomConfig(max_points=int(current_app.config.get('DEFAULT_MAX_POINTS', 8)))
    room_config = rules.build_config(config or {}, default)
    length = int(current_app.config.get('ROOM_CODE_LENGTH', 5))
    attempts = int(current_app.config.get('ROOM_CODE_ATTEMPTS', 10))

    def _work():
        code = None
        for _ in range(attempts):
            candidate = generate_room_code(length)
            if store.get_room(candidate) is None:
                code = candidate
                break
        if code is None:
            raise RoomCodeUnavailable()

        room = Room(
            code=code,
            host_id=host_id,
            status=LOBBY,
            phase=SELECTION,
            current_round=0,
            zar_player_id=host_id,
            zar_rotation_index=0,
            player_order=[host_id],
            current_prompt_card=None,
            submissions={},
            submission_map={},
            submitted_count=0,
            winner_player_ids=[],
        )
        room.config = room_config
        db.session.add(room)
        db.session.flush()
        db.session.add(Player(
            room_id=room.id,
            id=host_id,
            name=host_name,
            is_host=True,
            order_index=0,
            points=0,
            hand=[],
            has_submitted=False,
            active=True,
        ))
        return room

    room = store.run_transaction(_work)
    current_app.logger.info(f"[create] room={room.code} host={host_id}")
    return room


def join_room(room_code: str, player_id: str, name: str) -> Player:
    """Add the caller to a lobby, or just rename them if they already joined."""
    code = store.normalize_code(room_code)

    def _work():
        room = store.require_room(code)
        rules.ensure_lobby(room)
        player = store.get_player(room, player_id)
        if player is not None:
            player.name = name
            player.active = True
            store.touch(room)
            return player

        players = store.get_players(room)
        player = Player(
            room_id=room.id,
            id=player_id,
            name=name,
            is_host=False,
            order_index=len(players),
            points=0,
            hand=[],
            has_submitted=False,
            active=True,
        )
        db.session.add(player)
        order = list(room.player_order or [])
        if player_id not in order:
            room.player_order = order + [player_id]
        store.touch(room)
        return player

    player = store.run_transaction(_work)
    current_app.logger.info(f"[join] room={code} player={player_id}")
    store.publish(code)
    return player


def update_room_config(room_code: str, actor_id: Optional[str], changes: dict) -> RoomConfig:
    code = store.normalize_code(room_code)

    def _work():
        room = store.require_room(code)
        rules.require_host(room, actor_id)
        rules.ensure_lobby(room)
        room.config = rules.build_config(changes, room.config)
        store.touch(room)
        return room.config

    config = store.run_transaction(_work)
    current_app.logger.info(f"[config] room={code} config={config.to_dict()}")
    store.publish(code)
    return config


def start_game(
    room_code: str,
    card_sets: Iterable[CardSet],
    actor_id: Optional[str] = None,
    custom_sets: Sequence[CardSet] = (),
) -> bool:
    """Deal hands, pick the first prompt and judge, and open round one.

    ``custom_sets`` are always part of the deck on top of the room's
    selected sets. Returns False if the game had already started.
    """
    code = store.normalize_code(room_code)
    catalog = list(card_sets) + list(custom_sets)
    min_players = int(current_app.config.get('MIN_PLAYERS', 2))

    def _work():
        room = store.require_room(code)
        rules.require_host(room, actor_id)
        if room.status == PLAYING:
            return False
        rules.ensure_lobby(room)

        players = [p for p in store.get_players(room) if p.active]
        config = room.config
        selected = list(config.selected_card_set_ids) + [s.id for s in custom_sets]
        rules.check_can_start(players, RoomConfig(config.max_points, config.max_rounds, selected), min_players)
        prompt_cards, answer_cards = deck_builder.build_deck(catalog, selected)
        if not prompt_cards or not answer_cards:
            raise EmptyDeckSelection()

        deck = store.get_deck(room)
        if deck is None:
            deck = Deck(room_id=room.id)
            db.session.add(deck)
        deck.prompt_cards = prompt_cards
        deck.answer_cards = answer_cards
        deck.prompt_deal_index = 0
        deck.answer_deal_index = 0

        rounds.deal_initial_hands(deck, players, _hand_size())
        order = deck_builder.shuffled([p.id for p in players])

        room.status = PLAYING
        room.phase = SELECTION
        room.current_round = 1
        room.player_order = order
        room.zar_rotation_index = 0
        room.zar_player_id = order[0]
        room.current_prompt_card = rounds.deal_prompt(deck)
        _reset_round(room)
        return True

    started = store.run_transaction(_work)
    if started:
        current_app.logger.info(f"[start] room={code}")
        store.publish(code)
    return started


def submit_cards(room_code: str, player_id: str, cards: Sequence[str]) -> str:
    """Play cards from the caller's hand for the current prompt.

    Returns the new submission id. Raises StaleTransition when the caller
    already submitted or the round is no longer in selection.
    """
    code = store.normalize_code(room_code)
    cards = list(cards)

    def _work():
        room = store.require_room(code)
        player = store.get_player(room, player_id)
        if player is None:
            raise PlayerNotFound()
        if not rules.accepts_submissions(room):
            raise StaleTransition('Submissions are closed for this round')
        if player.has_submitted:
            raise StaleTransition('You already submitted this round')
        rules.check_submission(room, player, cards)

        submission_id = uuid.uuid4().hex
        # Drop every copy so the hand and the submissions stay disjoint
        player.hand = [c for c in player.hand if c not in cards]
        player.has_submitted = True
        room.submissions = {**(room.submissions or {}), submission_id: cards}
        room.submission_map = {**(room.submission_map or {}), player.id: submission_id}
        room.submitted_count = room.submitted_count + 1
        return submission_id

    submission_id = store.run_transaction(_work)
    current_app.logger.info(f"[submit] room={code} player={player_id}")
    store.publish(code)
    return submission_id


def advance_to_reveal(room_code: str) -> bool:
    """selection -> reveal once every required player has submitted. Idempotent."""
    code = store.normalize_code(room_code)

    def _work():
        room = store.require_room(code)
        if not rules.is_playing_in(room, SELECTION):
            return False
        if not rules.all_submitted(room, store.get_players(room)):
            return False
        room.phase = REVEAL
        return True

    moved = store.run_transaction(_work)
    if moved:
        current_app.logger.info(f"[reveal] room={code}")
        store.publish(code)
    return moved


def advance_to_verdict(room_code: str, actor_id: Optional[str] = None) -> bool:
    code = store.normalize_code(room_code)

    def _work():
        room = store.require_room(code)
        rules.require_judge(room, actor_id, store.get_player(room, room.zar_player_id))
        if not rules.is_playing_in(room, REVEAL):
            return False
        room.phase = VERDICT
        return True

    moved = store.run_transaction(_work)
    if moved:
        current_app.logger.info(f"[verdict] room={code}")
        store.publish(code)
    return moved


def pick_winners(room_code: str, submission_ids: Sequence[str], actor_id: Optional[str] = None) -> List[str]:
    """Award points for the judge's picks, one submission id per blank.

    Returns the winning player id per blank and finishes the game in the
    same transaction when a winner reaches ``max_points`` or the round
    limit is hit.
    """
    code = store.normalize_code(room_code)
    submission_ids = list(submission_ids)

    def _work():
        room = store.require_room(code)
        rules.require_judge(room, actor_id, store.get_player(room, room.zar_player_id))
        if not rules.is_playing_in(room, VERDICT):
            raise StaleTransition('Winners can only be picked during the verdict')
        if room.winner_player_ids:
            raise StaleTransition('Winners were already picked this round')

        winner_ids, awards = rules.resolve_winners(room, submission_ids)
        winners: List[Player] = []
        for pid, points in awards.items():
            player = store.get_player(room, pid)
            if player is None:
                continue
            player.points = player.points + points
            winners.append(player)

        room.winner_player_ids = winner_ids
        if rules.is_game_over(room, winners):
            room.status = FINISHED
        return winner_ids, room.status

    winner_ids, status = store.run_transaction(_work)
    current_app.logger.info(f"[winners] room={code} winners={winner_ids}")
    if status == FINISHED:
        current_app.logger.info(f"[finish] room={code}")
    store.publish(code)
    return winner_ids


def next_round(room_code: str, actor_id: Optional[str] = None) -> bool:
    """verdict -> selection: rotate the judge, deal a prompt, top up hands.

    Guarded by the phase, so a repeated call is a no-op and never replays
    a round.
    """
    code = store.normalize_code(room_code)

    def _work():
        room = store.require_room(code)
        rules.require_host(room, actor_id)
        if not rules.is_playing_in(room, VERDICT):
            return False
        deck = store.get_deck(room)
        if deck is None:
            return False
        players = store.get_players(room)

        index, zar_id = rounds.rotate_judge(room)
        room.current_prompt_card = rounds.deal_prompt(deck)
        rounds.replenish_hands(deck, [p for p in players if p.active], _hand_size())
        for player in players:
            player.has_submitted = False

        room.current_round = room.current_round + 1
        room.phase = SELECTION
        room.zar_rotation_index = index
        room.zar_player_id = zar_id
        _reset_round(room)
        return room.current_round

    new_round = store.run_transaction(_work)
    if not new_round:
        return False
    current_app.logger.info(f"[next_round] room={code} round={new_round}")
    store.publish(code)
    return True


def leave_room(room_code: str, player_id: str) -> bool:
    """Mark the caller inactive. Unknown rooms or players are ignored.

    A leaving host hands the host flag to the earliest-joined active player.
    """
    code = store.normalize_code(room_code)

    def _work():
        room = store.get_room(code)
        if room is None:
            return False
        player = store.get_player(room, player_id)
        if player is None or not player.active:
            return False
        player.active = False
        if player.is_host:
            successor = next((p for p in store.get_players(room) if p.active and p.id != player.id), None)
            if successor is not None:
                player.is_host = False
                successor.is_host = True
                room.host_id = successor.id
        store.touch(room)
        return True

    left = store.run_transaction(_work)
    if left:
        current_app.logger.info(f"[leave] room={code} player={player_id}")
        store.publish(code)
    return left

