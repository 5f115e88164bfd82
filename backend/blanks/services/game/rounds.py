"""Dealing and replenishment.

Both decks are fixed-length sequences read through a cursor that wraps
modulo the sequence length. Once a deck runs out it starts over from the
top, so a long game can deal the same answer card twice. That is accepted
for this game; the deck itself never grows or shrinks after the start.
"""

from typing import Iterable, List, Sequence, Tuple

from blanks.models import Deck, Player, Room
from .errors import EmptyDeckSelection


def deal(cards: Sequence, cursor: int, count: int) -> Tuple[list, int]:
    """Take ``count`` cards from ``cursor``, wrapping; returns (cards, new cursor)."""
    if count <= 0:
        return [], cursor
    size = len(cards)
    if size == 0:
        raise EmptyDeckSelection()
    dealt = [cards[(cursor + i) % size] for i in range(count)]
    return dealt, (cursor + count) % size


def deal_initial_hands(deck: Deck, players: Iterable[Player], hand_size: int) -> None:
    """Give every player a fresh hand, sliced sequentially so hands never overlap."""
    cursor = deck.answer_deal_index
    for player in players:
        hand, cursor = deal(deck.answer_cards, cursor, hand_size)
        player.hand = hand
        player.has_submitted = False
    deck.answer_deal_index = cursor


def deal_prompt(deck: Deck) -> dict:
    dealt, deck.prompt_deal_index = deal(deck.prompt_cards, deck.prompt_deal_index, 1)
    return dict(dealt[0])


def replenish_hands(deck: Deck, players: Iterable[Player], hand_size: int) -> None:
    """Top hands back up to ``hand_size``. Oversized hands are left alone."""
    cursor = deck.answer_deal_index
    for player in players:
        hand = list(player.hand or [])
        needed = hand_size - len(hand)
        if needed > 0:
            fresh, cursor = deal(deck.answer_cards, cursor, needed)
            player.hand = hand + fresh
    deck.answer_deal_index = cursor


def rotate_judge(room: Room) -> Tuple[int, str]:
    """Next (rotation index, player id) in the fixed player order."""
    order: List[str] = list(room.player_order or [])
    index = (room.zar_rotation_index + 1) % len(order)
    return index, order[index]
