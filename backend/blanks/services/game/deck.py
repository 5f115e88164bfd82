import html
import random
from typing import Iterable, List, Sequence, Tuple

from blanks.cards import CardSet

_rng = random.SystemRandom()


def decode_card_text(text: str) -> str:
    """Card sources escape text as HTML entities (``&amp;``, ``&quot;``)."""
    return html.unescape(text)


def shuffled(items: Sequence) -> list:
    """Uniform Fisher-Yates shuffle of a copy, seeded from the OS."""
    result = list(items)
    _rng.shuffle(result)
    return result


def build_deck(card_sets: Iterable[CardSet], selected_ids: Iterable[str]) -> Tuple[List[dict], List[str]]:
    """Merge the selected sets into shuffled prompt and answer sequences.

    Unknown ids are ignored; an empty selection gives empty decks and it is
    up to the caller to refuse to start a game with them.
    """
    selected = set(selected_ids)
    prompt_cards: List[dict] = []
    answer_cards: List[str] = []
    for card_set in card_sets:
        if card_set.id not in selected:
            continue
        for prompt in card_set.prompt_cards:
            prompt_cards.append({'text': decode_card_text(prompt.text), 'blanks_to_fill': prompt.blanks_to_fill})
        for answer in card_set.answer_cards:
            answer_cards.append(decode_card_text(answer))
    return shuffled(prompt_cards), shuffled(answer_cards)
