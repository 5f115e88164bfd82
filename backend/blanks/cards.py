"""Card content supplier.

Card sets live as JSON files in ``CARD_SETS_DIR``. Two shapes are read::

    {"id": "base", "name": "Base", "official": true,
     "prompts": [{"text": "...", "pick": 2}], "answers": ["..."]}

and the community export format using ``codeName``, ``blackCards`` and
``whiteCards``. Card text is returned raw; HTML entity decoding happens
when the deck is built.
"""

import json
import os
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from flask import current_app


@dataclass(frozen=True)
class PromptCard:
    text: str
    blanks_to_fill: int = 1

    def to_dict(self):
        return {'text': self.text, 'blanks_to_fill': self.blanks_to_fill}


@dataclass
class CardSet:
    id: str
    name: str
    official: bool = False
    prompt_cards: List[PromptCard] = field(default_factory=list)
    answer_cards: List[str] = field(default_factory=list)

    def summary(self):
        return {
            'id': self.id,
            'name': self.name,
            'official': self.official,
            'prompt_count': len(self.prompt_cards),
            'answer_count': len(self.answer_cards),
        }


def _parse_prompt(raw) -> Optional[PromptCard]:
    if isinstance(raw, str):
        return PromptCard(text=raw) if raw.strip() else None
    if isinstance(raw, dict):
        text = raw.get('text')
        if not isinstance(text, str) or not text.strip():
            return None
        try:
            pick = int(raw.get('pick') or raw.get('blanks_to_fill') or 1)
        except (TypeError, ValueError):
            pick = 1
        return PromptCard(text=text, blanks_to_fill=max(1, pick))
    return None


def parse_card_set(data: dict, set_id: Optional[str] = None, fallback_name: str = '') -> CardSet:
    """Build a CardSet from either supported JSON shape.

    Raises ValueError when the payload has no usable id or is not an object.
    """
    if not isinstance(data, dict):
        raise ValueError('card set must be a JSON object')
    sid = set_id or data.get('id') or data.get('codeName')
    if not sid:
        raise ValueError('card set has no id')
    raw_prompts = data.get('prompts', data.get('blackCards')) or []
    raw_answers = data.get('answers', data.get('whiteCards')) or []

    prompts = [p for p in (_parse_prompt(r) for r in raw_prompts) if p is not None]
    answers = [a if isinstance(a, str) else str(a) for a in raw_answers if a not in (None, '')]
    return CardSet(
        id=str(sid),
        name=str(data.get('name') or fallback_name or sid),
        official=bool(data.get('official', False)),
        prompt_cards=prompts,
        answer_cards=answers,
    )


def parse_custom_set(data, name: str) -> Optional[CardSet]:
    """Parse a host-uploaded set. Returns None when it cannot be used."""
    try:
        card_set = parse_card_set(data, set_id=f'custom-{uuid.uuid4().hex[:8]}', fallback_name=name)
    except ValueError:
        return None
    card_set.official = False
    return card_set


def load_card_sets(directory: Optional[str]) -> Dict[str, CardSet]:
    """Read every ``*.json`` set in ``directory``, keyed by set id."""
    sets: Dict[str, CardSet] = {}
    if not directory or not os.path.isdir(directory):
        current_app.logger.warning(f"[cards] card set directory missing: {directory}")
        return sets
    for filename in sorted(os.listdir(directory)):
        if not filename.endswith('.json'):
            continue
        path = os.path.join(directory, filename)
        try:
            with open(path, encoding='utf-8') as fh:
                data = json.load(fh)
            card_set = parse_card_set(data, fallback_name=filename[:-5])
        except (OSError, ValueError) as exc:
            current_app.logger.warning(f"[cards] skipping {filename}: {exc}")
            continue
        sets[card_set.id] = card_set
    current_app.logger.info(f"[cards] loaded {len(sets)} card sets from {directory}")
    return sets


def get_catalog() -> Dict[str, CardSet]:
    """Card sets for the current app, loaded once and cached."""
    catalog = current_app.extensions.get('blanks.card_sets')
    if catalog is None:
        catalog = load_card_sets(current_app.config.get('CARD_SETS_DIR'))
        current_app.extensions['blanks.card_sets'] = catalog
    return catalog
