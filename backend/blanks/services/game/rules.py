"""Game state machine: transition guards and verdict arithmetic.

    lobby --start--> playing[selection] --all submitted--> playing[reveal]
          --judge--> playing[verdict] --winners picked--> (finished?)
          --host next round--> playing[selection] ...

Nothing here touches the database. The mutators call these guards against
state read inside the current transaction.
"""

from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from blanks.models import LOBBY, PLAYING, SELECTION, Player, Room, RoomConfig
from .errors import (
    EmptyDeckSelection,
    GameAlreadyStarted,
    InsufficientPlayers,
    InvalidConfig,
    InvalidSelection,
    InvalidSubmission,
    NotAllowed,
)


def ensure_lobby(room: Room) -> None:
    if room.status != LOBBY:
        raise GameAlreadyStarted()


def require_host(room: Room, actor_id: Optional[str]) -> None:
    if actor_id is not None and actor_id != room.host_id:
        raise NotAllowed('Only the host can do that')


def require_judge(room: Room, actor_id: Optional[str], judge: Optional[Player]) -> None:
    """The judge acts on the reveal and verdict. Once the judge has left the
    game the host stands in, so the round can still finish."""
    if actor_id is None or actor_id == room.zar_player_id:
        return
    judge_gone = judge is None or not judge.active
    if judge_gone and actor_id == room.host_id:
        return
    raise NotAllowed('Only the judge can do that')


def build_config(data: dict, base: RoomConfig) -> RoomConfig:
    """Apply a partial config update on top of ``base``, validating each field."""
    if not isinstance(data, dict):
        raise InvalidConfig()
    max_points = base.max_points
    max_rounds = base.max_rounds
    selected = list(base.selected_card_set_ids)

    if 'max_points' in data:
        max_points = data['max_points']
        if isinstance(max_points, bool) or not isinstance(max_points, int) or max_points < 1:
            raise InvalidConfig('max_points must be a positive integer')
    if 'max_rounds' in data:
        max_rounds = data['max_rounds']
        if max_rounds is not None and (isinstance(max_rounds, bool) or not isinstance(max_rounds, int) or max_rounds < 1):
            raise InvalidConfig('max_rounds must be a positive integer or null')
    if 'selected_card_set_ids' in data:
        raw = data['selected_card_set_ids']
        if not isinstance(raw, (list, tuple)) or not all(isinstance(s, str) for s in raw):
            raise InvalidConfig('selected_card_set_ids must be a list of set ids')
        # dedupe, keep the host's ordering
        selected = list(dict.fromkeys(raw))

    return RoomConfig(max_points=max_points, max_rounds=max_rounds, selected_card_set_ids=selected)


def check_can_start(players: Sequence[Player], config: RoomConfig, min_players: int) -> None:
    if len(players) < min_players:
        raise InsufficientPlayers(f'At least {min_players} players are required to start')
    if not config.selected_card_set_ids:
        raise EmptyDeckSelection()


def required_submitters(room: Room, players: Iterable[Player]) -> List[Player]:
    """Active players in the turn order, minus the judge."""
    order = set(room.player_order or [])
    return [p for p in players if p.active and p.id in order and p.id != room.zar_player_id]


def all_submitted(room: Room, players: Iterable[Player]) -> bool:
    required = required_submitters(room, players)
    return bool(required) and all(p.has_submitted for p in required)


def check_submission(room: Room, player: Player, cards: Sequence[str]) -> None:
    if player.id == room.zar_player_id:
        raise NotAllowed('The judge does not submit cards')
    if not player.active:
        raise NotAllowed('You have left this game')
    # One card per submission; the judge fills each blank with a submission
    if len(cards) != 1:
        raise InvalidSubmission('Submit exactly one card')
    hand = Counter(player.hand or [])
    wanted = Counter(cards)
    if any(hand[card] < count for card, count in wanted.items()):
        raise InvalidSubmission('You can only submit cards from your hand')


def resolve_winners(room: Room, submission_ids: Sequence[str]) -> Tuple[List[str], Dict[str, int]]:
    """Map the judge's picks (one per blank) to players.

    Returns the winner id per blank and the points each player earns. A
    submission picked for several blanks scores once per blank.
    """
    blanks = int((room.current_prompt_card or {}).get('blanks_to_fill') or 1)
    if len(submission_ids) != blanks:
        raise InvalidSelection(f'Pick exactly {blanks} submission(s)')

    owners = {sid: pid for pid, sid in (room.submission_map or {}).items()}
    winners: List[str] = []
    for sid in submission_ids:
        pid = owners.get(sid)
        if pid is None or sid not in (room.submissions or {}):
            raise InvalidSelection('Unknown submission')
        winners.append(pid)
    return winners, dict(Counter(winners))


def is_game_over(room: Room, players: Iterable[Player]) -> bool:
    config = room.config
    if any(p.points >= config.max_points for p in players):
        return True
    return config.max_rounds is not None and room.current_round >= config.max_rounds


def is_playing_in(room: Room, phase: str) -> bool:
    return room.status == PLAYING and room.phase == phase


def accepts_submissions(room: Room) -> bool:
    return is_playing_in(room, SELECTION)
