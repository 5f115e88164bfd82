import pytest

from blanks import db
from blanks.cards import get_catalog
from blanks.models import FINISHED, LOBBY, PLAYING, REVEAL, SELECTION, VERDICT
from blanks.services.game import mutators, store
from blanks.services.game.errors import (
    EmptyDeckSelection,
    GameAlreadyStarted,
    InsufficientPlayers,
    InvalidSelection,
    InvalidSubmission,
    NotAllowed,
    RoomNotFound,
    StaleTransition,
)


def _submitters(code):
    room = store.require_room(code)
    return room, [p for p in store.get_players(room) if p.id != room.zar_player_id and p.active]


def _play_to_reveal(code):
    room, submitters = _submitters(code)
    submission_ids = {}
    for player in submitters:
        submission_ids[player.id] = mutators.submit_cards(code, player.id, [player.hand[0]])
    assert mutators.advance_to_reveal(code)
    return submission_ids


def _play_to_verdict(code):
    submission_ids = _play_to_reveal(code)
    assert mutators.advance_to_verdict(code, store.require_room(code).zar_player_id)
    return submission_ids


def test_create_and_join(app_ctx):
    room = mutators.create_room('h', 'Host', {'selected_card_set_ids': ['test-set'], 'max_points': 5})
    assert room.status == LOBBY
    assert room.max_points == 5
    mutators.join_room(room.code.lower(), 'a', 'Alice')

    room = store.require_room(room.code)
    players = store.get_players(room)
    assert [p.id for p in players] == ['h', 'a']
    assert players[0].is_host and not players[1].is_host
    assert room.player_order == ['h', 'a']


def test_rejoin_renames_instead_of_duplicating(app_ctx):
    code = mutators.create_room('h', 'Host').code
    mutators.join_room(code, 'a', 'Alice')
    mutators.join_room(code, 'a', 'Alicia')
    room = store.require_room(code)
    assert [p.name for p in store.get_players(room)] == ['Host', 'Alicia']
    assert room.player_order == ['h', 'a']


def test_join_unknown_room(app_ctx):
    with pytest.raises(RoomNotFound):
        mutators.join_room('NOPE2', 'a', 'Alice')


def test_join_after_start_is_refused(start_room):
    code = start_room()
    with pytest.raises(GameAlreadyStarted):
        mutators.join_room(code, 'late', 'Late')


def test_start_requires_players_and_sets(app_ctx):
    code = mutators.create_room('h', 'Host', {'selected_card_set_ids': ['test-set']}).code
    with pytest.raises(InsufficientPlayers):
        mutators.start_game(code, get_catalog().values())

    other = mutators.create_room('h2', 'Host').code
    mutators.join_room(other, 'a', 'Alice')
    with pytest.raises(EmptyDeckSelection):
        mutators.start_game(other, get_catalog().values())
    assert store.require_room(other).status == LOBBY


def test_only_host_starts(app_ctx):
    code = mutators.create_room('h', 'Host', {'selected_card_set_ids': ['test-set']}).code
    mutators.join_room(code, 'a', 'Alice')
    with pytest.raises(NotAllowed):
        mutators.start_game(code, get_catalog().values(), actor_id='a')


def test_start_deals_hands_and_opens_round_one(start_room):
    code = start_room()
    room = store.require_room(code)
    players = store.get_players(room)

    assert room.status == PLAYING
    assert room.phase == SELECTION
    assert room.current_round == 1
    assert sorted(room.player_order) == ['a', 'b', 'h']
    assert room.zar_player_id == room.player_order[0]
    assert room.current_prompt_card['blanks_to_fill'] == 1
    assert all(len(p.hand) == 10 for p in players)
    dealt = [card for p in players for card in p.hand]
    assert len(set(dealt)) == len(dealt)


def test_start_twice_is_a_no_op(start_room):
    code = start_room()
    before = store.require_room(code).zar_player_id
    assert mutators.start_game(code, get_catalog().values()) is False
    assert store.require_room(code).zar_player_id == before


def test_submission_moves_cards_out_of_the_hand(start_room):
    code = start_room()
    room, submitters = _submitters(code)
    player = submitters[0]
    card = player.hand[0]

    submission_id = mutators.submit_cards(code, player.id, [card])

    db.session.expire_all()
    room = store.require_room(code)
    player = store.get_player(room, player.id)
    assert card not in player.hand
    assert len(player.hand) == 9
    assert player.has_submitted
    assert room.submissions[submission_id] == [card]
    assert room.submission_map[player.id] == submission_id
    assert room.submitted_count == 1


def test_second_submission_is_not_double_counted(start_room):
    code = start_room()
    room, submitters = _submitters(code)
    player = submitters[0]
    mutators.submit_cards(code, player.id, [player.hand[0]])
    with pytest.raises(StaleTransition):
        mutators.submit_cards(code, player.id, [player.hand[1]])
    assert store.require_room(code).submitted_count == 1


def test_judge_cannot_submit(start_room):
    code = start_room()
    room = store.require_room(code)
    judge = store.get_player(room, room.zar_player_id)
    with pytest.raises(NotAllowed):
        mutators.submit_cards(code, judge.id, [judge.hand[0]])


def test_reveal_waits_for_everyone_and_happens_once(start_room):
    code = start_room()
    room, submitters = _submitters(code)
    mutators.submit_cards(code, submitters[0].id, [submitters[0].hand[0]])
    assert mutators.advance_to_reveal(code) is False

    mutators.submit_cards(code, submitters[1].id, [submitters[1].hand[0]])
    assert mutators.advance_to_reveal(code) is True
    assert mutators.advance_to_reveal(code) is False
    assert store.require_room(code).phase == REVEAL

    with pytest.raises(StaleTransition):
        mutators.submit_cards(code, submitters[0].id, [submitters[0].hand[1]])


def test_only_the_judge_opens_the_verdict(start_room):
    code = start_room()
    room, submitters = _submitters(code)
    for player in submitters:
        mutators.submit_cards(code, player.id, [player.hand[0]])
    mutators.advance_to_reveal(code)

    with pytest.raises(NotAllowed):
        mutators.advance_to_verdict(code, submitters[0].id)
    assert mutators.advance_to_verdict(code, room.zar_player_id) is True
    assert mutators.advance_to_verdict(code, room.zar_player_id) is False
    assert store.require_room(code).phase == VERDICT


def test_pick_winner_awards_a_point_once(start_room):
    code = start_room()
    submission_ids = _play_to_verdict(code)
    room = store.require_room(code)
    winner_id, submission_id = next(iter(submission_ids.items()))

    assert mutators.pick_winners(code, [submission_id], room.zar_player_id) == [winner_id]
    with pytest.raises(StaleTransition):
        mutators.pick_winners(code, [submission_id], room.zar_player_id)

    room = store.require_room(code)
    assert store.get_player(room, winner_id).points == 1
    assert room.winner_player_ids == [winner_id]
    assert room.status == PLAYING


def test_pick_winner_before_verdict_is_stale(start_room):
    code = start_room()
    room = store.require_room(code)
    with pytest.raises(StaleTransition):
        mutators.pick_winners(code, ['whatever'], room.zar_player_id)


def test_double_blank_prompt_scores_per_blank(start_room):
    code = start_room(selected=('double-set',))
    assert store.require_room(code).current_prompt_card == {'text': 'First _ then _.', 'blanks_to_fill': 2}
    submission_ids = _play_to_verdict(code)
    room = store.require_room(code)
    assert all(len(cards) == 1 for cards in room.submissions.values())
    winner_id, submission_id = next(iter(submission_ids.items()))

    with pytest.raises(InvalidSelection):
        mutators.pick_winners(code, [submission_id], room.zar_player_id)
    assert mutators.pick_winners(code, [submission_id, submission_id], room.zar_player_id) == [winner_id, winner_id]
    assert store.get_player(store.require_room(code), winner_id).points == 2


def test_two_card_submission_is_refused_on_a_two_blank_prompt(start_room):
    code = start_room(selected=('double-set',))
    room, submitters = _submitters(code)
    player = submitters[0]
    hand = list(player.hand)

    with pytest.raises(InvalidSubmission):
        mutators.submit_cards(code, player.id, hand[:2])

    db.session.expire_all()
    room = store.require_room(code)
    assert room.submissions == {}
    assert room.submitted_count == 0
    assert store.get_player(room, player.id).hand == hand


def test_next_round_rotates_judge_and_refills_hands(start_room):
    code = start_room()
    submission_ids = _play_to_verdict(code)
    room = store.require_room(code)
    order = list(room.player_order)
    mutators.pick_winners(code, [next(iter(submission_ids.values()))], room.zar_player_id)

    assert mutators.next_round(code, 'h') is True
    assert mutators.next_round(code, 'h') is False

    db.session.expire_all()
    room = store.require_room(code)
    players = store.get_players(room)
    assert room.current_round == 2
    assert room.phase == SELECTION
    assert room.zar_player_id == order[1]
    assert room.submissions == {} and room.submission_map == {}
    assert room.submitted_count == 0
    assert room.winner_player_ids == []
    assert all(len(p.hand) == 10 for p in players)
    assert not any(p.has_submitted for p in players)
    assert sum(p.points for p in players) == 1


def test_only_host_moves_to_next_round(start_room):
    code = start_room()
    submission_ids = _play_to_verdict(code)
    room = store.require_room(code)
    mutators.pick_winners(code, [next(iter(submission_ids.values()))], room.zar_player_id)
    with pytest.raises(NotAllowed):
        mutators.next_round(code, 'a')


def _set_points(code, player_id, points):
    room = store.require_room(code)
    store.get_player(room, player_id).points = points
    db.session.commit()


def test_game_finishes_at_max_points(start_room):
    code = start_room()
    submission_ids = _play_to_verdict(code)
    room = store.require_room(code)
    winner_id, submission_id = next(iter(submission_ids.items()))
    _set_points(code, winner_id, 7)

    mutators.pick_winners(code, [submission_id], room.zar_player_id)
    room = store.require_room(code)
    assert room.status == FINISHED
    assert store.get_player(room, winner_id).points == 8
    assert mutators.next_round(code, 'h') is False


def test_game_continues_below_max_points(start_room):
    code = start_room()
    submission_ids = _play_to_verdict(code)
    room = store.require_room(code)
    winner_id, submission_id = next(iter(submission_ids.items()))
    _set_points(code, winner_id, 6)

    mutators.pick_winners(code, [submission_id], room.zar_player_id)
    assert store.require_room(code).status == PLAYING


def test_game_finishes_after_round_limit(start_room):
    code = start_room(max_rounds=1)
    submission_ids = _play_to_verdict(code)
    room = store.require_room(code)
    mutators.pick_winners(code, [next(iter(submission_ids.values()))], room.zar_player_id)
    assert store.require_room(code).status == FINISHED


def test_host_leaving_hands_over_the_host_role(start_room):
    code = start_room()
    assert mutators.leave_room(code, 'h') is True
    assert mutators.leave_room(code, 'h') is False

    room = store.require_room(code)
    assert room.host_id == 'a'
    players = {p.id: p for p in store.get_players(room)}
    assert players['a'].is_host and not players['h'].is_host
    assert not players['h'].active


def test_leave_unknown_room_or_player_is_ignored(app_ctx):
    code = mutators.create_room('h', 'Host').code
    assert mutators.leave_room('NOPE2', 'h') is False
    assert mutators.leave_room(code, 'stranger') is False


def test_host_finishes_the_round_after_the_judge_leaves(start_room):
    code = start_room()
    submission_ids = _play_to_reveal(code)
    room = store.require_room(code)
    order = list(room.player_order)
    judge_id = room.zar_player_id

    assert mutators.leave_room(code, judge_id) is True
    room = store.require_room(code)
    host_id = room.host_id
    assert host_id != judge_id
    bystander = next(pid for pid in order if pid not in (judge_id, host_id))

    with pytest.raises(NotAllowed):
        mutators.advance_to_verdict(code, bystander)
    assert mutators.advance_to_verdict(code, host_id) is True
    with pytest.raises(NotAllowed):
        mutators.pick_winners(code, [submission_ids[bystander]], bystander)
    assert mutators.pick_winners(code, [submission_ids[bystander]], host_id) == [bystander]
    assert mutators.next_round(code, host_id) is True

    room = store.require_room(code)
    assert room.phase == SELECTION
    assert room.current_round == 2
    assert room.zar_player_id == order[1]


def test_left_player_no_longer_blocks_the_reveal(start_room):
    code = start_room()
    room, submitters = _submitters(code)
    stays, leaves = submitters
    mutators.submit_cards(code, stays.id, [stays.hand[0]])
    assert mutators.advance_to_reveal(code) is False

    mutators.leave_room(code, leaves.id)
    assert mutators.advance_to_reveal(code) is True


def test_cards_stay_decoded_after_the_deck_wraps(start_room):
    code = start_room(max_points=100)
    # 30 cards dealt up front plus two a round walks past the 42 card deck
    order = list(store.require_room(code).player_order)
    for i in range(1, 9):
        submission_ids = _play_to_verdict(code)
        room = store.require_room(code)
        mutators.pick_winners(code, [next(iter(submission_ids.values()))], room.zar_player_id)
        assert mutators.next_round(code)
        # the judge seat walks the whole order once every len(order) rounds
        assert store.require_room(code).zar_player_id == order[i % len(order)]

    room = store.require_room(code)
    deck = store.get_deck(room)
    assert 'Fish & chips' in deck.answer_cards
    assert deck.answer_deal_index < len(deck.answer_cards)
    for player in store.get_players(room):
        assert not any('&amp;' in card for card in player.hand)
        assert set(player.hand) <= set(deck.answer_cards)
