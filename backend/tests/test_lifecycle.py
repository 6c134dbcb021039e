import random
import threading

import pytest

from wavy.services.rooms import NotFoundError, PermissionDenied, StoreError, ValidationError
from wavy.services.rooms.voice import CANVAS, TYPING


def test_canvas_membership_tracks_joins_and_leaves(relay):
    room_id = relay.create_canvas_room().room_id
    joined = set()
    rng = random.Random(7)
    sids = [f'sid-{n}' for n in range(5)]
    for _ in range(60):
        sid = rng.choice(sids)
        if sid in joined and rng.random() < 0.5:
            relay.leave_canvas(sid)
            joined.discard(sid)
        elif relay.store.find_by_id(room_id) is not None:
            relay.join_canvas(sid, room_id)
            joined.add(sid)
        record = relay.store.find_by_id(room_id)
        if joined:
            assert record is not None
            assert set(record.members) == joined
            assert len(record.members) == len(joined)
        else:
            assert record is None
            break


def test_join_returns_existing_members_in_order(relay):
    room_id = relay.create_canvas_room().room_id
    relay.join_canvas('a', room_id)
    relay.join_canvas('b', room_id.lower())
    joined = relay.join_canvas('c', f'  {room_id} ')
    assert joined.existing_users == ['a', 'b']
    assert joined.count == 3
    # Joining twice is idempotent
    again = relay.join_canvas('c', room_id)
    assert again.count == 3


def test_join_unknown_room_changes_nothing(relay):
    room_id = relay.create_canvas_room().room_id
    relay.join_canvas('a', room_id)
    with pytest.raises(NotFoundError):
        relay.join_canvas('a', 'ZZZZZZZZ')
    with pytest.raises(ValidationError):
        relay.join_canvas('a', '   ')
    assert relay.registry.room_of('a') == room_id
    assert relay.store.find_by_id(room_id).members == ['a']


def test_switching_canvas_rooms_leaves_the_old_one(relay):
    first = relay.create_canvas_room().room_id
    second = relay.create_canvas_room().room_id
    relay.join_canvas('a', first)
    relay.join_canvas('b', first)
    joined = relay.join_canvas('a', second)
    assert [left.room_id for left in joined.departed] == [first]
    assert joined.departed[0].remaining == 1
    assert relay.store.find_by_id(first).members == ['b']
    assert relay.registry.room_of('a') == second


def test_last_leave_deletes_record(relay):
    room_id = relay.create_canvas_room().room_id
    relay.join_canvas('a', room_id)
    left = relay.leave_canvas('a')
    assert left.deleted
    assert relay.store.find_by_id(room_id) is None
    assert relay.leave_canvas('a') is None


def test_disconnect_is_safe_without_membership(relay):
    assert relay.disconnect('never-joined') == (None, None)


def test_disconnect_cleans_both_modes(relay):
    canvas_id = relay.create_canvas_room().room_id
    typing_room = relay.create_typing_room()
    relay.join_canvas('a', canvas_id)
    relay.join_canvas('b', canvas_id)
    relay.join_typing('a', typing_room.room_id, 'Ann')
    relay.join_typing('b', typing_room.room_id, 'Bob')
    relay.enable_voice(TYPING, 'a')
    relay.enable_voice(CANVAS, 'a')

    canvas_left, typing_left = relay.disconnect('a')
    assert canvas_left.remaining == 1 and canvas_left.voice_left
    assert typing_left.voice_left and not typing_left.deleted
    assert 'a' not in relay.registry
    assert 'a' not in typing_room.participants
    assert 'a' not in typing_room.voice
    assert relay.voice_peers(CANVAS, canvas_id) == []


def test_typing_room_deleted_when_empty(relay):
    room = relay.create_typing_room()
    relay.join_typing('a', room.room_id, 'Ann')
    left = relay.leave_typing('a')
    assert left.deleted
    with pytest.raises(NotFoundError):
        relay.get_typing_room(room.room_id)


def test_typing_room_has_configured_round_count(relay):
    room = relay.create_typing_room()
    assert room.total_rounds == 5
    assert room.current_round_index == 0
    custom = relay.create_typing_room(rounds=['only one'])
    assert custom.rounds[0] == 'only one'
    assert custom.total_rounds == 5


def test_invalid_username_keeps_previous_typing_room(relay):
    first = relay.create_typing_room()
    second = relay.create_typing_room()
    relay.join_typing('a', first.room_id, 'Ann')
    with pytest.raises(ValidationError):
        relay.join_typing('a', second.room_id, '!!')
    assert relay.typing.room_of('a') == first.room_id
    assert 'a' in first.participants


def test_voice_requires_membership(relay):
    with pytest.raises(PermissionDenied):
        relay.enable_voice(TYPING, 'a')
    with pytest.raises(PermissionDenied):
        relay.enable_voice(CANVAS, 'a')


def test_voice_namespaces_are_separate(relay):
    canvas_id = relay.create_canvas_room().room_id
    typing_room = relay.create_typing_room()
    relay.join_canvas('a', canvas_id)
    relay.join_typing('b', typing_room.room_id, 'Bob')
    relay.join_canvas('c', canvas_id)
    assert relay.signal_target(CANVAS, 'a', 'c') == 'c'
    assert relay.signal_target(CANVAS, 'a', 'b') is None
    assert relay.signal_target(TYPING, 'b', 'a') is None


def test_enable_voice_twice_matches_once(relay):
    room = relay.create_typing_room()
    relay.join_typing('a', room.room_id, 'Ann')
    relay.join_typing('b', room.room_id, 'Bob')
    relay.enable_voice(TYPING, 'b')
    first = relay.enable_voice(TYPING, 'a')
    snapshot = [p.to_dict() for p in relay.voice_peers(TYPING, room.room_id)]
    second = relay.enable_voice(TYPING, 'a')
    assert first.first_time and not second.first_time
    assert [p.connection_id for p in second.peers] == ['b']
    assert [p.to_dict() for p in relay.voice_peers(TYPING, room.room_id)] == snapshot


def test_advance_round_requires_membership(relay):
    with pytest.raises(ValidationError):
        relay.advance_typing_round('ghost')


def test_concurrent_rejoin_releases_displaced_room(relay, monkeypatch):
    first = relay.create_canvas_room().room_id
    second = relay.create_canvas_room().room_id
    relay.join_canvas('other', second)
    add_member = relay.store.add_member
    fired = []

    def add_member_racing(room_id, connection_id):
        # A second join for the same connection lands while this one is pending
        if room_id == first and not fired:
            fired.append(True)
            relay.join_canvas(connection_id, second)
        return add_member(room_id, connection_id)

    monkeypatch.setattr(relay.store, 'add_member', add_member_racing)
    joined = relay.join_canvas('a', first)

    assert relay.registry.room_of('a') == first
    assert [left.room_id for left in joined.departed] == [second]
    assert relay.store.find_by_id(second).members == ['other']

    relay.disconnect('a')
    assert relay.store.find_by_id(first) is None
    assert relay.store.find_by_id(second).members == ['other']


def test_typing_voice_enable_racing_leave(relay, monkeypatch):
    room = relay.create_typing_room()
    relay.join_typing('a', room.room_id, 'Ann')
    relay.join_typing('b', room.room_id, 'Bob')
    enable = room.voice.enable
    leaver = threading.Thread(target=relay.leave_typing, args=('a',))

    def enable_racing(*args, **kwargs):
        leaver.start()
        leaver.join(timeout=0.2)
        return enable(*args, **kwargs)

    monkeypatch.setattr(room.voice, 'enable', enable_racing)
    relay.enable_voice(TYPING, 'a')
    leaver.join()

    assert 'a' not in room.participants
    assert 'a' not in room.voice


def test_join_typing_racing_last_leave(relay, monkeypatch):
    room = relay.create_typing_room()
    relay.join_typing('a', room.room_id, 'Ann')
    delete = relay.typing.delete
    errors = []

    def join_late():
        try:
            relay.join_typing('b', room.room_id, 'Bob')
        except NotFoundError as exc:
            errors.append(exc)

    def delete_racing(room_id):
        joiner = threading.Thread(target=join_late)
        joiner.start()
        joiner.join(timeout=0.2)
        delete(room_id)
        return joiner

    joiners = []
    monkeypatch.setattr(relay.typing, 'delete', lambda room_id: joiners.append(delete_racing(room_id)))
    assert relay.leave_typing('a').deleted
    for joiner in joiners:
        joiner.join()

    assert len(errors) == 1
    assert relay.typing.room_of('b') is None
    assert 'b' not in room.participants


def test_failed_release_is_retried(relay, monkeypatch):
    room_id = relay.create_canvas_room().room_id
    relay.join_canvas('a', room_id)
    relay.join_canvas('b', room_id)
    remove_member = relay.store.remove_member
    failures = []

    def remove_member_once(room_id, connection_id):
        if not failures:
            failures.append(connection_id)
            raise StoreError('database unavailable')
        return remove_member(room_id, connection_id)

    monkeypatch.setattr(relay.store, 'remove_member', remove_member_once)
    canvas_left, _ = relay.disconnect('a')

    assert canvas_left.pending and not canvas_left.deleted
    assert canvas_left.remaining == 1
    assert 'a' not in relay.registry
    assert relay.store.find_by_id(room_id).members == ['a', 'b']

    assert relay.retry_pending_releases() == 0
    assert relay.store.find_by_id(room_id).members == ['b']


def test_pending_release_retried_on_next_join(relay, monkeypatch):
    room_id = relay.create_canvas_room().room_id
    other = relay.create_canvas_room().room_id
    relay.join_canvas('a', room_id)

    def remove_member_failing(room_id, connection_id):
        raise StoreError('database unavailable')

    monkeypatch.setattr(relay.store, 'remove_member', remove_member_failing)
    assert relay.leave_canvas('a').pending
    assert relay.retry_pending_releases() == 1

    monkeypatch.undo()
    relay.join_canvas('b', other)
    assert relay.store.find_by_id(room_id) is None
