import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from .errors import NotFoundError, PermissionDenied, StoreError, ValidationError
from .ids import allocate_room_id, normalize_room_id
from .prompts import build_rounds, pick_round_set
from .race import Participant, RaceSettings, TypingRoom, TypingRooms, UpdateOutcome, sanitize_username
from .registry import ConnectionRegistry
from .store import RoomStore
from .voice import CANVAS, TYPING, VoiceParticipant, VoiceRoster, resolve_signal_target


@dataclass
class CanvasJoin:
    room_id: str
    existing_users: List[str]
    count: int
    # Rooms this connection was released from while joining
    departed: List['CanvasLeave'] = field(default_factory=list)


@dataclass
class CanvasLeave:
    room_id: str
    remaining: int
    deleted: bool
    voice_left: bool = False
    # The durable record could not be updated; retried by `retry_pending_releases`
    pending: bool = False


@dataclass
class TypingJoin:
    room: TypingRoom
    participant: Participant
    previous: Optional['TypingLeave'] = None


@dataclass
class TypingLeave:
    room_id: str
    deleted: bool
    voice_left: bool = False


@dataclass
class VoiceJoin:
    room_id: str
    peers: List[VoiceParticipant] = field(default_factory=list)
    first_time: bool = True
    username: Optional[str] = None


class RoomLifecycle:
    """Owns every piece of relay state for one process.

    Canvas rooms are durable records (RoomStore) with in-memory bindings in
    the ConnectionRegistry; typing rooms live only in memory. Both are torn
    down when their last member leaves.
    """

    def __init__(self, store: Optional[RoomStore] = None, settings: Optional[RaceSettings] = None,
                 id_attempts: int = 5):
        self.store = store or RoomStore()
        self.settings = settings or RaceSettings()
        self.id_attempts = id_attempts
        self.registry = ConnectionRegistry()
        self.typing = TypingRooms(self.settings)
        self._canvas_voice: Dict[str, VoiceRoster] = {}
        self._voice_lock = threading.Lock()
        # (room_id, connection_id) pairs still listed in a durable record
        self._pending_releases: Set[Tuple[str, str]] = set()
        self._pending_lock = threading.Lock()

    # ---- creation ----

    def create_canvas_room(self):
        room_id = allocate_room_id(self.store.exists, self.id_attempts)
        return self.store.create_if_absent(room_id)

    def create_typing_room(self, rounds=None, now: Optional[float] = None) -> TypingRoom:
        room_id = allocate_room_id(lambda candidate: candidate in self.typing, self.id_attempts)
        count = self.settings.total_rounds
        prompts = build_rounds(rounds, count) if rounds else pick_round_set(count)
        return self.typing.add(room_id, prompts, now=now)

    # ---- canvas rooms ----

    def join_canvas(self, connection_id: str, raw_room_id) -> CanvasJoin:
        room_id = normalize_room_id(raw_room_id)
        if not room_id:
            raise ValidationError('Room ID is required')

        if self._pending_releases:
            self.retry_pending_releases()
        record = self.store.find_by_id(room_id)
        if not record or not record.is_active:
            raise NotFoundError('Room not found')

        departed = []
        current = self.registry.room_of(connection_id)
        if current and current != room_id:
            departed.append(self.leave_canvas(connection_id))

        record = self.store.add_member(room_id, connection_id)
        if not record:
            raise NotFoundError('Room not found')

        # Written after the store resolves; the latest join wins. Another
        # join may have bound this connection while add_member was pending,
        # so release whatever room the binding replaced.
        displaced = self.registry.bind(connection_id, room_id)
        if displaced:
            departed.append(self._release_canvas(connection_id, displaced))
        members = record.members
        existing = [cid for cid in members if cid != connection_id]
        return CanvasJoin(room_id=room_id, existing_users=existing, count=len(members), departed=departed)

    def leave_canvas(self, connection_id: str) -> Optional[CanvasLeave]:
        room_id = self.registry.unbind(connection_id)
        if not room_id:
            return None
        return self._release_canvas(connection_id, room_id)

    def _release_canvas(self, connection_id: str, room_id: str) -> CanvasLeave:
        """Remove an already-unbound connection from the room's durable record."""
        voice_left = self._canvas_roster_drop(room_id, connection_id)
        try:
            remaining = self._remove_durable_member(room_id, connection_id)
        except StoreError:
            with self._pending_lock:
                self._pending_releases.add((room_id, connection_id))
            remaining = len(self.registry.members(room_id))
            return CanvasLeave(room_id=room_id, remaining=remaining, deleted=False,
                               voice_left=voice_left, pending=True)
        if not remaining:
            self._drop_canvas_roster(room_id)
            return CanvasLeave(room_id=room_id, remaining=0, deleted=True, voice_left=voice_left)
        return CanvasLeave(room_id=room_id, remaining=remaining, deleted=False, voice_left=voice_left)

    def _remove_durable_member(self, room_id: str, connection_id: str) -> int:
        record = self.store.remove_member(room_id, connection_id)
        if not record:
            return 0
        remaining = len(record.members)
        if not remaining:
            self.store.delete_by_id(room_id)
        return remaining

    def retry_pending_releases(self) -> int:
        """Retry durable removals that failed earlier; returns how many are left."""
        with self._pending_lock:
            pending = sorted(self._pending_releases)
        for room_id, connection_id in pending:
            if self.registry.room_of(connection_id) == room_id:
                # Rejoined since; the durable entry is legitimate again
                with self._pending_lock:
                    self._pending_releases.discard((room_id, connection_id))
                continue
            try:
                remaining = self._remove_durable_member(room_id, connection_id)
            except StoreError:
                continue
            with self._pending_lock:
                self._pending_releases.discard((room_id, connection_id))
            if not remaining:
                self._drop_canvas_roster(room_id)
        with self._pending_lock:
            return len(self._pending_releases)

    # ---- typing rooms ----

    def get_typing_room(self, raw_room_id) -> TypingRoom:
        room_id = normalize_room_id(raw_room_id)
        if not room_id:
            raise ValidationError('Room ID is required')
        room = self.typing.get(room_id)
        if not room:
            raise NotFoundError('Typing room not found')
        return room

    def join_typing(self, connection_id: str, raw_room_id, username,
                    now: Optional[float] = None) -> TypingJoin:
        room = self.get_typing_room(raw_room_id)
        participant_name = username
        previous = None
        current = self.typing.room_of(connection_id)
        if current and current != room.room_id:
            # Validate before tearing down the old membership
            participant_name = sanitize_username(username)
            previous = self.leave_typing(connection_id)
        with room.lock:
            # The last member may have left (and deleted the room) since lookup
            if self.typing.get(room.room_id) is not room:
                raise NotFoundError('Typing room not found')
            participant = room.join(connection_id, participant_name, now=now)
            self.typing.bind(connection_id, room.room_id)
        return TypingJoin(room=room, participant=participant, previous=previous)

    def typing_room_of(self, connection_id: str) -> Optional[TypingRoom]:
        room_id = self.typing.room_of(connection_id)
        if not room_id:
            return None
        room = self.typing.get(room_id)
        if not room:
            self.typing.unbind(connection_id)
        return room

    def update_typing(self, connection_id: str, value, is_paste=False, delta=None,
                      now: Optional[float] = None) -> Tuple[Optional[TypingRoom], Optional[UpdateOutcome]]:
        room = self.typing_room_of(connection_id)
        if not room:
            return None, None
        return room, room.update(connection_id, value, is_paste=bool(is_paste), delta=delta, now=now)

    def advance_typing_round(self, connection_id: str, now: Optional[float] = None) -> TypingRoom:
        room = self.typing_room_of(connection_id)
        if not room or connection_id not in room.participants:
            raise ValidationError('Join the typing room first')
        room.advance_round(now=now)
        return room

    def leave_typing(self, connection_id: str) -> Optional[TypingLeave]:
        room_id = self.typing.unbind(connection_id)
        if not room_id:
            return None
        room = self.typing.get(room_id)
        if not room:
            return TypingLeave(room_id=room_id, deleted=True)
        with room.lock:
            voice_left = connection_id in room.voice
            room.leave(connection_id)
            empty = room.is_empty()
            if empty:
                self.typing.delete(room_id)
        return TypingLeave(room_id=room_id, deleted=empty, voice_left=voice_left)

    # ---- disconnect ----

    def disconnect(self, connection_id: str) -> Tuple[Optional[CanvasLeave], Optional[TypingLeave]]:
        """Run both cleanups; safe for connections that never joined anything."""
        return self.leave_canvas(connection_id), self.leave_typing(connection_id)

    # ---- voice ----

    def enable_voice(self, scope: str, connection_id: str, now: Optional[float] = None) -> VoiceJoin:
        if scope == TYPING:
            room = self.typing_room_of(connection_id)
            if not room:
                raise PermissionDenied('Join the typing room before enabling voice chat.')
            with room.lock:
                participant = room.participants.get(connection_id)
                if not participant:
                    raise PermissionDenied('Join the typing room before enabling voice chat.')
                peers, first_time = room.voice.enable(connection_id, participant.username, now=now)
            return VoiceJoin(room.room_id, peers, first_time, participant.username)

        with self._voice_lock:
            # Leaves unbind first and then drop the roster entry under this
            # lock, so a binding seen here cannot outlive the entry added here
            room_id = self.registry.room_of(connection_id)
            if not room_id:
                raise PermissionDenied('Join the room before enabling voice chat.')
            roster = self._canvas_voice.setdefault(room_id, VoiceRoster())
            peers, first_time = roster.enable(connection_id, None, now=now)
        return VoiceJoin(room_id, peers, first_time)

    def disable_voice(self, scope: str, connection_id: str) -> Optional[str]:
        """Drop the caller's voice entry; returns the room id if one was removed."""
        if scope == TYPING:
            room = self.typing_room_of(connection_id)
            if room and room.voice.disable(connection_id):
                return room.room_id
            return None
        room_id = self.registry.room_of(connection_id)
        if room_id and self._canvas_roster_drop(room_id, connection_id):
            return room_id
        return None

    def voice_peers(self, scope: str, room_id: str) -> List[VoiceParticipant]:
        if scope == TYPING:
            room = self.typing.get(room_id)
            return room.voice.all() if room else []
        roster = self._canvas_voice.get(room_id)
        return roster.all() if roster else []

    def signal_target(self, scope: str, from_id: str, target_id) -> Optional[str]:
        room_of = self.typing.room_of if scope == TYPING else self.registry.room_of
        return resolve_signal_target(room_of, from_id, target_id)

    def _canvas_roster_drop(self, room_id: str, connection_id: str) -> bool:
        with self._voice_lock:
            roster = self._canvas_voice.get(room_id)
            return bool(roster and roster.disable(connection_id))

    def _drop_canvas_roster(self, room_id: str) -> None:
        with self._voice_lock:
            self._canvas_voice.pop(room_id, None)


__all__ = ['RoomLifecycle', 'CanvasJoin', 'CanvasLeave', 'TypingJoin', 'TypingLeave', 'VoiceJoin',
           'CANVAS', 'TYPING']
