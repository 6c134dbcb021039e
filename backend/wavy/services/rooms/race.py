"""Typing race state: participants, scoring, anti-cheat flags and leaderboard.

Every participant runs a personal clock that starts on their first
keystroke. There is no background timer: the deadline is checked whenever
the participant sends an update, so someone who stops typing simply stays
in the `typing` state until they type again or disconnect.

All mutations of a room happen under that room's lock; rooms never share
a lock with each other.
"""
import re
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from .errors import ValidationError
from .voice import VoiceRoster

WAITING = 'waiting'
TYPING = 'typing'
COMPLETED = 'completed'
TIMED_OUT = 'timed-out'

PASTE_DETECTED = 'paste-detected'
SPEED_WARNING = 'speed-warning'

MIN_USERNAME_LENGTH = 3
MAX_USERNAME_LENGTH = 15
USERNAME_PATTERN = re.compile(r'^[a-zA-Z0-9 _-]+$')


def sanitize_username(raw) -> str:
    trimmed = raw.strip() if isinstance(raw, str) else ''
    if (len(trimmed) < MIN_USERNAME_LENGTH or len(trimmed) > MAX_USERNAME_LENGTH
            or not USERNAME_PATTERN.match(trimmed)):
        raise ValidationError(
            f'Provide a valid name ({MIN_USERNAME_LENGTH}-{MAX_USERNAME_LENGTH} characters, '
            'letters/numbers/space/-/_)'
        )
    return trimmed


def compute_score(reference: str, typed: str) -> Tuple[int, int, int]:
    """Score `typed` against `reference` character by character.

    +1 per matching position, -1 per mismatch or per character past the end
    of the reference. Returns (score, correct_chars, typed_length).
    """
    reference = reference or ''
    typed = typed if isinstance(typed, str) else ''
    score = 0
    correct = 0
    for index, actual in enumerate(typed):
        if index < len(reference) and actual == reference[index]:
            score += 1
            correct += 1
        else:
            score -= 1
    return score, correct, len(typed)


@dataclass
class RaceSettings:
    time_limit_sec: float = 60
    total_rounds: int = 5
    input_slack: int = 200
    paste_delta: int = 10
    paste_window_ms: float = 400
    max_chars_per_sec: float = 15

    @classmethod
    def from_config(cls, config) -> 'RaceSettings':
        return cls(
            time_limit_sec=config.get('TYPING_TIME_LIMIT_SEC', 60),
            total_rounds=config.get('TYPING_TOTAL_ROUNDS', 5),
            input_slack=config.get('TYPING_INPUT_SLACK', 200),
            paste_delta=config.get('PASTE_DELTA_THRESHOLD', 10),
            paste_window_ms=config.get('PASTE_WINDOW_MS', 400),
            max_chars_per_sec=config.get('MAX_CHARS_PER_SEC', 15),
        )


@dataclass
class Participant:
    connection_id: str
    username: str
    score: int = 0
    typed_length: int = 0
    correct_chars: int = 0
    last_input_length: int = 0
    last_input_value: str = ''
    last_update_at: Optional[float] = None
    is_completed: bool = False
    completion_time: Optional[float] = None
    flags: List[str] = field(default_factory=list)
    is_flagged: bool = False
    started_at: Optional[float] = None
    expires_at: Optional[float] = None
    is_time_up: bool = False
    round_scores: List[int] = field(default_factory=list)

    @property
    def state(self) -> str:
        if self.is_completed:
            return COMPLETED
        if self.is_time_up:
            return TIMED_OUT
        if self.started_at is not None:
            return TYPING
        return WAITING

    @property
    def is_terminal(self) -> bool:
        return self.is_completed or self.is_time_up

    def flag(self, kind: str) -> None:
        if kind not in self.flags:
            self.flags.append(kind)
        self.is_flagged = True

    def reset_round(self, now: float) -> None:
        self.round_scores.append(self.score)
        self.score = 0
        self.typed_length = 0
        self.correct_chars = 0
        self.last_input_length = 0
        self.last_input_value = ''
        self.last_update_at = now
        self.is_completed = False
        self.completion_time = None
        self.flags = []
        self.is_flagged = False
        self.started_at = None
        self.expires_at = None
        self.is_time_up = False

    def to_dict(self):
        return {
            'socketId': self.connection_id,
            'username': self.username,
            'score': self.score,
            'state': self.state,
            'isCompleted': self.is_completed,
            'completionTime': self.completion_time,
            'flags': list(self.flags),
            'isFlagged': self.is_flagged,
            'isTimeUp': self.is_time_up,
            'startedAt': self.started_at,
            'expiresAt': self.expires_at,
            'roundScores': list(self.round_scores),
        }


def leaderboard_key(participant: Participant):
    # score desc, then finished before unfinished, earlier finish first,
    # then username, then connection id so duplicates still order totally
    finished = participant.completion_time is not None
    return (
        -participant.score,
        0 if finished else 1,
        participant.completion_time if finished else 0,
        participant.username,
        participant.connection_id,
    )


def rank(participants: Sequence[Participant]) -> List[Participant]:
    return sorted(participants, key=leaderboard_key)


@dataclass
class UpdateOutcome:
    participant: Participant
    finished: bool = False
    timed_out: bool = False


class TypingRoom:

    def __init__(self, room_id: str, rounds: Sequence[str], settings: Optional[RaceSettings] = None,
                 now: Optional[float] = None):
        self.room_id = room_id
        self.created_at = time.time() if now is None else now
        self.rounds: List[str] = list(rounds)
        self.current_round_index = 0
        self.settings = settings or RaceSettings()
        self.participants: Dict[str, Participant] = {}
        self.voice = VoiceRoster()
        self.lock = threading.RLock()

    @property
    def text(self) -> str:
        if not self.rounds:
            return ''
        return self.rounds[self.current_round_index]

    @property
    def round_number(self) -> int:
        return self.current_round_index + 1

    @property
    def total_rounds(self) -> int:
        return len(self.rounds)

    def join(self, connection_id: str, username: str, now: Optional[float] = None) -> Participant:
        """Create the participant, or merge into the existing one on reconnect."""
        username = sanitize_username(username)
        now = time.time() if now is None else now
        with self.lock:
            participant = self.participants.get(connection_id)
            if participant is None:
                participant = Participant(connection_id=connection_id, username=username)
                self.participants[connection_id] = participant
            else:
                participant.username = username
            participant.last_update_at = now
            return participant

    def update(self, connection_id: str, value, is_paste: bool = False, delta=None,
               now: Optional[float] = None) -> Optional[UpdateOutcome]:
        now = time.time() if now is None else now
        settings = self.settings
        with self.lock:
            participant = self.participants.get(connection_id)
            if participant is None or participant.is_terminal:
                return None

            reference = self.text
            value = value if isinstance(value, str) else ''
            value = value[:len(reference) + settings.input_slack]

            if participant.started_at is None:
                participant.started_at = now
                participant.expires_at = now + settings.time_limit_sec
            expired = now >= participant.expires_at

            length_delta = len(value) - participant.last_input_length
            elapsed = None
            if participant.last_update_at is not None:
                elapsed = now - participant.last_update_at

            if length_delta >= settings.paste_delta:
                if is_paste:
                    participant.flag(PASTE_DETECTED)
                elif elapsed is None or elapsed * 1000 < settings.paste_window_ms:
                    participant.flag(PASTE_DETECTED)
            if elapsed is not None and elapsed > 0:
                if abs(length_delta) / elapsed > settings.max_chars_per_sec:
                    participant.flag(SPEED_WARNING)
            if isinstance(delta, (int, float)) and not isinstance(delta, bool) and delta >= settings.paste_delta:
                participant.flag(PASTE_DETECTED)

            score, correct, typed_length = compute_score(reference, value)
            participant.score = score
            participant.correct_chars = correct
            participant.typed_length = typed_length
            participant.last_input_length = typed_length
            participant.last_input_value = value
            participant.last_update_at = now

            outcome = UpdateOutcome(participant)
            if expired:
                participant.is_time_up = True
                outcome.timed_out = True
            elif len(reference) > 0 and typed_length >= len(reference):
                participant.is_completed = True
                participant.completion_time = now
                outcome.finished = True
            return outcome

    def leave(self, connection_id: str) -> bool:
        with self.lock:
            self.voice.disable(connection_id)
            return self.participants.pop(connection_id, None) is not None

    def advance_round(self, now: Optional[float] = None) -> int:
        now = time.time() if now is None else now
        with self.lock:
            if self.current_round_index + 1 >= len(self.rounds):
                raise ValidationError('This is already the final round')
            self.current_round_index += 1
            for participant in self.participants.values():
                participant.reset_round(now)
            return self.round_number

    def leaderboard(self) -> List[Participant]:
        with self.lock:
            return rank(list(self.participants.values()))

    def is_empty(self) -> bool:
        return not self.participants

    def to_dict(self):
        return {
            'roomId': self.room_id,
            'text': self.text,
            'createdAt': self.created_at,
            'timeLimitSeconds': self.settings.time_limit_sec,
            'roundNumber': self.round_number,
            'totalRounds': self.total_rounds,
            'participantCount': len(self.participants),
        }


class TypingRooms:
    """In-memory table of typing rooms plus connection -> typing room membership."""

    def __init__(self, settings: Optional[RaceSettings] = None):
        self.settings = settings or RaceSettings()
        self._rooms: Dict[str, TypingRoom] = {}
        self._membership: Dict[str, str] = {}
        self._lock = threading.Lock()

    def add(self, room_id: str, rounds: Sequence[str], now: Optional[float] = None) -> TypingRoom:
        room = TypingRoom(room_id, rounds, self.settings, now=now)
        with self._lock:
            self._rooms[room_id] = room
        return room

    def get(self, room_id: str) -> Optional[TypingRoom]:
        return self._rooms.get(room_id)

    def delete(self, room_id: str) -> None:
        with self._lock:
            self._rooms.pop(room_id, None)
            for cid in [c for c, r in self._membership.items() if r == room_id]:
                self._membership.pop(cid, None)

    def bind(self, connection_id: str, room_id: str) -> None:
        with self._lock:
            self._membership[connection_id] = room_id

    def unbind(self, connection_id: str) -> Optional[str]:
        with self._lock:
            return self._membership.pop(connection_id, None)

    def room_of(self, connection_id: str) -> Optional[str]:
        return self._membership.get(connection_id)

    def __contains__(self, room_id: str) -> bool:
        return room_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)
