import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

CANVAS = 'canvas'
TYPING = 'typing'


@dataclass
class VoiceParticipant:
    connection_id: str
    username: Optional[str]
    joined_at: float

    def to_dict(self):
        return {
            'socketId': self.connection_id,
            'username': self.username,
            'joinedAt': self.joined_at,
        }


class VoiceRoster:
    """Who has opted into voice within one room."""

    def __init__(self):
        self._participants: Dict[str, VoiceParticipant] = {}
        self._lock = threading.Lock()

    def enable(self, connection_id: str, username: Optional[str] = None,
               now: Optional[float] = None) -> Tuple[List[VoiceParticipant], bool]:
        """Add or refresh the caller's entry.

        Returns the other voice participants and whether this was the
        caller's first enable (only then should peers be told).
        """
        now = time.time() if now is None else now
        with self._lock:
            existing = self._participants.get(connection_id)
            first_time = existing is None
            if first_time:
                self._participants[connection_id] = VoiceParticipant(connection_id, username, now)
            peers = [p for cid, p in self._participants.items() if cid != connection_id]
        return peers, first_time

    def disable(self, connection_id: str) -> bool:
        with self._lock:
            return self._participants.pop(connection_id, None) is not None

    def all(self) -> List[VoiceParticipant]:
        with self._lock:
            return list(self._participants.values())

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._participants

    def __len__(self) -> int:
        return len(self._participants)


def resolve_signal_target(room_of: Callable[[str], Optional[str]],
                          from_id: str, target_id) -> Optional[str]:
    """Return `target_id` when both ends resolve to the same room, else None."""
    if not target_id or not isinstance(target_id, str) or target_id == from_id:
        return None
    source_room = room_of(from_id)
    if source_room is None or room_of(target_id) != source_room:
        return None
    return target_id


def signal_envelope(from_id: str, payload: dict) -> dict:
    """Forward the caller's payload verbatim, minus routing, tagged with the sender."""
    forwarded = {k: v for k, v in (payload or {}).items() if k != 'targetId'}
    forwarded['fromId'] = from_id
    return forwarded
