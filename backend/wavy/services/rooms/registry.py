import threading
from typing import Dict, List, Optional


class ConnectionRegistry:
    """Process-local lookup of connection id -> room id.

    A connection is bound to at most one room; binding again replaces the
    previous entry.
    """

    def __init__(self):
        self._rooms: Dict[str, str] = {}
        self._lock = threading.Lock()

    def bind(self, connection_id: str, room_id: str) -> Optional[str]:
        with self._lock:
            previous = self._rooms.get(connection_id)
            self._rooms[connection_id] = room_id
        return previous if previous != room_id else None

    def unbind(self, connection_id: str) -> Optional[str]:
        with self._lock:
            return self._rooms.pop(connection_id, None)

    def room_of(self, connection_id: str) -> Optional[str]:
        return self._rooms.get(connection_id)

    def members(self, room_id: str) -> List[str]:
        with self._lock:
            return [cid for cid, rid in self._rooms.items() if rid == room_id]

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)
