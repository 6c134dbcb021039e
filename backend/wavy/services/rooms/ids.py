import random
from typing import Callable

from .errors import ConflictError

# No 0/O, 1/I to keep codes readable when shared verbally
ALPHABET = 'ABCDEFGHJKLMNPQRSTUVWXYZ23456789'
ROOM_ID_LENGTH = 8


def generate_room_id(length: int = ROOM_ID_LENGTH) -> str:
    """Generate a short room code, uniform random per character."""
    return ''.join(random.choices(ALPHABET, k=length))


def normalize_room_id(raw) -> str:
    if not isinstance(raw, str):
        return ''
    return raw.strip().upper()


def allocate_room_id(is_taken: Callable[[str], bool], attempts: int = 5) -> str:
    """Draw codes until one is free in the caller's namespace.

    Canvas and typing rooms each pass their own `is_taken` check, so the
    two namespaces never constrain each other.
    """
    for _ in range(max(1, attempts)):
        candidate = generate_room_id()
        if not is_taken(candidate):
            return candidate
    raise ConflictError('Unable to generate a unique room ID')
