"""Room domain services: presence, typing races and voice signaling.

This package holds the in-memory relay authority. Socket handlers and HTTP
routes call into it and decide what to emit; nothing in here touches the
transport.
"""

from .errors import (  # noqa: F401
    RelayError,
    ValidationError,
    NotFoundError,
    PermissionDenied,
    ConflictError,
    StoreError,
)
from .lifecycle import RoomLifecycle  # noqa: F401
