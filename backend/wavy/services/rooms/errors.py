class RelayError(Exception):
    """Base error reported back to the requesting connection only."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(RelayError):
    """Bad or missing room id, invalid username, bad round request."""


class NotFoundError(RelayError):
    """The addressed room does not exist (or is no longer active)."""


class PermissionDenied(RelayError):
    """A voice action was attempted before joining the room."""


class ConflictError(RelayError):
    """A room code collided with an existing one."""


class StoreError(RelayError):
    """The durable room store failed; surfaced as a generic failure."""
