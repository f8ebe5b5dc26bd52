"""
Error taxonomy for the Bertrand game.

Transitions raise these synchronously; nothing here is retried by the core.
"""


class GameError(Exception):
    """Base class for every error raised by the game core."""


class ValidationError(GameError):
    """Bad input from the caller: bid out of range, bad config, bad name."""


class CapacityError(ValidationError):
    """The session already holds its maximum number of players."""


class StateConflictError(GameError):
    """A transition was attempted from a state that does not allow it."""


class NotFoundError(GameError):
    """The session or player being operated on does not exist."""


class StoreError(GameError):
    """The session store failed; propagated to the caller untouched."""
