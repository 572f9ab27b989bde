"""Error kinds surfaced to the user."""


class ShelfError(Exception):
    """Base error carrying a user-facing message."""
    
    default_message = "Something went wrong"
    
    def __init__(self, message: str = None):
        super().__init__(message or self.default_message)
    
    @property
    def message(self) -> str:
        return str(self)


class ValidationError(ShelfError):
    """Input rejected before any I/O (e.g. a blank note)."""
    default_message = "Invalid input"


class RemoteFetchError(ShelfError):
    """A search or catalog read failed."""
    default_message = "Failed to load data"


class RemoteWriteError(ShelfError):
    """A mutation failed; the optimistic local state was reverted."""
    default_message = "Failed to save changes"


class ConsistencyGap(ShelfError):
    """First step of a multi-call mutation succeeded but a dependent step failed."""
    default_message = "Saved, but a related counter could not be updated"
