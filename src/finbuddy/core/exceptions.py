class FinBuddyError(Exception):
    """Base application exception."""


class DependencyUnavailableError(FinBuddyError):
    """Raised when an external dependency cannot be reached."""


class StorageUnavailableError(DependencyUnavailableError):
    """Raised when the news store cannot be read or written."""


class IngestionFailedError(FinBuddyError):
    """Raised when a news ingestion cycle cannot complete."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason
