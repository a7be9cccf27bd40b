"""Exception types for the Photo Ledger pipeline."""

from typing import Optional


class PhotoLedgerError(Exception):
    """Base class for pipeline errors."""


class MasterLoadError(PhotoLedgerError):
    """The hierarchy master source is unreadable or malformed.

    This is the only hard failure of the core: a bad master is reported to
    the caller and never replaced by an empty one.
    """

    def __init__(self, message: str, source: Optional[str] = None):
        self.source = source
        if source:
            message = f"{message} ({source})"
        super().__init__(message)
