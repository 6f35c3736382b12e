"""
Exception hierarchy for dashstate.

Only two failures ever reach callers: a rejected snapshot document and a
failed data fetch. Structural edits that miss their target are silent no-ops
and filter evaluation never raises, so neither has an error type here.
"""
from typing import Optional


class DashStateError(Exception):
    """Base exception for all dashstate failures."""


class MalformedSnapshotError(DashStateError, ValueError):
    """Raised when a snapshot/export document cannot be decoded into a tree."""


class FetchError(DashStateError):
    """Raised when a data source cannot be fetched or parsed.

    Attributes:
        key: Data-source identifier (usually the URL) that failed.
        status: HTTP status code, or None for transport and parse failures.
    """

    def __init__(self, key: str, status: Optional[int] = None, message: str = ""):
        self.key = key
        self.status = status
        if not message:
            if status is not None:
                message = f"Failed to load data (Code: {status})"
            else:
                message = "Failed to load data"
        super().__init__(f"{message} [{key}]")
