from __future__ import annotations

from typing import Optional


class TakealotExportError(Exception):
    """Base class for errors raised by this package."""


class UpstreamFetchError(TakealotExportError):
    """Non-success status or network failure talking to the upstream API."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class QueryCancelled(TakealotExportError):
    """Raised when the query owning a cancellation token was superseded."""


class ParseError(TakealotExportError, ValueError):
    """Malformed sort string or unknown department/category name."""


class CacheIOError(TakealotExportError):
    """Reading or writing the persisted blob store failed."""


class ImageFetchError(TakealotExportError):
    def __init__(self, message: str, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable
