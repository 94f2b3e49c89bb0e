"""
Exceptions for the dashboard sync core
"""

from typing import Optional, Dict, Any


class SyncException(Exception):
    """Base exception for all sync-related errors"""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class ConnectError(SyncException):
    """Raised when the push channel cannot be established"""
    def __init__(self, url: str, reason: str, details: Optional[Dict[str, Any]] = None):
        self.url = url
        self.reason = reason
        super().__init__(f"Could not connect to {url}: {reason}", details)


class CloseError(SyncException):
    """Raised when an established push channel closes without a client close"""
    def __init__(self, code: Optional[int] = None, reason: Optional[str] = None,
                 cause: Optional[BaseException] = None):
        self.code = code
        self.reason = reason or ""
        self.cause = cause
        message = f"Connection closed (code={code}, reason={self.reason!r})"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class StreamError(SyncException):
    """Raised when an inbound push message cannot be used"""
    def __init__(self, message: str, raw: Any = None):
        self.raw = raw
        super().__init__(message)


class MalformedPayloadError(StreamError):
    """Raised when a decoded payload does not have the expected shape"""
    pass


class FetchError(SyncException):
    """Raised when the snapshot request fails"""
    def __init__(self, reason: str, status: Optional[int] = None):
        self.reason = reason
        self.status = status
        super().__init__(reason, {"status": status} if status is not None else None)
