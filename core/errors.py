"""
WebCompass Proxy - Error Types
Exception hierarchy for browser orchestration and the in-memory stores
"""

from typing import Optional


class ProxyError(Exception):
    """Base exception for all proxy errors."""

    http_status = 500
    label = "Operation failed"

    def __init__(self, message: str, history_id: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.history_id = history_id


class InvalidInput(ProxyError):
    """Malformed URL, empty required field, or unusable selector."""

    http_status = 400
    label = "Invalid input"


class NotFound(ProxyError):
    """A script or history record id does not exist."""

    http_status = 404
    label = "Not found"


class BrowserUnavailable(ProxyError):
    """The browser process failed to launch or has been shut down."""

    http_status = 503
    label = "Browser unavailable"


class BrowserTimeout(ProxyError):
    """A browser-driving call exceeded its time bound."""

    http_status = 504
    label = "Browser operation timed out"


class NavigationTimeout(BrowserTimeout):
    """Navigation did not reach network quiescence before the timeout."""

    label = "Navigation timed out"


class NavigationFailed(ProxyError):
    """Navigation failed with a network, DNS or browser error."""

    http_status = 502
    label = "Navigation failed"

    def __init__(self, reason: str, history_id: Optional[int] = None):
        super().__init__(reason, history_id=history_id)
        self.reason = reason
