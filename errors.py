#!/usr/bin/env python3
"""Common error types shared across modules.

Provides shared lightweight exceptions to avoid circular imports.
"""

from typing import Dict, Optional


class FeedError(Exception):
    """Base class for per-source problems that never abort a whole run."""


class FetchError(FeedError):
    """Raised when a source cannot be downloaded (network, timeout, non-2xx).

    Attributes:
        url: The URL that was requested.
        status: HTTP status code when a response was received.
    """

    def __init__(self, message: str, url: str = "", status: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status = status


class DecodeError(FeedError):
    """Raised when raw bytes do not decode as any supported feed dialect.

    Attributes:
        errors: Underlying error message per attempted dialect, in attempt order.
    """

    def __init__(self, message: str, errors: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.errors = errors or {}


class LinkError(DecodeError):
    """Raised when a link element carries no usable URL."""


class NormalizationError(FeedError):
    """Raised when a decoded feed violates a structural invariant (e.g. no link)."""


class ConfigError(Exception):
    """Raised when configuration or persisted state cannot be loaded or saved."""


class NotificationError(Exception):
    """Raised when the notification body cannot be rendered or delivered."""


__all__ = [
    "FeedError",
    "FetchError",
    "DecodeError",
    "LinkError",
    "NormalizationError",
    "ConfigError",
    "NotificationError",
]
