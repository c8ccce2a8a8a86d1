"""
Steam Storage — Error taxonomy for the sync pipeline.

Upstream errors are retryable. AlreadyDone is a no-op signal, not a failure.
MissingReferenceData is fatal for the current run only; the scheduler retries
after its cooldown.
"""

from __future__ import annotations


class SteamStorageError(Exception):
    """Root of all pipeline errors."""


class UpstreamError(SteamStorageError):
    """The Steam Community Market could not serve a usable answer."""


class UpstreamUnavailable(UpstreamError):
    """Network failure or non-2xx response."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class UpstreamMalformed(UpstreamError):
    """The response body is not JSON or does not match the expected schema."""


class NotFound(UpstreamError):
    """The upstream answered, but has no data for the query."""


class PriceParseError(UpstreamMalformed):
    """A locale-formatted price string could not be converted to a number."""

    def __init__(self, raw: str, reason: str = ""):
        super().__init__(f"Cannot parse price {raw!r}" + (f": {reason}" if reason else ""))
        self.raw = raw


class AlreadyDone(SteamStorageError):
    """Today's refresh has already been completed."""


class MissingReferenceData(SteamStorageError):
    """Base currency, tracked games or the reference item are missing."""
