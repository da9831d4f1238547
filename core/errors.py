"""Exception hierarchy for the image receiver.

Only ``ConfigError`` is expected to reach ``main()``. The others are raised
and absorbed at the boundary where they occur (see the verifier, ingestion
and channel modules).
"""
from typing import Any, Optional


class ReceiverError(Exception):
    """Base class for all receiver errors."""


class ConfigError(ReceiverError):
    """A configuration value is missing or out of range."""


class PreloadFailure(ReceiverError):
    """A candidate image could not be fetched or decoded."""

    def __init__(self, reason: str, locator: Optional[str] = None):
        super().__init__(reason)
        self.reason = reason
        self.locator = locator

    def __str__(self) -> str:
        if self.locator:
            return f"{self.reason} ({self.locator})"
        return self.reason


class MalformedCandidate(ReceiverError):
    """A submitted payload does not carry a usable image reference."""

    def __init__(self, reason: str, payload: Any = None):
        super().__init__(reason)
        self.reason = reason
        self.payload = payload


class NoSourceAvailable(ReceiverError):
    """No image source is configured.

    Not raised on the update path: the display simply stays on its
    placeholder. Channels use it to report why they have nothing to submit.
    """
