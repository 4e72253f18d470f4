"""Exception types raised by ContextLens components."""

from __future__ import annotations


class ContextLensError(Exception):
    """Base class for all ContextLens errors."""


class ConfigError(ContextLensError):
    """Raised when a configuration update fails validation."""


class CaptureError(ContextLensError):
    """Raised by a capture provider when a single capture attempt fails."""


class CaptureUnavailableError(CaptureError):
    """Raised by a capture provider when the OS capability is missing."""


class CaptureTimeoutError(CaptureError):
    """Raised by a capture provider when an OS query does not answer in time."""


class StoreError(ContextLensError):
    """Raised when the event store cannot complete an operation."""


class SubscriberLimitError(ContextLensError):
    """Raised when the pipeline's subscriber list is full."""
