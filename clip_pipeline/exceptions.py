"""
Custom Exceptions
=================
Error taxonomy for the clip pipeline.

Per-clip errors (StageTransientError and subclasses) are caught at the clip
boundary and recorded on the clip. RunPreconditionError fails the whole run.
RateLimitExceededError is caller-visible and retryable.
"""
from typing import Any, Dict, Optional


class ClipPipelineError(Exception):
    """Base class for all pipeline errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(ClipPipelineError):
    """Invalid or missing configuration."""
    pass


class RateLimiterConfigError(ConfigurationError):
    """A rate-limit key was requested with parameters that differ from its pool."""

    def __init__(self, key: str, existing: tuple, requested: tuple):
        super().__init__(
            f"Rate limiter '{key}' already configured as {existing[0]} permits / {existing[1]}s, "
            f"requested {requested[0]} permits / {requested[1]}s",
            {"key": key},
        )
        self.key = key
        self.existing = existing
        self.requested = requested


class RateLimitExceededError(ClipPipelineError):
    """No permit was granted within the timeout."""

    def __init__(self, key: str, timeout: Optional[float] = None):
        super().__init__(f"Rate limit exceeded for {key}", {"timeout": timeout})
        self.key = key
        self.timeout = timeout


class RunPreconditionError(ClipPipelineError):
    """A run cannot proceed (e.g. the channel does not resolve)."""
    pass


class StageTransientError(ClipPipelineError):
    """A single clip failed in one stage; the run continues."""

    def __init__(self, message: str, clip_id: Optional[str] = None, **kwargs):
        super().__init__(message, kwargs)
        self.clip_id = clip_id


class DownloadFailedError(StageTransientError):
    """Fetch tool timed out, exited non-zero or produced an empty artifact."""
    pass


class AnalysisError(StageTransientError):
    """The primary analysis call failed."""
    pass


class InvalidTransitionError(ClipPipelineError):
    """A workflow state transition is not allowed."""

    def __init__(self, current: Any, target: Any):
        super().__init__(f"Invalid transition {current} -> {target}")
        self.current = current
        self.target = target


class StorageError(ClipPipelineError):
    """Persistence failure."""
    pass
