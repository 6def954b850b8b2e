"""Error kinds raised across the orchestration core.

Component-local, recoverable failures (lookup, analysis) are caught inside
their component. Call and persistence failures escalate to the lifecycle
manager, which alone decides when a request becomes ``failed``.
"""


class ConciergeError(Exception):
    """Base class for all orchestration errors."""


class InvalidPhoneFormat(ConciergeError):
    """A phone number could not be normalized into a dialable E.164 number."""

    def __init__(self, raw: str, reason: str) -> None:
        super().__init__(f"Invalid phone number format: {raw} ({reason})")
        self.raw = raw
        self.reason = reason


class ExternalCallFailure(ConciergeError):
    """The voice-call capability errored or timed out for one attempt."""


class LookupFailure(ConciergeError):
    """A per-provider details lookup failed during enrichment."""


class AnalysisUnavailable(ConciergeError):
    """Task analysis could not be produced; callers use the default script."""


class PersistenceFailure(ConciergeError):
    """A durable write or read failed even after the corrective retry."""


class NotFound(ConciergeError):
    """The requested record does not exist."""


class InvalidTransitionError(ConciergeError):
    """Raised when a status transition is not valid from the current state."""


class ProviderSelectionError(ConciergeError):
    """A provider selection conflicts with the request's current state."""


class ResearchUnavailable(ConciergeError):
    """A research backend could not produce a result."""


class NotificationFailure(ConciergeError):
    """A user notification could not be delivered."""
