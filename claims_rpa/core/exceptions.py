"""Error taxonomy for the visit lifecycle and claim routing engine.

Per-visit errors are caught at the stage boundary and turned into structured
results; the batch-fatal ones (session loss, authentication, store outages)
propagate and fail the run.
"""

from typing import Any, Dict, Optional


class ClaimsRpaError(Exception):
    """Base class for all engine errors."""

    code = "error"
    retryable = False

    def __init__(self, message: str, code: Optional[str] = None, detail: Any = None):
        self.message = message
        if code is not None:
            self.code = code
        self.detail = detail
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data: Dict[str, Any] = {
            "type": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.detail is not None:
            data["detail"] = self.detail
        return data


class ValidationError(ClaimsRpaError):
    """Mandatory data is missing upstream (e.g. no patient identifier)."""

    code = "validation_error"


class NotFoundError(ClaimsRpaError):
    """The entity does not exist in the destination system."""

    code = "not_found"


class PolicyBlockedError(ClaimsRpaError):
    """A real action was achievable but the safety policy disallows it."""

    code = "policy_blocked"


class TransientAutomationError(ClaimsRpaError):
    """A driver call failed for environmental reasons."""

    code = "automation_error"
    retryable = True


class RerouteRequired(ClaimsRpaError):
    """The portal instructed that this record belongs to another sub-system.

    Raised by a portal driver; ``target_context`` names the sub-system to
    switch to and ``instruction`` carries the portal's own wording.
    """

    code = "reroute_required"

    def __init__(self, target_context: str, instruction: str):
        self.target_context = target_context
        self.instruction = instruction
        super().__init__(
            f"Portal requires {target_context}: {instruction}",
            detail={"target_context": target_context, "instruction": instruction},
        )


class RoutingOverrideError(ClaimsRpaError):
    """A routing override could not be completed."""

    code = "routing_override_failed"


class SessionLostError(ClaimsRpaError):
    """The automation session is gone; the runner may re-authenticate once."""

    code = "session_lost"
    retryable = True


class AuthenticationError(ClaimsRpaError):
    """The driver cannot authenticate at all. Batch-fatal."""

    code = "authentication_failed"


class BatchFatalError(ClaimsRpaError):
    """Anything that must abort the whole batch."""

    code = "batch_fatal"


class DriverNotConfiguredError(ClaimsRpaError):
    """No automation driver factory is configured."""

    code = "driver_not_configured"


def is_retryable(error: BaseException) -> bool:
    """Whether a later batch may try the same visit again after ``error``.

    Unexpected exceptions are treated as environmental and stay retryable;
    engine errors carry their own ``retryable`` flag.
    """
    if isinstance(error, ClaimsRpaError):
        return error.retryable
    return True
