"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypedDict

if TYPE_CHECKING:
    from trustelect.services.admission import Decision


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    policy: str
    field: str
    actual_value: Any
    http_status: int
    retry_after: int


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ConfigurationAppError(AppError):
    """Raised at startup when a policy or store is misconfigured."""


class RateLimitExceededError(AppError):
    """Raised by the HTTP layer when a policy rejects a request.

    Carries the rejecting ``Decision`` so the exception handler can render
    the policy's response body and rate-limit headers verbatim.
    """

    def __init__(self, decision: "Decision") -> None:
        body = decision.body
        super().__init__(
            code="rate_limit_exceeded",
            message=body.message if body else "Too many requests.",
            details={
                "http_status": decision.status_code,
                "retry_after": decision.retry_after_seconds,
            },
        )
        self.decision = decision
