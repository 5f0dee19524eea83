"""Domain error taxonomy.

Every error the core raises derives from ``LoanLinkError`` and carries a stable
``code`` plus the HTTP status it maps to at the request boundary
(see ``loanlink.core.errors``). Callers branch on ``code``.
"""

from __future__ import annotations

from typing import Any


class LoanLinkError(Exception):
    code: str = "loanlink_error"
    status_code: int = 400
    default_message: str = "Request failed"

    def __init__(self, message: str | None = None, *, details: dict[str, Any] | None = None) -> None:
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)


class Unauthenticated(LoanLinkError):
    code = "unauthenticated"
    status_code = 401
    default_message = "Authentication required"


class Forbidden(LoanLinkError):
    code = "forbidden"
    status_code = 403
    default_message = "You are not allowed to perform this action"


class NotFound(LoanLinkError):
    code = "not_found"
    status_code = 404
    default_message = "Application not found"


class InvalidTransition(LoanLinkError):
    code = "invalid_transition"
    status_code = 409
    default_message = "Application is not in a state that allows this action"


class Conflict(LoanLinkError):
    code = "conflict"
    status_code = 409
    default_message = "Application was modified concurrently; retry the request"


class AlreadyPaid(LoanLinkError):
    """Benign short-circuit: the application fee is already settled."""

    code = "already_paid"
    status_code = 200
    default_message = "Application fee already paid"


class InvalidSignal(LoanLinkError):
    code = "invalid_signal"
    status_code = 400
    default_message = "Payment notification could not be verified"


class GatewayUnavailable(LoanLinkError):
    code = "gateway_unavailable"
    status_code = 503
    default_message = "Payment processor is unavailable, try again later"


__all__ = [
    "AlreadyPaid",
    "Conflict",
    "Forbidden",
    "GatewayUnavailable",
    "InvalidSignal",
    "InvalidTransition",
    "LoanLinkError",
    "NotFound",
    "Unauthenticated",
]
