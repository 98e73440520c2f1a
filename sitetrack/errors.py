"""
sitetrack/errors.py

Domain exceptions.

Each exception carries the HTTP status and the machine-readable code used by
the JSON error handlers registered in create_app().
"""

from __future__ import annotations


class DomainError(Exception):
    """Base exception for business rule violations."""

    status_code = 400
    code = "domain_error"

    def __init__(self, message: str, *, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"ok": False, "error": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""

    code = "validation_error"


class AuthorizationError(DomainError):
    """Raised when a user lacks permission for an action."""

    status_code = 403
    code = "forbidden"


class TransactionStateError(DomainError):
    """Raised when a transaction is moved out of a state it cannot leave."""

    status_code = 409
    code = "invalid_state"


class NothingToProcessError(DomainError):
    """Raised when a batch operation finds no matching workers."""

    status_code = 409
    code = "nothing_to_process"


class DuplicateAttendanceError(DomainError):
    status_code = 409
    code = "duplicate_attendance"


class InsightsUnavailableError(DomainError):
    """Raised when the budget insights model cannot produce a summary."""

    status_code = 503
    code = "insights_unavailable"
