# Overview: Domain error taxonomy shared by services and routes.

"""
Every error a service raises on purpose is a DomainError subclass.

Routes translate them with ``jsonify(e.to_dict()), e.http_status`` so each kind
is distinguishable by both status code and ``code`` in the response body.

KINDS:
- Validation (400): bad input, nothing was written
- Not found (404)
- State conflict (409): request contradicts current state; details carry the
  conflicting record so the caller can decide to override or abandon
- Precondition (409): an administrative setup step is missing
- Authorization (403): cuadre discrepancy needs an authorizer
"""

from __future__ import annotations


class DomainError(Exception):
    code = "DOMAIN_ERROR"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


# =============================================================================
# VALIDATION
# =============================================================================

class ValidationError(DomainError, ValueError):
    """400-level input problem."""
    code = "VALIDATION_ERROR"
    http_status = 400


class InvalidBreakdown(ValidationError):
    code = "INVALID_BREAKDOWN"


class InvalidDenomination(InvalidBreakdown):
    code = "INVALID_DENOMINATION"


class InvalidCount(InvalidBreakdown):
    code = "INVALID_COUNT"


class InvalidDateRange(ValidationError):
    code = "INVALID_DATE_RANGE"


class NothingToSettle(ValidationError):
    code = "NOTHING_TO_SETTLE"


# =============================================================================
# LOOKUP
# =============================================================================

class NotFound(DomainError):
    code = "NOT_FOUND"
    http_status = 404


# =============================================================================
# STATE CONFLICTS
# =============================================================================

class ConflictError(DomainError):
    """409-level business rule conflict."""
    code = "CONFLICT"
    http_status = 409


class ShiftAlreadyOpen(ConflictError):
    code = "SHIFT_ALREADY_OPEN"


class ShiftClosed(ConflictError):
    code = "SHIFT_CLOSED"


class DuplicateSettlementWindow(ConflictError):
    code = "DUPLICATE_SETTLEMENT_WINDOW"


class AlreadyVoided(ConflictError):
    code = "ALREADY_VOIDED"


class SettledLinesLocked(ConflictError):
    code = "SETTLED_LINES_LOCKED"


class DuplicateReference(ConflictError):
    code = "DUPLICATE_REFERENCE"


# =============================================================================
# PRECONDITIONS
# =============================================================================

class PreconditionError(DomainError):
    code = "PRECONDITION_FAILED"
    http_status = 409


class MissingInitialBalance(PreconditionError):
    code = "MISSING_INITIAL_BALANCE"


class NoActiveShift(PreconditionError):
    code = "NO_ACTIVE_SHIFT"


# =============================================================================
# AUTHORIZATION
# =============================================================================

class AuthorizationRequired(DomainError):
    code = "AUTHORIZATION_REQUIRED"
    http_status = 403
