# Overview: Domain error taxonomy shared by services and routes.

"""
Marketplace error taxonomy.

Every gated or state-changing operation raises one of these instead of a
generic exception, so the HTTP layer (and any other caller) can decide
between retrying, showing a message, or escalating.

    EntitlementDenied        403  plan tier lacks a capability (upgrade)
    QuotaExceeded            429  usage counter at its limit (wait or upgrade)
    QuotaCheckFailed         503  counter could not be read/written (retry)
    InvalidTransition        409  state/role does not permit the change
    DisputeActive            409  unresolved dispute blocks the booking
    LedgerInvariantViolation 500  payout would exceed what the ledger allows
    ConcurrencyConflict      409  lost a race for the booking (re-read, retry)
    NotFoundError            404
    ValidationError          400
"""

from __future__ import annotations

import uuid

from flask import current_app, jsonify


class MarketplaceError(Exception):
    """Base class for errors surfaced to API callers."""

    code = "MARKETPLACE_ERROR"
    http_status = 400
    retryable = False
    # Internal errors reach clients only as a generic 500 with a reference
    internal = False

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload = {
            "error": self.message,
            "code": self.code,
            "retryable": self.retryable,
        }
        payload.update(self.details)
        return payload


class ValidationError(MarketplaceError):
    """400-level input problem."""
    code = "VALIDATION_ERROR"
    http_status = 400


class NotFoundError(MarketplaceError):
    code = "NOT_FOUND"
    http_status = 404


class EntitlementDenied(MarketplaceError):
    code = "ENTITLEMENT_DENIED"
    http_status = 403

    def __init__(self, capability: str, plan_type: str, message: str | None = None):
        super().__init__(
            message or f"Your '{plan_type}' plan does not include {capability}",
            capability=capability,
            plan_type=plan_type,
        )
        self.capability = capability
        self.plan_type = plan_type


class QuotaExceeded(MarketplaceError):
    code = "QUOTA_EXCEEDED"
    http_status = 429

    def __init__(self, quota: str, used: int, limit: int):
        super().__init__(
            f"{quota} limit reached ({used}/{limit})",
            quota=quota,
            used=used,
            limit=limit,
        )
        self.quota = quota
        self.used = used
        self.limit = limit


class QuotaCheckFailed(MarketplaceError):
    """Infrastructure failure while evaluating a quota. Fails closed."""
    code = "QUOTA_CHECK_FAILED"
    http_status = 503
    retryable = True


class InvalidTransition(MarketplaceError):
    code = "INVALID_TRANSITION"
    http_status = 409


class DisputeActive(MarketplaceError):
    code = "DISPUTE_ACTIVE"
    http_status = 409

    def __init__(self, booking_id: int, dispute_id: int):
        super().__init__(
            f"Booking {booking_id} is under dispute",
            booking_id=booking_id,
            dispute_id=dispute_id,
        )
        self.booking_id = booking_id
        self.dispute_id = dispute_id


class LedgerInvariantViolation(MarketplaceError):
    """A ledger write was rejected. Never clamped; always investigated."""
    code = "LEDGER_INVARIANT_VIOLATION"
    http_status = 500
    internal = True


class ConcurrencyConflict(MarketplaceError):
    code = "CONCURRENCY_CONFLICT"
    http_status = 409
    retryable = True


def error_response(exc: MarketplaceError):
    """JSON response for a domain error. Call from inside the except block."""
    if exc.internal:
        return server_error(f"{type(exc).__name__}: {exc.message}")
    return jsonify(exc.to_dict()), exc.http_status


def server_error(message: str):
    """
    Log the active exception with a correlation reference and return a
    generic 500. Raw storage errors never reach the client.
    """
    reference = uuid.uuid4().hex[:12]
    current_app.logger.exception("%s (ref=%s)", message, reference)
    return jsonify({"error": "Internal server error", "reference": reference}), 500
