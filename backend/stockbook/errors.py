# Overview: Error taxonomy shared by the stock ledger, audit log, counters and challan issuer.

from __future__ import annotations


class LedgerError(Exception):
    """
    Base class for every business error raised by the ledger services.

    Each error carries a stable `kind`, the HTTP status a route should map it
    to, and structured `details` so callers can build an actionable message
    (exact shortfall, offending ids) instead of a generic failure.
    """
    kind = "ledger_error"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.kind,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(LedgerError, ValueError):
    """400-level input problem. Never partially applied."""
    kind = "validation_error"
    status_code = 400


class NotFound(LedgerError, LookupError):
    kind = "not_found"
    status_code = 404


class InsufficientStock(LedgerError):
    """Requested quantity exceeds what the colour bucket holds."""
    kind = "insufficient_stock"
    status_code = 409

    def __init__(self, *, color: str, available: int, requested: int, box_id: int | None = None, box_code: str | None = None):
        label = f'box "{box_code}" ' if box_code else ""
        super().__init__(
            f'Insufficient stock for {label}color "{color}". '
            f"Available: {available}, Required: {requested}",
            details={
                "box_id": box_id,
                "box_code": box_code,
                "color": color,
                "available": available,
                "requested": requested,
            },
        )
        self.color = color
        self.available = available
        self.requested = requested
        self.box_id = box_id


class AlreadyConsumed(LedgerError):
    """One or more movement records are already attached to a challan (or do not exist)."""
    kind = "already_consumed"
    status_code = 409

    def __init__(self, consumed_ids=(), missing_ids=()):
        consumed = sorted(consumed_ids)
        missing = sorted(missing_ids)
        super().__init__(
            "Some audits are invalid or already used",
            details={"consumed_ids": consumed, "missing_ids": missing},
        )
        self.consumed_ids = consumed
        self.missing_ids = missing


class ConflictRetryable(LedgerError):
    """Transient concurrency conflict; safe to retry the whole operation."""
    kind = "conflict_retryable"
    status_code = 503
