# Overview: Error taxonomy shared by services and routes.

from __future__ import annotations


class LedgerError(Exception):
    """Base class for failures surfaced to API callers."""
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(LedgerError):
    """400-level input problem, rejected before any mutation begins."""
    status_code = 400


class NotFoundError(LedgerError):
    """Target identity does not exist; nothing was changed."""
    status_code = 404


class ConflictError(LedgerError):
    """409-level uniqueness or business rule conflict (e.g., duplicate SKU)."""
    status_code = 409


class InsufficientStockError(ConflictError):
    """Raised when the stock floor guard rejects a decrement."""


class TransactionFailure(LedgerError):
    """A unit of work failed and was rolled back in full."""
    status_code = 500


class UnitOfWorkTimeout(TransactionFailure):
    """A unit of work exceeded its deadline and was rolled back."""
    status_code = 503


class BroadcastFailure(LedgerError):
    """Delivery to a subscriber failed. Logged, never escalated."""
