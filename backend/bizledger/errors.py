# Overview: Domain error taxonomy shared by services and routes.

from __future__ import annotations

from dataclasses import dataclass


class BizLedgerError(Exception):
    """Base class for domain errors raised by bizledger services."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class NoIdentity(BizLedgerError):
    """No tenant could be resolved; nothing can be tenant-scoped."""


class NotFound(BizLedgerError):
    """Entity does not exist for the calling tenant."""


class ConstraintViolation(BizLedgerError):
    """
    Duplicate key, stale write or illegal state transition.

    Recoverable by the caller retrying with fresh data.
    """


class StoreUnavailable(BizLedgerError):
    """Transient store failure (lock timeout, lost connection). Retryable."""


class ValidationError(BizLedgerError, ValueError):
    """400-level input problem, rejected before any tax computation."""


class ExternalPlatformError(BizLedgerError):
    """An external accounting platform rejected or failed a request."""

    def __init__(self, message: str, status_code: int | None = None, details: dict | None = None):
        super().__init__(message, details)
        self.status_code = status_code


class ExternalPlatformUnavailable(ExternalPlatformError):
    """Platform unreachable or timed out."""


@dataclass(frozen=True)
class DataIntegrityWarning:
    """
    Stored invoice figure disagrees with recomputation from its items.

    Not raised: reported to callers as a non-blocking badge and logged.
    """
    invoice_id: int
    field: str
    stored: int
    recomputed: int

    def to_dict(self) -> dict:
        return {
            "invoice_id": self.invoice_id,
            "field": self.field,
            "stored": self.stored,
            "recomputed": self.recomputed,
        }
