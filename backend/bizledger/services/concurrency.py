# Overview: Transaction, retry and optimistic-concurrency helpers for the fact store.

from __future__ import annotations

import time
from contextlib import contextmanager

import structlog
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConstraintViolation, StoreUnavailable
from ..extensions import db

logger = structlog.get_logger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def check_version(entity, expected_version: int | None, label: str) -> None:
    """
    Reject a write computed from an older read of the row.

    expected_version=None skips the check (caller opted out).
    """
    if expected_version is None:
        return
    if entity.version_id != expected_version:
        raise ConstraintViolation(
            f"{label} was modified by another request",
            details={"expected_version": expected_version, "current_version": entity.version_id},
        )


@contextmanager
def atomic():
    """
    One unit of work: commit on success, roll back everything on failure.

    Store exceptions are translated to the domain taxonomy so callers can tell
    "not saved, retry" (StoreUnavailable) from "conflict" (ConstraintViolation).
    """
    try:
        yield db.session
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConstraintViolation("Write violates a uniqueness or integrity constraint") from exc
    except StaleDataError as exc:
        db.session.rollback()
        raise ConstraintViolation("Row was modified by another request") from exc
    except OperationalError as exc:
        db.session.rollback()
        raise StoreUnavailable("Store unavailable, retry later") from exc
    except Exception:
        db.session.rollback()
        raise


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on transient failures.

    Retries on StoreUnavailable (deadlocks, lock timeouts). Stale writes are
    not retried: a conflicting edit must be resubmitted with fresh data.
    """
    for attempt in range(attempts):
        try:
            return func()
        except StoreUnavailable:
            if attempt >= attempts - 1:
                raise
            logger.warning("store.retry", attempt=attempt + 1, attempts=attempts)
            time.sleep(backoff_base * (2 ** attempt))
    raise StoreUnavailable("Store unavailable, retry later")


def read_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """Run a read-only query, mapping OperationalError to StoreUnavailable."""
    def _op():
        try:
            return func()
        except OperationalError as exc:
            db.session.rollback()
            raise StoreUnavailable("Store unavailable, retry later") from exc
    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
