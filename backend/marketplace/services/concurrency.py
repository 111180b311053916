# Overview: Service-layer helpers for row locking, optimistic version checks and transactional retries.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrencyConflict
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The version_id columns still catch lost updates there.
    """
    return query.with_for_update()


def check_version(entity, expected_version: int | None) -> None:
    """
    Optimistic concurrency check against a version the caller read earlier.

    None skips the check (the row lock and version_id_col still apply).
    """
    if expected_version is None:
        return
    if int(expected_version) != entity.version_id:
        raise ConcurrencyConflict(
            f"{type(entity).__name__} {entity.id} was modified by another request "
            f"(expected version {expected_version}, found {entity.version_id})",
            current_version=entity.version_id,
        )


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute one unit of work, rolling back on any failure.

    Retries on OperationalError (deadlocks, lock timeouts). StaleDataError
    means another request committed first; it is surfaced as
    ConcurrencyConflict so the caller re-reads state before retrying.
    """
    for attempt in range(attempts):
        try:
            return func()
        except OperationalError:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
        except StaleDataError as exc:
            db.session.rollback()
            raise ConcurrencyConflict(
                "Record was modified by another request; reload and retry"
            ) from exc
        except Exception:
            db.session.rollback()
            raise


def commit_with_retry(*, attempts: int = 3, backoff_base: float = 0.1):
    """Commit current session with retry handling."""
    def _op():
        db.session.commit()
    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
