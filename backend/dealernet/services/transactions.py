# Overview: Transaction boundary helpers; row locks, all-or-nothing execution, commit-then-notify.

from __future__ import annotations

import logging
from typing import Callable

from sqlalchemy.exc import DataError, IntegrityError

from ..errors import ErrorKind, Result, ServiceError

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for aggregate recomputation.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def atomic(
    session,
    op: Callable[[], object],
    *,
    constraint_failure: ErrorKind | None = None,
    description: str = "operation",
) -> Result:
    """
    Run op() as one transaction and commit it.

    - ServiceError raised by op rolls back and becomes a failed Result.
    - IntegrityError/DataError roll back and become `constraint_failure`
      when one is given; otherwise they propagate.
    - Anything else rolls back and propagates (storage unavailable, bugs).
    """
    try:
        value = op()
        session.commit()
    except ServiceError as exc:
        session.rollback()
        return Result.fail(exc.kind, exc.reason)
    except (IntegrityError, DataError) as exc:
        session.rollback()
        if constraint_failure is None:
            raise
        logger.warning("%s aborted by storage constraint: %s", description, exc.orig)
        return Result.fail(constraint_failure, f"{description} violated a storage constraint")
    except BaseException:
        session.rollback()
        raise
    return Result.success(value)


def commit_then_notify(
    session,
    mutate: Callable[[], object],
    notify: Callable[[object], None] | None,
    *,
    description: str = "operation",
    log: logging.Logger | None = None,
) -> Result:
    """
    Two phases, in this order:

    1. mutate() inside atomic(); a failure here is returned and nothing is sent.
    2. notify(value) only after the commit succeeded. Any exception from the
       notifier is logged and swallowed; the committed result is returned.
    """
    result = atomic(session, mutate, description=description)
    if not result.ok or notify is None:
        return result

    try:
        notify(result.value)
    except Exception:
        (log or logger).exception("Post-commit notification failed for %s", description)

    return result
