# Overview: Transaction, locking and retry helpers shared by every mutating service.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import TransactionConflict
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Rows that also carry version_id_col are still protected there.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks), StaleDataError
    (optimistic locking conflicts) and IntegrityError (a concurrent writer
    inserted the same unique key first; the retry sees its row). When the
    attempts run out the failure surfaces as TransactionConflict.
    """
    if attempts is None:
        attempts = current_app.config.get("TRANSACTION_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("TRANSACTION_RETRY_BACKOFF", 0.1)
    attempts = max(1, attempts)

    for attempt in range(attempts):
        try:
            return func()
        except (IntegrityError, OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise TransactionConflict(
                    "Concurrent update conflict; please retry",
                    {"attempts": attempts, "cause": type(exc).__name__},
                ) from exc
            current_app.logger.warning(
                "Retrying transaction after %s (attempt %d/%d)",
                type(exc).__name__, attempt + 1, attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))


def run_in_transaction(func, *, commit: bool = True):
    """
    Run func as one unit of work.

    commit=True: func runs in its own transaction; success commits, any
    exception rolls back, lock/version and unique-key conflicts are retried.
    commit=False: the caller owns the transaction; changes are flushed only.
    """
    if not commit:
        result = func()
        db.session.flush()
        return result

    def _op():
        try:
            result = func()
            db.session.commit()
            return result
        except (IntegrityError, OperationalError, StaleDataError):
            raise
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op)


def insert_if_absent(model, values: dict, index_elements: list[str]) -> None:
    """
    INSERT a row unless one with the same unique key already exists.

    Uses ON CONFLICT DO NOTHING where the dialect has it so that two
    transactions creating the same row never fail each other.
    """
    dialect = db.session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        exists = db.session.query(model.id).filter_by(
            **{k: values[k] for k in index_elements}
        ).first()
        if exists is None:
            db.session.add(model(**values))
            db.session.flush()
        return

    stmt = insert(model).values(**values).on_conflict_do_nothing(index_elements=index_elements)
    db.session.execute(stmt)
