# Overview: Transaction scope and row-locking helpers shared by the ledger processors.

from __future__ import annotations

import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from ..errors import TransactionFailure
from ..extensions import db


logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


@contextmanager
def atomic():
    """
    Run the enclosed block as exactly one database transaction.

    Commits on normal exit. Any exception rolls the whole session back;
    store-level errors (lock timeouts, constraint violations, stale
    versions) are re-raised as TransactionFailure with the original
    exception chained. There is no retry: the caller re-requests.
    """
    try:
        yield db.session
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.warning("Transaction rolled back: %s", exc.__class__.__name__)
        raise TransactionFailure() from exc
    except Exception:
        db.session.rollback()
        raise
