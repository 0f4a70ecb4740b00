# Overview: Transaction scope and row locking shared by the order, purchase order and payment engines.

from __future__ import annotations

import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from ..validation import InternalError

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


@contextmanager
def transaction(session):
    """
    Unit of work around one engine operation.

    Engines only flush; this commits once at the end or rolls back
    everything they wrote. Driver errors surface as InternalError so
    routes never leak SQL text to clients. No retries: a failed
    operation is reported to the caller as-is.
    """
    try:
        yield session
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Database error, transaction rolled back")
        raise InternalError("Internal server error") from exc
    except Exception:
        session.rollback()
        raise
