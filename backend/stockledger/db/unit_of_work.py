"""Unit of work: one explicit transactional boundary per mutating operation.

Usage::

    with UnitOfWork(db) as uow:
        store = QuantityStore(uow.session)
        ...
        uow.flush()

Leaving the block normally commits; any exception rolls back. Database
errors are translated into the ledger's taxonomy so callers only ever see
``StockLedgerError`` subclasses: a unique-constraint hit on a
``reference_code`` column becomes ``DuplicateReference``, everything else
``TransactionFailure``. Nothing is retried here.
"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from stockledger.core.exceptions import (
    DuplicateReference,
    StockLedgerError,
    TransactionFailure,
)

logger = logging.getLogger(__name__)


def _is_reference_violation(exc: IntegrityError) -> bool:
    message = str(exc.orig).lower()
    return "reference_code" in message and ("unique" in message or "duplicate" in message)


def translate_db_error(exc: SQLAlchemyError) -> StockLedgerError:
    """Map a SQLAlchemy error onto the ledger taxonomy."""
    if isinstance(exc, IntegrityError) and _is_reference_violation(exc):
        return DuplicateReference()
    return TransactionFailure(f"Transaction failed: {exc.__class__.__name__}")


def flush_or_raise(session: Session) -> None:
    """Flush pending writes, translating constraint violations."""
    try:
        session.flush()
    except SQLAlchemyError as exc:
        raise translate_db_error(exc) from exc


class UnitOfWork:
    """Commit-or-rollback wrapper around a SQLAlchemy session."""

    def __init__(self, session: Session, label: Optional[str] = None):
        self.session = session
        self.label = label or "unit of work"

    def __enter__(self) -> "UnitOfWork":
        return self

    def flush(self) -> None:
        flush_or_raise(self.session)

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            self.session.rollback()
            if isinstance(exc, SQLAlchemyError):
                logger.error("%s rolled back: %s", self.label, exc, exc_info=exc)
                raise translate_db_error(exc) from exc
            return False

        try:
            self.session.commit()
        except SQLAlchemyError as commit_exc:
            self.session.rollback()
            logger.error("%s failed to commit: %s", self.label, commit_exc, exc_info=True)
            raise translate_db_error(commit_exc) from commit_exc
        return False
