"""Conditional single-row updates used for optimistic concurrency.

Every guarded transition is one ``UPDATE ... WHERE id = :id AND <guards>``.
Zero affected rows means another writer changed the row first.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel

from subtrack.core.errors import ConcurrencyConflictError, StorageError
from subtrack.core.logging_setup import logger
from subtrack.models.base import utcnow


def guarded_update(
    session: Session,
    model: type[SQLModel],
    row_id: UUID,
    guards: list[Any],
    values: dict[str, Any],
    *,
    entity: str,
) -> None:
    """Apply ``values`` to the row only while every guard still holds.

    Does not commit, so callers can add dependent rows (approval records)
    to the same transaction.
    """
    values = {**values, "updated_at": utcnow()}
    statement = (
        update(model)
        .where(model.id == row_id, *guards)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    try:
        result = session.exec(statement)
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Guarded update failed on %s %s", entity, row_id)
        raise StorageError() from exc
    if result.rowcount != 1:
        session.rollback()
        logger.info("Concurrent modification detected on %s %s", entity, row_id)
        raise ConcurrencyConflictError(entity)


def commit_or_raise(session: Session, operation: str) -> None:
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Commit failed during %s", operation)
        raise StorageError() from exc
