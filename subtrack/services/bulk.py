from collections.abc import Callable, Sequence
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, select

from subtrack.core.config import settings
from subtrack.core.errors import InputValidationError, ServiceError, StorageError
from subtrack.core.logging_setup import logger
from subtrack.models.base import utcnow
from subtrack.schemas.common import BulkItemError, BulkResult

# Applies one sub-batch and returns per-id failure messages for ids it skipped.
BatchApplier = Callable[[list[UUID]], dict[UUID, str]]


def run_in_batches(
    ids: Sequence[UUID],
    apply_batch: BatchApplier,
    *,
    label: str = "items",
    batch_size: int | None = None,
    max_items: int | None = None,
) -> BulkResult:
    """Apply ``apply_batch`` to fixed-size slices of ``ids``.

    Sub-batches commit independently: a failing slice is reported item by
    item and earlier slices stay applied.
    """
    batch_size = batch_size or settings.bulk_batch_size
    max_items = max_items or settings.bulk_max_items

    unique_ids = list(dict.fromkeys(ids))
    if not unique_ids:
        raise InputValidationError(f"No {label} selected")
    if len(unique_ids) > max_items:
        raise InputValidationError(f"Cannot update more than {max_items} {label} at once")

    result = BulkResult()
    for start in range(0, len(unique_ids), batch_size):
        batch = unique_ids[start:start + batch_size]
        try:
            skipped = apply_batch(batch)
        except ServiceError as exc:
            logger.warning("Bulk update of %d %s failed: %s", len(batch), label, exc.message)
            result.failed += len(batch)
            result.errors.extend(BulkItemError(id=item_id, message=exc.message) for item_id in batch)
            continue
        result.failed += len(skipped)
        result.successful += len(batch) - len(skipped)
        result.errors.extend(BulkItemError(id=item_id, message=message) for item_id, message in skipped.items())
    return result


def bulk_warning(result: BulkResult, label: str) -> str | None:
    if not result.failed:
        return None
    return f"{result.failed} {label} failed to update"


def toggle_active_in_batches(
    session: Session,
    model: type[SQLModel],
    ids: Sequence[UUID],
    is_active: bool,
    *,
    label: str,
    protected: dict[UUID, str] | None = None,
) -> BulkResult:
    """Set ``is_active`` on many rows of ``model``, one commit per sub-batch.

    ``protected`` maps ids that must not change to the message reported for them.
    """
    protected = protected or {}

    def apply(batch: list[UUID]) -> dict[UUID, str]:
        skipped = {item_id: protected[item_id] for item_id in batch if item_id in protected}
        candidates = [item_id for item_id in batch if item_id not in skipped]
        found = set(session.exec(select(model.id).where(model.id.in_(candidates))).all()) if candidates else set()
        skipped.update({item_id: f"{label.capitalize()} not found" for item_id in candidates if item_id not in found})
        try:
            if found:
                session.exec(
                    update(model)
                    .where(model.id.in_(found))
                    .values(is_active=is_active, updated_at=utcnow())
                    .execution_options(synchronize_session=False)
                )
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception("Bulk %s update failed for a batch of %d", label, len(batch))
            raise StorageError() from exc
        return skipped

    return run_in_batches(ids, apply, label=f"{label}s")
