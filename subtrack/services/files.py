from __future__ import annotations

import base64
import binascii
import re
from uuid import UUID

from botocore.exceptions import BotoCoreError, ClientError
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from subtrack.core.config import settings
from subtrack.core.errors import InputValidationError, InvalidStateError, NotFoundError, StorageError
from subtrack.core.logging_setup import logger
from subtrack.models.base import utcnow
from subtrack.models.payment_cycle import PaymentCycle
from subtrack.models.subscription import FileType, Subscription, SubscriptionFile
from subtrack.services import access
from subtrack.services.access import Actor, require
from subtrack.services.audit import AuditService
from subtrack.services.storage import StorageBackend, get_storage

STORAGE_ERRORS = (OSError, ValueError, BotoCoreError, ClientError)
_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


def sanitize_filename(filename: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("_", filename.strip())
    return cleaned or "file"


def decode_base64_content(content: str) -> bytes:
    """Decode a base64 payload, accepting a ``data:<mime>;base64,`` prefix."""
    raw = content.strip()
    if raw.startswith("data:") and "," in raw:
        raw = raw.split(",", 1)[1]
    try:
        return base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InputValidationError("File content is not valid base64") from exc


def max_size_for(file_type: FileType) -> int:
    if file_type == FileType.INVOICE:
        return settings.invoice_max_bytes
    return settings.proof_of_payment_max_bytes


class SubscriptionFileService:
    def __init__(
        self,
        session: Session,
        storage: StorageBackend | None = None,
        audit_service: AuditService | None = None,
    ) -> None:
        self.session = session
        self._storage = storage
        self.audit = audit_service or AuditService(session)

    @property
    def storage(self) -> StorageBackend:
        if self._storage is None:
            self._storage = get_storage()
        return self._storage

    def _subscription_for(self, actor: Actor, subscription_id: UUID) -> Subscription:
        subscription = self.session.get(Subscription, subscription_id)
        if not subscription:
            raise NotFoundError("Subscription not found")
        require(access.can_access_files(actor, subscription.department_id))
        return subscription

    def _load_file(self, actor: Actor, file_id: UUID) -> SubscriptionFile:
        record = self.session.get(SubscriptionFile, file_id)
        if not record:
            raise NotFoundError("File not found")
        self._subscription_for(actor, record.subscription_id)
        return record

    def upload(
        self,
        actor: Actor,
        subscription_id: UUID,
        *,
        file_type: FileType,
        filename: str,
        data: bytes,
        mime_type: str | None = None,
    ) -> SubscriptionFile:
        if not data:
            raise InputValidationError("File is empty")
        limit = max_size_for(file_type)
        if len(data) > limit:
            raise InputValidationError(
                f"File size exceeds the limit of {limit // (1024 * 1024)}MB for {file_type.value}"
            )
        subscription = self._subscription_for(actor, subscription_id)

        stored_name = f"{int(utcnow().timestamp() * 1000)}_{sanitize_filename(filename)}"
        try:
            storage_path = self.storage.save_bytes(
                root=f"{subscription.id}/{file_type.value}",
                name=stored_name,
                data=data,
            )
        except STORAGE_ERRORS as exc:
            logger.exception("Failed to upload file to storage for subscription %s", subscription.id)
            raise StorageError() from exc

        record = SubscriptionFile(
            subscription_id=subscription.id,
            file_type=file_type,
            storage_path=storage_path,
            original_filename=filename,
            file_size=len(data),
            mime_type=mime_type or "application/octet-stream",
            uploaded_by=actor.user_id,
        )
        try:
            self.session.add(record)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Failed to save file record for %s", storage_path)
            self.discard_blob(storage_path)
            raise StorageError() from exc
        self.session.refresh(record)

        self.audit.record_event(
            "subscription.file.upload",
            "subscription_file",
            record.id,
            actor,
            {"subscription_id": str(subscription.id), "file_type": file_type.value, "size": record.file_size},
        )
        return record

    def upload_base64(
        self,
        actor: Actor,
        subscription_id: UUID,
        *,
        file_type: FileType,
        filename: str,
        content: str,
        mime_type: str | None = None,
    ) -> SubscriptionFile:
        data = decode_base64_content(content)
        return self.upload(
            actor, subscription_id, file_type=file_type, filename=filename, data=data, mime_type=mime_type
        )

    def list_files(
        self, actor: Actor, subscription_id: UUID, file_type: FileType | None = None
    ) -> list[SubscriptionFile]:
        self._subscription_for(actor, subscription_id)
        statement = select(SubscriptionFile).where(SubscriptionFile.subscription_id == subscription_id)
        if file_type:
            statement = statement.where(SubscriptionFile.file_type == file_type)
        return list(self.session.exec(statement.order_by(SubscriptionFile.created_at.desc())).all())

    def download(self, actor: Actor, file_id: UUID) -> tuple[SubscriptionFile, bytes]:
        record = self._load_file(actor, file_id)
        try:
            data = self.storage.load_bytes(record.storage_path)
        except FileNotFoundError as exc:
            raise NotFoundError("File storage path not found") from exc
        except STORAGE_ERRORS as exc:
            logger.exception("Failed to read %s from storage", record.storage_path)
            raise StorageError() from exc
        return record, data

    def delete_file(self, actor: Actor, file_id: UUID) -> None:
        record = self._load_file(actor, file_id)
        linked = self.session.exec(
            select(PaymentCycle.id).where(PaymentCycle.invoice_file_id == file_id)
        ).first()
        if linked:
            raise InvalidStateError("File is linked to a payment cycle invoice and cannot be deleted")

        storage_path = record.storage_path
        try:
            self.session.delete(record)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Failed to delete file record %s", file_id)
            raise StorageError() from exc
        self.discard_blob(storage_path)
        self.audit.record_event("subscription.file.delete", "subscription_file", file_id, actor)

    def discard(self, record: SubscriptionFile) -> None:
        """Remove a file that was stored for an operation that then failed."""
        storage_path = record.storage_path
        try:
            self.session.delete(record)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            logger.exception("Failed to remove orphaned file record %s", record.id)
            return
        self.discard_blob(storage_path)

    def discard_blob(self, storage_path: str) -> None:
        try:
            self.storage.delete(storage_path)
        except STORAGE_ERRORS:
            logger.warning("Could not remove stored file %s", storage_path, exc_info=True)
