from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from uuid import UUID, uuid4

from app.models.loan_application import LoanApplication
from app.schemas.loan import LoanEventType, LoanStatus, UploadSlot
from app.services.audit import loan_snapshot
from app.services.loan_errors import NotFound, PreconditionFailed
from app.services.loan_repository import LoanRepository
from app.services.notifications import LoanNotification, Notifier, notify_safely
from app.services.storage.key_generator import KeyGenerator
from app.services.storage.uploader import BlobUploadClient

logger = logging.getLogger(__name__)


# Magic byte signatures for known binary file types.
# Used to cross-check that uploaded file content matches the claimed extension.
_MAGIC_SIGNATURES: dict[str, list[bytes]] = {
    ".pdf": [b"%PDF"],
    ".png": [b"\x89PNG\r\n\x1a\n"],
    ".jpg": [b"\xff\xd8\xff"],
    ".jpeg": [b"\xff\xd8\xff"],
}

_CONTENT_TYPES = {
    ".pdf": "application/pdf",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
}

# Extensions whose content can execute scripts when rendered in a browser.
_DANGEROUS_EXTENSIONS = {".html", ".htm", ".svg", ".xhtml", ".js", ".mjs", ".xml"}

SLOT_EXTENSIONS = {".pdf", ".png", ".jpg", ".jpeg"}

# Slots can only be reworked while the loan is still under review.
_REWORKABLE_STATUSES = {LoanStatus.DRAFT.value, LoanStatus.PENDING.value}


def _validate_content_type(header_bytes: bytes, ext: str) -> None:
    """Validate that file content matches claimed extension via magic bytes.

    Raises ValueError if the content does not match or the extension is dangerous.
    """
    if ext in _DANGEROUS_EXTENSIONS:
        raise ValueError(
            f"File type '{ext}' is not allowed because it may contain executable content"
        )
    signatures = _MAGIC_SIGNATURES.get(ext)
    if signatures is None:
        return
    if not any(header_bytes.startswith(sig) for sig in signatures):
        raise ValueError(f"File content does not match the expected format for '{ext}'")


def validate_upload(
    content: bytes,
    filename: str | None,
    *,
    allowed_extensions: set[str] = SLOT_EXTENSIONS,
    max_size_bytes: int = 0,
) -> str:
    """Check an uploaded file and return the content type to store it with."""
    ext = Path(filename or "").suffix.lower()
    if ext not in allowed_extensions:
        raise PreconditionFailed(
            f"File type not allowed. Allowed extensions: {', '.join(sorted(allowed_extensions))}",
            filename=filename,
        )
    if not content:
        raise PreconditionFailed("File is empty", filename=filename)
    if max_size_bytes and len(content) > max_size_bytes:
        raise PreconditionFailed(
            f"File exceeds maximum allowed size of {max_size_bytes // (1024 * 1024)} MB",
            filename=filename,
        )
    try:
        _validate_content_type(content[:16], ext)
    except ValueError as exc:
        raise PreconditionFailed(str(exc), filename=filename) from exc
    return _CONTENT_TYPES.get(ext, "application/octet-stream")


def new_upload_id(prefix: str) -> str:
    return f"{prefix}-{uuid4().hex[:16]}"


class LoanUploadService:
    """Rejection and replacement of the documents a client attaches to a loan."""

    def __init__(
        self,
        repository: LoanRepository,
        uploader: BlobUploadClient,
        notifier: Notifier,
        *,
        max_size_bytes: int = 0,
    ) -> None:
        self.repository = repository
        self.uploader = uploader
        self.notifier = notifier
        self.max_size_bytes = max_size_bytes

    async def _get_reworkable_loan(self, loan_id: UUID) -> LoanApplication:
        loan = await self.repository.get(loan_id)
        if not loan:
            raise NotFound("loan_application", loan_id)
        if loan.status not in _REWORKABLE_STATUSES:
            raise PreconditionFailed("uploads can only change while the loan is under review", status=loan.status)
        return loan

    async def reject_upload(
        self,
        loan_id: UUID,
        slot: UploadSlot,
        reason: str,
        *,
        actor_id: str | None = None,
    ) -> LoanApplication:
        if not (reason or "").strip():
            raise PreconditionFailed("reason required")
        loan = await self._get_reworkable_loan(loan_id)

        before = loan_snapshot(loan)
        setattr(loan, slot.value, None)
        setattr(loan, slot.upload_id_field, None)
        self.repository.add_event(loan.id, LoanEventType.DOCS_REJECT.value)
        self.repository.record_audit(
            loan, actor_id=actor_id, action=f"loan_application.{slot.value}_rejected", before=before
        )
        await self.repository.commit()
        await self.repository.refresh(loan)

        await notify_safely(
            self.notifier,
            LoanNotification(
                event="loan.upload_rejected",
                loan_id=loan.id,
                user_id=loan.user_id,
                payload={"slot": slot.value, "reason": reason.strip()},
            ),
        )
        return loan

    async def replace_upload(
        self,
        loan_id: UUID,
        slot: UploadSlot,
        content: bytes,
        filename: str | None,
        *,
        actor_id: str | None = None,
    ) -> LoanApplication:
        content_type = validate_upload(content, filename, max_size_bytes=self.max_size_bytes)
        loan = await self._get_reworkable_loan(loan_id)

        upload_id = new_upload_id(slot.value)
        key = KeyGenerator.upload_slot_key(loan.user_id, loan.id, slot.value, upload_id, filename)
        result = await self.uploader.upload(content, key, content_type)

        before = loan_snapshot(loan)
        setattr(loan, slot.value, result.object_key)
        setattr(loan, slot.upload_id_field, upload_id)
        now = datetime.now(timezone.utc)
        for event in await self.repository.open_events(loan.id, LoanEventType.DOCS_REJECT.value):
            event.is_answered = True
            event.answered_at = now
        self.repository.record_audit(
            loan, actor_id=actor_id, action=f"loan_application.{slot.value}_replaced", before=before
        )
        await self.repository.commit()
        await self.repository.refresh(loan)
        logger.info("Replaced upload slot %s", slot.value, extra={"loan_id": loan.id})
        return loan
