from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable
from uuid import UUID

from app.models.generated_document import GeneratedDocument
from app.models.loan_application import LoanApplication
from app.models.types import mask_account_number
from app.schemas.loan import CANONICAL_DOCUMENT_KINDS, LoanStatus
from app.services.audit import loan_snapshot
from app.services.loan_errors import AlreadyDisbursed, NotFound, PreconditionFailed
from app.services.loan_repository import LoanRepository
from app.services.loan_uploads import SLOT_EXTENSIONS, new_upload_id, validate_upload
from app.services.notifications import LoanNotification, Notifier, notify_safely
from app.services.storage.key_generator import KeyGenerator
from app.services.storage.uploader import BlobUploadClient

logger = logging.getLogger(__name__)


def covers_all_document_kinds(documents: Iterable[GeneratedDocument]) -> bool:
    covered: set[str] = set()
    for document in documents:
        covered.update(document.document_types or [])
    return all(kind.value in covered for kind in CANONICAL_DOCUMENT_KINDS)


class LoanDisbursementService:
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

    async def _get_loan(self, loan_id: UUID) -> LoanApplication:
        loan = await self.repository.get(loan_id)
        if not loan:
            raise NotFound("loan_application", loan_id)
        return loan

    async def _store_extract(self, loan: LoanApplication, content: bytes, filename: str | None) -> str:
        content_type = validate_upload(
            content, filename, allowed_extensions=SLOT_EXTENSIONS, max_size_bytes=self.max_size_bytes
        )
        upload_id = new_upload_id("extract")
        key = KeyGenerator.extract_key(loan.user_id, loan.id, upload_id, filename)
        result = await self.uploader.upload(content, key, content_type)
        return result.object_key

    async def disburse(
        self,
        loan_id: UUID,
        *,
        cycode: str | None = None,
        extract_content: bytes | None = None,
        extract_filename: str | None = None,
        actor_id: str | None = None,
    ) -> LoanApplication:
        loan = await self._get_loan(loan_id)
        if loan.is_disbursed:
            raise AlreadyDisbursed(loan.id)
        if loan.status != LoanStatus.APPROVED.value:
            raise PreconditionFailed("only approved loans can be disbursed", status=loan.status)
        documents = await self.repository.list_documents_for_loan(loan.id)
        if not covers_all_document_kinds(documents):
            raise PreconditionFailed("loan documents have not been generated")

        extract = None
        if extract_content is not None:
            extract = await self._store_extract(loan, extract_content, extract_filename)

        before = loan_snapshot(loan)
        loan.is_disbursed = True
        loan.disbursed_at = datetime.now(timezone.utc)
        if cycode:
            loan.cycode = cycode
        if extract:
            loan.extract = extract
        self.repository.record_audit(loan, actor_id=actor_id, action="loan_application.disbursed", before=before)
        await self.repository.commit()
        await self.repository.refresh(loan)
        logger.info("Loan disbursed", extra={"loan_id": loan.id})

        await notify_safely(
            self.notifier,
            LoanNotification(
                event="loan.disbursed",
                loan_id=loan.id,
                user_id=loan.user_id,
                payload={
                    "cantity": loan.cantity,
                    "bank_account": mask_account_number(loan.bank_number_account),
                    "disbursed_at": loan.disbursed_at.isoformat(),
                },
            ),
        )
        return loan

    async def update_cycode(
        self, loan_id: UUID, cycode: str, *, actor_id: str | None = None
    ) -> LoanApplication:
        loan = await self._get_loan(loan_id)
        if not loan.is_disbursed:
            raise PreconditionFailed("loan has not been disbursed")
        before = loan_snapshot(loan)
        loan.cycode = cycode
        self.repository.record_audit(loan, actor_id=actor_id, action="loan_application.cycode_updated", before=before)
        await self.repository.commit()
        await self.repository.refresh(loan)
        return loan

    async def upload_extract(
        self,
        loan_id: UUID,
        content: bytes,
        filename: str | None,
        *,
        cycode: str | None = None,
        actor_id: str | None = None,
    ) -> LoanApplication:
        loan = await self._get_loan(loan_id)
        return await self._attach_extract(loan, content, filename, cycode=cycode, actor_id=actor_id)

    async def upload_extract_by_cycode(
        self,
        cycode: str,
        content: bytes,
        filename: str | None,
        *,
        actor_id: str | None = None,
    ) -> LoanApplication:
        """Attach a bank statement named ``<cycode>-<anything>.pdf`` to its loan."""
        loan = await self.repository.get_by_cycode(cycode)
        if not loan:
            raise NotFound("loan_application", cycode)
        stem_parts = Path(filename or "").stem.split("-")
        if len(stem_parts) < 2:
            raise PreconditionFailed("extract file name must look like '<cycode>-<number>.pdf'", filename=filename)
        if stem_parts[0] != loan.cycode:
            raise PreconditionFailed(
                "extract file name does not match the loan cycode",
                file_cycode=stem_parts[0],
                cycode=loan.cycode,
            )
        return await self._attach_extract(loan, content, filename, actor_id=actor_id)

    async def _attach_extract(
        self,
        loan: LoanApplication,
        content: bytes,
        filename: str | None,
        *,
        cycode: str | None = None,
        actor_id: str | None = None,
    ) -> LoanApplication:
        if not loan.is_disbursed:
            raise PreconditionFailed("loan has not been disbursed")
        extract = await self._store_extract(loan, content, filename)
        before = loan_snapshot(loan)
        loan.extract = extract
        if cycode:
            loan.cycode = cycode
        self.repository.record_audit(loan, actor_id=actor_id, action="loan_application.extract_uploaded", before=before)
        await self.repository.commit()
        await self.repository.refresh(loan)
        return loan
