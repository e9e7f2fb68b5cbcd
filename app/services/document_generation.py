"""Generation of the legal document set for approved loans.

A sweep discovers loans that reached an approved state without documents, then
renders the four canonical documents for each of them, bundles them into one
zip archive and uploads it. Loans are handled one at a time and a failure on one
loan is recorded in the batch report without touching the others. A loan ends up
with a single record covering all four kinds, or with nothing.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Protocol
from uuid import UUID, uuid4

from app.core.context import get_job_id, set_job_id
from app.models.generated_document import GeneratedDocument
from app.models.loan_application import LoanApplication
from app.schemas.loan import (
    CANONICAL_DOCUMENT_KINDS,
    BatchItemStatus,
    BatchReport,
    BatchReportDetail,
    GeneratedDocumentKind,
    LoanStatus,
)
from app.services.document_renderer import DocumentWorkItem, bundle_documents
from app.services.loan_errors import LoanError, NotFound, PreconditionFailed
from app.services.loan_repository import UNDOCUMENTABLE_STATUSES, LoanRepository
from app.services.storage.key_generator import KeyGenerator
from app.services.storage.uploader import BlobUploadClient

logger = logging.getLogger(__name__)

BUNDLE_CONTENT_TYPE = "application/zip"


class Renderer(Protocol):
    async def render(self, item: DocumentWorkItem) -> bytes: ...


@dataclass(frozen=True)
class DocumentGenerationConfig:
    batch_size: int | None = None
    render_concurrency: int = 4
    claim_ttl_seconds: int = 900


@dataclass(frozen=True)
class LoanDocumentTarget:
    """Plain copy of the loan fields a run needs.

    Taken before processing starts so a rollback on one loan never leaves the
    remaining loans of the batch pointing at expired ORM state.
    """

    loan_id: UUID
    user_id: UUID | None
    full_name: str
    status: str
    signature: str | None
    cantity: str
    entity: str | None
    account_number: str | None
    saving_account: bool

    @classmethod
    def from_loan(cls, loan: LoanApplication) -> "LoanDocumentTarget":
        user = loan.user
        return cls(
            loan_id=loan.id,
            user_id=loan.user_id,
            full_name=user.full_name if user is not None else "",
            status=loan.status,
            signature=loan.signature,
            cantity=loan.cantity,
            entity=loan.entity,
            account_number=loan.bank_number_account,
            saving_account=bool(loan.bank_saving_account),
        )


def build_work_items(target: LoanDocumentTarget, identity_number: str) -> list[DocumentWorkItem]:
    items = []
    for kind in CANONICAL_DOCUMENT_KINDS:
        about_loan = kind == GeneratedDocumentKind.ABOUT_LOAN
        items.append(
            DocumentWorkItem(
                kind=kind,
                loan_id=target.loan_id,
                user_id=target.user_id,
                full_name=target.full_name,
                identity_number=identity_number,
                signature=target.signature,
                cantity=target.cantity,
                entity=target.entity if about_loan else None,
                account_number=target.account_number if about_loan else None,
                saving_account=target.saving_account,
            )
        )
    return items


class DocumentGenerationService:
    def __init__(
        self,
        repository: LoanRepository,
        renderer: Renderer,
        uploader: BlobUploadClient,
        config: DocumentGenerationConfig | None = None,
    ) -> None:
        self.repository = repository
        self.renderer = renderer
        self.uploader = uploader
        self.config = config or DocumentGenerationConfig()

    async def find_eligible(self) -> list[LoanApplication]:
        return await self.repository.find_eligible(limit=self.config.batch_size)

    async def run_sweep(self) -> BatchReport:
        if get_job_id() == "-":
            set_job_id(f"sweep-{uuid4().hex[:12]}")
        loans = await self.find_eligible()
        logger.info("Document sweep found %s eligible loans", len(loans))
        report = await self.process_batch(loans)
        logger.info(
            "Document sweep finished processed=%s successful=%s failed=%s",
            report.processed,
            report.successful,
            report.failed,
        )
        return report

    async def process_batch(self, loans: Iterable[LoanApplication]) -> BatchReport:
        targets = [LoanDocumentTarget.from_loan(loan) for loan in loans]
        report = BatchReport()
        for target in targets:
            report.processed += 1
            try:
                await self._generate(target)
            except LoanError as exc:
                report.failed += 1
                report.details.append(self._detail(target, BatchItemStatus.ERROR, str(exc)))
                logger.warning(
                    "Document generation failed: %s",
                    exc,
                    extra={"loan_id": target.loan_id},
                )
            except Exception as exc:
                report.failed += 1
                report.details.append(self._detail(target, BatchItemStatus.ERROR, str(exc) or type(exc).__name__))
                logger.exception(
                    "Unexpected error generating documents",
                    extra={"loan_id": target.loan_id},
                )
            else:
                report.successful += 1
                report.details.append(self._detail(target, BatchItemStatus.SUCCESS))
        return report

    async def generate_for_loan(self, loan_id: UUID, *, force: bool = False) -> GeneratedDocument:
        loan = await self.repository.get(loan_id)
        if not loan:
            raise NotFound("loan_application", loan_id)
        if loan.status in UNDOCUMENTABLE_STATUSES:
            raise PreconditionFailed("loan is not in a documentable status", status=loan.status)
        has_documents = await self.repository.has_documents(loan_id)
        if has_documents and not force:
            raise PreconditionFailed("documents already generated for loan")
        return await self._generate(LoanDocumentTarget.from_loan(loan), replace_existing=has_documents)

    @staticmethod
    def _detail(
        target: LoanDocumentTarget, status: BatchItemStatus, error: str | None = None
    ) -> BatchReportDetail:
        return BatchReportDetail(
            loan_id=target.loan_id,
            user_id=target.user_id,
            name=target.full_name,
            status=status,
            error=error,
        )

    async def _generate(
        self, target: LoanDocumentTarget, *, replace_existing: bool = False
    ) -> GeneratedDocument:
        # Without replace_existing the claim also fails once documents exist, so a
        # loan discovered by two runs is only documented by the first to commit.
        claimed = await self.repository.claim_for_documents(
            target.loan_id,
            ttl_seconds=self.config.claim_ttl_seconds,
            allow_existing=replace_existing,
        )
        if not claimed:
            if not replace_existing and await self.repository.has_documents(target.loan_id):
                raise PreconditionFailed("documents already generated for loan")
            raise PreconditionFailed("loan documents are claimed by another run")

        try:
            identity_number = await self._validate(target)
            content = await self._render_bundle(build_work_items(target, identity_number))
            key = KeyGenerator.generated_documents_key(target.user_id, target.loan_id)
            result = await self.uploader.upload(content, key, BUNDLE_CONTENT_TYPE)
            document = GeneratedDocument(
                loan_id=target.loan_id,
                upload_id=uuid4().hex,
                public_url=result.public_url,
                object_key=result.object_key,
                file_type=BUNDLE_CONTENT_TYPE,
                document_types=[kind.value for kind in CANONICAL_DOCUMENT_KINDS],
                download_count=0,
            )
            if replace_existing:
                await self.repository.replace_documents(target.loan_id, [document])
            else:
                self.repository.add_documents([document])
            await self.repository.release_claim(target.loan_id)
            await self.repository.commit()
        except Exception:
            await self.repository.rollback()
            await self.repository.release_claim(target.loan_id)
            await self.repository.commit()
            raise

        logger.info(
            "Generated document bundle %s",
            result.object_key,
            extra={"loan_id": target.loan_id},
        )
        return document

    async def _validate(self, target: LoanDocumentTarget) -> str:
        if target.status == LoanStatus.DRAFT.value:
            raise PreconditionFailed("loan is still a draft")
        if not target.signature:
            raise PreconditionFailed("signature required")
        if not target.user_id:
            raise PreconditionFailed("loan has no user")
        identity_number = await self.repository.identity_number(target.user_id)
        if not identity_number:
            raise PreconditionFailed("identity document number not found", user_id=str(target.user_id))
        return identity_number

    async def _render_bundle(self, items: list[DocumentWorkItem]) -> bytes:
        semaphore = asyncio.Semaphore(self.config.render_concurrency)

        async def render(item: DocumentWorkItem) -> tuple[str, bytes]:
            async with semaphore:
                return item.kind.value, await self.renderer.render(item)

        results = await asyncio.gather(*(render(item) for item in items), return_exceptions=True)
        for outcome in results:
            if isinstance(outcome, BaseException):
                raise outcome
        return await asyncio.to_thread(bundle_documents, results)
