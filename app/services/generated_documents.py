from __future__ import annotations

import asyncio
from uuid import UUID

from app.models.generated_document import GeneratedDocument
from app.schemas.loan import (
    DocumentDownloadResponse,
    GeneratedDocumentDTO,
    GeneratedDocumentListResponse,
)
from app.services.loan_errors import NotFound
from app.services.loan_repository import LoanRepository
from app.services.storage.adapter import StorageAdapter


class GeneratedDocumentService:
    def __init__(
        self,
        repository: LoanRepository,
        adapter: StorageAdapter,
        *,
        download_expiry_seconds: int = 900,
    ) -> None:
        self.repository = repository
        self.adapter = adapter
        self.download_expiry_seconds = download_expiry_seconds

    async def list_for_loan(self, loan_id: UUID) -> list[GeneratedDocument]:
        loan = await self.repository.get(loan_id)
        if not loan:
            raise NotFound("loan_application", loan_id)
        return await self.repository.list_documents_for_loan(loan_id)

    async def list_documents(
        self,
        *,
        user_id: UUID | None = None,
        loan_id: UUID | None = None,
        downloaded: bool | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> GeneratedDocumentListResponse:
        items, total, total_pages = await self.repository.list_documents(
            user_id=user_id,
            loan_id=loan_id,
            downloaded=downloaded,
            page=page,
            page_size=page_size,
        )
        return GeneratedDocumentListResponse(
            items=[GeneratedDocumentDTO.model_validate(item) for item in items],
            total=total,
            total_pages=total_pages,
            current_page=page,
        )

    async def download_url(self, document_id: UUID) -> DocumentDownloadResponse:
        document = await self.repository.get_document(document_id)
        if not document:
            raise NotFound("generated_document", document_id)
        url = await asyncio.to_thread(
            self.adapter.generate_download_url,
            document.object_key,
            self.download_expiry_seconds,
        )
        document.download_count = (document.download_count or 0) + 1
        await self.repository.commit()
        await self.repository.refresh(document)
        return DocumentDownloadResponse(
            document_id=document.id,
            url=url,
            file_type=document.file_type,
            download_count=document.download_count,
        )
