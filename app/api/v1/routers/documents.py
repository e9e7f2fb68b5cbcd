from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import FileResponse

from app.api import deps
from app.core.limiter import limiter
from app.core.settings import settings
from app.schemas.loan import (
    BatchReport,
    DocumentDownloadResponse,
    EligibleLoanDTO,
    EligibleLoanListResponse,
    GeneratedDocumentDTO,
    GeneratedDocumentListResponse,
)
from app.services.document_generation import DocumentGenerationService
from app.services.generated_documents import GeneratedDocumentService
from app.services.storage.adapter import (
    LocalFileSystemAdapter,
    StorageAdapter,
    verify_local_url_signature,
)

router = APIRouter(prefix="/documents", tags=["documents"])


@router.get("/eligible", response_model=EligibleLoanListResponse, summary="Loans waiting for documents")
async def list_eligible_loans(
    service: DocumentGenerationService = Depends(deps.get_document_generation_service),
) -> EligibleLoanListResponse:
    loans = await service.find_eligible()
    return EligibleLoanListResponse(
        count=len(loans),
        loans=[
            EligibleLoanDTO(
                loan_id=loan.id,
                user_id=loan.user_id,
                name=loan.user.full_name if loan.user is not None else "",
                status=loan.status,
                created_at=loan.created_at,
            )
            for loan in loans
        ],
    )


@router.post("/sweep", response_model=BatchReport, summary="Generate documents for all eligible loans")
@limiter.limit(lambda: settings.sweep_rate_limit)
async def run_document_sweep(
    request: Request,
    service: DocumentGenerationService = Depends(deps.get_document_generation_service),
) -> BatchReport:
    return await service.run_sweep()


@router.post(
    "/loans/{loan_id}",
    response_model=GeneratedDocumentDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Generate documents for one loan",
)
async def generate_loan_documents(
    loan_id: UUID,
    force: bool = Query(default=False),
    service: DocumentGenerationService = Depends(deps.get_document_generation_service),
) -> GeneratedDocumentDTO:
    document = await service.generate_for_loan(loan_id, force=force)
    return GeneratedDocumentDTO.model_validate(document)


@router.get(
    "/loans/{loan_id}",
    response_model=list[GeneratedDocumentDTO],
    summary="List the documents generated for a loan",
)
async def list_loan_documents(
    loan_id: UUID,
    service: GeneratedDocumentService = Depends(deps.get_generated_document_service),
) -> list[GeneratedDocumentDTO]:
    documents = await service.list_for_loan(loan_id)
    return [GeneratedDocumentDTO.model_validate(document) for document in documents]


@router.get("", response_model=GeneratedDocumentListResponse, summary="List generated documents")
async def list_documents(
    user_id: UUID | None = Query(default=None),
    loan_id: UUID | None = Query(default=None),
    downloaded: bool | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    service: GeneratedDocumentService = Depends(deps.get_generated_document_service),
) -> GeneratedDocumentListResponse:
    return await service.list_documents(
        user_id=user_id,
        loan_id=loan_id,
        downloaded=downloaded,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/{document_id}/download",
    response_model=DocumentDownloadResponse,
    summary="Get a download URL for a generated document",
)
async def download_document(
    document_id: UUID,
    service: GeneratedDocumentService = Depends(deps.get_generated_document_service),
) -> DocumentDownloadResponse:
    return await service.download_url(document_id)


@router.get("/local-content", summary="Serve a locally stored object through a signed URL")
async def get_local_content(
    key: str = Query(...),
    expires: int = Query(...),
    signature: str = Query(...),
    storage: StorageAdapter = Depends(deps.get_storage),
):
    if not isinstance(storage, LocalFileSystemAdapter):
        raise HTTPException(status_code=404, detail="Not supported")
    if not verify_local_url_signature(storage.signing_key, key, expires, signature):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or expired URL signature",
        )
    try:
        path = storage.resolve_path(key)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not path.exists():
        raise HTTPException(status_code=404)
    return FileResponse(path)
