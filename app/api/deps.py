from functools import lru_cache

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.settings import Settings, settings
from app.db.session import get_db
from app.services.document_generation import DocumentGenerationConfig, DocumentGenerationService
from app.services.document_renderer import DocumentRenderer, SignatureLoader
from app.services.generated_documents import GeneratedDocumentService
from app.services.loan_disbursement import LoanDisbursementService
from app.services.loan_repository import LoanRepository
from app.services.loan_status import LoanStatusService
from app.services.loan_uploads import LoanUploadService
from app.services.notifications import LoggingNotifier, Notifier, WebhookNotifier
from app.services.storage.adapter import StorageAdapter
from app.services.storage.service import get_storage_adapter
from app.services.storage.uploader import BlobUploadClient, UploadPolicy


async def get_db_session(db: AsyncSession = Depends(get_db)) -> AsyncSession:
    return db


async def get_actor_id(
    employee_id: str | None = Header(default=None, alias="X-Employee-ID"),
) -> str | None:
    if employee_id is None:
        return None
    return employee_id.strip() or None


@lru_cache(maxsize=1)
def get_storage() -> StorageAdapter:
    return get_storage_adapter(settings)


def get_notifier() -> Notifier:
    if settings.notification_webhook_url:
        return WebhookNotifier(
            settings.notification_webhook_url,
            timeout_seconds=settings.notification_timeout_seconds,
        )
    return LoggingNotifier()


def build_uploader(storage: StorageAdapter, config: Settings = settings) -> BlobUploadClient:
    return BlobUploadClient(
        storage,
        UploadPolicy(
            max_attempts=config.upload_max_attempts,
            backoff_base_seconds=config.upload_backoff_base_seconds,
        ),
    )


def build_document_generation_service(
    db: AsyncSession, storage: StorageAdapter, config: Settings = settings
) -> DocumentGenerationService:
    return DocumentGenerationService(
        LoanRepository(db),
        DocumentRenderer(
            SignatureLoader(storage, timeout_seconds=config.notification_timeout_seconds)
        ),
        build_uploader(storage, config),
        DocumentGenerationConfig(
            batch_size=config.document_sweep_batch_size,
            render_concurrency=config.document_render_concurrency,
            claim_ttl_seconds=config.document_claim_ttl_seconds,
        ),
    )


async def get_loan_repository(db: AsyncSession = Depends(get_db_session)) -> LoanRepository:
    return LoanRepository(db)


async def get_uploader(storage: StorageAdapter = Depends(get_storage)) -> BlobUploadClient:
    return build_uploader(storage)


async def get_status_service(
    repository: LoanRepository = Depends(get_loan_repository),
    notifier: Notifier = Depends(get_notifier),
) -> LoanStatusService:
    return LoanStatusService(repository, notifier)


async def get_document_generation_service(
    db: AsyncSession = Depends(get_db_session),
    storage: StorageAdapter = Depends(get_storage),
) -> DocumentGenerationService:
    return build_document_generation_service(db, storage)


async def get_disbursement_service(
    repository: LoanRepository = Depends(get_loan_repository),
    uploader: BlobUploadClient = Depends(get_uploader),
    notifier: Notifier = Depends(get_notifier),
) -> LoanDisbursementService:
    return LoanDisbursementService(
        repository, uploader, notifier, max_size_bytes=settings.upload_max_size_bytes
    )


async def get_upload_service(
    repository: LoanRepository = Depends(get_loan_repository),
    uploader: BlobUploadClient = Depends(get_uploader),
    notifier: Notifier = Depends(get_notifier),
) -> LoanUploadService:
    return LoanUploadService(
        repository, uploader, notifier, max_size_bytes=settings.upload_max_size_bytes
    )


async def get_generated_document_service(
    repository: LoanRepository = Depends(get_loan_repository),
    storage: StorageAdapter = Depends(get_storage),
) -> GeneratedDocumentService:
    return GeneratedDocumentService(
        repository,
        storage,
        download_expiry_seconds=settings.gcs_signed_url_expiry_seconds,
    )
