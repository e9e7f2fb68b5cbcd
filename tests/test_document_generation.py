import io
import zipfile
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from app.schemas.loan import CANONICAL_DOCUMENT_KINDS, GeneratedDocumentKind
from app.services.document_generation import (
    DocumentGenerationConfig,
    DocumentGenerationService,
    LoanDocumentTarget,
    build_work_items,
)
from app.services.loan_errors import NotFound, PreconditionFailed
from app.services.storage.uploader import BlobUploadClient, UploadPolicy
from tests.fakes import FakeRenderer, FakeStorageAdapter, RecordingSleep, make_loan, make_user

ALL_KINDS = [kind.value for kind in CANONICAL_DOCUMENT_KINDS]


@pytest.mark.asyncio
async def test_sweep_generates_one_bundle_once(fake_repo, fake_storage, generation_service):
    loan = fake_repo.add_loan(make_loan(status="APPROVED"))

    first = await generation_service.run_sweep()
    second = await generation_service.run_sweep()

    assert (first.processed, first.successful, first.failed) == (1, 1, 0)
    assert (second.processed, second.successful, second.failed) == (0, 0, 0)
    documents = fake_repo.documents_for(loan.id)
    assert len(documents) == 1
    assert documents[0].document_types == ALL_KINDS
    assert len(fake_storage.put_calls) == 1
    assert loan.id not in fake_repo.claims


@pytest.mark.asyncio
async def test_generated_bundle_points_at_storage(fake_repo, fake_storage, generation_service):
    loan = fake_repo.add_loan(make_loan(status="APPROVED"))

    await generation_service.run_sweep()

    (document,) = fake_repo.documents_for(loan.id)
    assert document.object_key == f"users/{loan.user_id}/loans/{loan.id}/generated/documents.zip"
    assert document.public_url == f"https://storage.test/{document.object_key}"
    assert document.file_type == "application/zip"
    assert document.download_count == 0
    assert document.upload_id
    assert fake_storage.content_types[document.object_key] == "application/zip"

    with zipfile.ZipFile(io.BytesIO(fake_storage.objects[document.object_key])) as bundle:
        assert sorted(bundle.namelist()) == sorted(f"{kind}.pdf" for kind in ALL_KINDS)
        assert bundle.read("promissory-note.pdf") == b"%PDF-1.4 promissory-note"


@pytest.mark.asyncio
async def test_overlapping_sweeps_document_loan_once(fake_repo, fake_storage, generation_service):
    loan = fake_repo.add_loan(make_loan(status="APPROVED"))
    discovered_first = await generation_service.find_eligible()
    discovered_second = await generation_service.find_eligible()

    first = await generation_service.process_batch(discovered_first)
    second = await generation_service.process_batch(discovered_second)

    assert (first.successful, first.failed) == (1, 0)
    assert (second.successful, second.failed) == (0, 1)
    assert second.details[0].error == "documents already generated for loan"
    assert len(fake_repo.documents_for(loan.id)) == 1
    assert len(fake_storage.put_calls) == 1
    assert loan.id not in fake_repo.claims


@pytest.mark.asyncio
async def test_manual_generation_after_sweep_discovery_does_not_duplicate(fake_repo, generation_service):
    loan = fake_repo.add_loan(make_loan(status="APPROVED"))
    discovered = await generation_service.find_eligible()

    await generation_service.generate_for_loan(loan.id)
    report = await generation_service.process_batch(discovered)

    assert report.failed == 1
    assert len(fake_repo.documents_for(loan.id)) == 1


@pytest.mark.asyncio
async def test_sweep_isolates_failing_loan(fake_repo, generation_service):
    first = fake_repo.add_loan(make_loan(status="APPROVED"))
    missing_id = fake_repo.add_loan(
        make_loan(status="APPROVED", user=make_user(names="Luis")), identity_number=None
    )
    third = fake_repo.add_loan(make_loan(status="APPROVED"))

    report = await generation_service.run_sweep()

    assert (report.processed, report.successful, report.failed) == (3, 2, 1)
    assert len(fake_repo.documents_for(first.id)) == 1
    assert len(fake_repo.documents_for(third.id)) == 1
    assert fake_repo.documents_for(missing_id.id) == []

    failed = [detail for detail in report.details if detail.status == "error"]
    assert len(failed) == 1
    assert failed[0].loan_id == missing_id.id
    assert failed[0].name == "Luis Gomez Rojas"
    assert failed[0].error == "identity document number not found"


@pytest.mark.asyncio
async def test_upload_failure_persists_nothing_for_loan(fake_repo):
    storage = FakeStorageAdapter(failing_fragments=("documents.zip",))
    sleep = RecordingSleep()
    service = DocumentGenerationService(
        fake_repo,
        FakeRenderer(),
        BlobUploadClient(storage, UploadPolicy(max_attempts=3, backoff_base_seconds=1.0), sleep=sleep),
        DocumentGenerationConfig(render_concurrency=4),
    )
    loan = fake_repo.add_loan(make_loan(status="APPROVED"))

    report = await service.run_sweep()

    assert report.failed == 1
    assert "documents.zip" in report.details[0].error
    assert len(storage.put_calls) == 3
    assert fake_repo.documents_for(loan.id) == []
    assert fake_repo.rollbacks == 1
    assert loan.id not in fake_repo.claims
    # The loan is picked up again by the next sweep.
    assert [eligible.id for eligible in await service.find_eligible()] == [loan.id]


@pytest.mark.asyncio
async def test_render_failure_persists_nothing_for_loan(fake_repo, fake_storage, uploader):
    service = DocumentGenerationService(
        fake_repo, FakeRenderer(failing_kinds=("instruction-letter",)), uploader
    )
    loan = fake_repo.add_loan(make_loan(status="APPROVED"))

    report = await service.run_sweep()

    assert report.failed == 1
    assert report.details[0].error == "cannot render instruction-letter"
    assert fake_repo.documents_for(loan.id) == []
    assert fake_storage.put_calls == []


@pytest.mark.asyncio
async def test_loan_claimed_by_another_run_is_skipped(fake_repo, generation_service):
    loan = fake_repo.add_loan(make_loan(status="APPROVED"))
    fake_repo.claims[loan.id] = datetime.now(timezone.utc)

    report = await generation_service.run_sweep()

    assert report.failed == 1
    assert report.details[0].error == "loan documents are claimed by another run"
    assert fake_repo.documents_for(loan.id) == []


@pytest.mark.asyncio
async def test_stale_claim_is_taken_over(fake_repo, generation_service):
    loan = fake_repo.add_loan(make_loan(status="APPROVED"))
    fake_repo.claims[loan.id] = datetime.now(timezone.utc) - timedelta(hours=2)

    report = await generation_service.run_sweep()

    assert report.successful == 1
    assert len(fake_repo.documents_for(loan.id)) == 1


@pytest.mark.asyncio
async def test_sweep_skips_loans_not_yet_approved(fake_repo, generation_service):
    for status in ("DRAFT", "PENDING", "POSTPONED", "ARCHIVED"):
        fake_repo.add_loan(make_loan(status=status))

    report = await generation_service.run_sweep()

    assert report.processed == 0


@pytest.mark.asyncio
async def test_unsigned_loan_fails_validation(fake_repo, fake_renderer, generation_service):
    fake_repo.add_loan(make_loan(status="APPROVED", signature=None))

    report = await generation_service.run_sweep()

    assert report.details[0].error == "signature required"
    assert fake_renderer.rendered == []


@pytest.mark.asyncio
async def test_generate_for_loan_requires_force_to_regenerate(fake_repo, generation_service):
    loan = fake_repo.add_loan(make_loan(status="APPROVED"))

    created = await generation_service.generate_for_loan(loan.id)
    assert created.document_types == ALL_KINDS

    with pytest.raises(PreconditionFailed):
        await generation_service.generate_for_loan(loan.id)

    regenerated = await generation_service.generate_for_loan(loan.id, force=True)

    assert fake_repo.documents_for(loan.id) == [regenerated]
    assert regenerated.id != created.id


@pytest.mark.asyncio
async def test_generate_for_loan_rejects_unknown_and_pending_loans(fake_repo, generation_service):
    with pytest.raises(NotFound):
        await generation_service.generate_for_loan(uuid4())

    loan = fake_repo.add_loan(make_loan(status="PENDING"))
    with pytest.raises(PreconditionFailed):
        await generation_service.generate_for_loan(loan.id)


def test_work_items_only_expose_account_on_about_loan():
    loan = make_loan(status="APPROVED", entity="Banco Norte", bank_number_account="9988776655")

    items = build_work_items(LoanDocumentTarget.from_loan(loan), "1020304050")

    assert [item.kind for item in items] == list(CANONICAL_DOCUMENT_KINDS)
    for item in items:
        assert item.identity_number == "1020304050"
        assert item.full_name == "Ana Maria Gomez Rojas"
        if item.kind == GeneratedDocumentKind.ABOUT_LOAN:
            assert (item.entity, item.account_number) == ("Banco Norte", "9988776655")
        else:
            assert (item.entity, item.account_number) == (None, None)
