from urllib.parse import urlparse

from app.api import deps
from app.main import app
from app.services.storage.adapter import LocalFileSystemAdapter
from tests.fakes import make_document, make_loan


def test_eligible_lists_approved_loans_without_documents(client, fake_repo):
    waiting = fake_repo.add_loan(make_loan(status="APPROVED"))
    documented = fake_repo.add_loan(make_loan(status="APPROVED"))
    fake_repo.documents.append(make_document(documented))
    fake_repo.add_loan(make_loan(status="PENDING"))

    response = client.get("/api/v1/documents/eligible")

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 1
    assert body["loans"][0]["loan_id"] == str(waiting.id)
    assert body["loans"][0]["name"] == "Ana Maria Gomez Rojas"


def test_sweep_endpoint_returns_batch_report(client, fake_repo):
    good = fake_repo.add_loan(make_loan(status="APPROVED"))
    bad = fake_repo.add_loan(make_loan(status="APPROVED"), identity_number=None)

    response = client.post("/api/v1/documents/sweep")

    assert response.status_code == 200
    report = response.json()
    assert (report["processed"], report["successful"], report["failed"]) == (2, 1, 1)
    statuses = {detail["loan_id"]: detail["status"] for detail in report["details"]}
    assert statuses == {str(good.id): "success", str(bad.id): "error"}


def test_sweep_endpoint_is_rate_limited(client):
    responses = [client.post("/api/v1/documents/sweep") for _ in range(7)]

    assert [r.status_code for r in responses[:6]] == [200] * 6
    assert responses[6].status_code == 429
    assert responses[6].json()["code"] == "rate_limited"


def test_generate_and_list_documents_for_loan(client, fake_repo):
    loan = fake_repo.add_loan(make_loan(status="APPROVED"))

    created = client.post(f"/api/v1/documents/loans/{loan.id}")
    assert created.status_code == 201
    assert created.json()["file_type"] == "application/zip"
    assert created.json()["document_types"] == [
        "about-loan",
        "instruction-letter",
        "salary-payment-authorization",
        "promissory-note",
    ]

    duplicate = client.post(f"/api/v1/documents/loans/{loan.id}")
    assert duplicate.status_code == 422

    forced = client.post(f"/api/v1/documents/loans/{loan.id}", params={"force": "true"})
    assert forced.status_code == 201

    listed = client.get(f"/api/v1/documents/loans/{loan.id}")
    assert listed.status_code == 200
    assert [doc["id"] for doc in listed.json()] == [forced.json()["id"]]


def test_list_documents_filters_and_paginates(client, fake_repo):
    loans = [fake_repo.add_loan(make_loan(status="APPROVED")) for _ in range(4)]
    fake_repo.documents.extend(make_document(loan) for loan in loans[:3])
    fake_repo.documents.append(make_document(loans[3], download_count=2))

    page = client.get("/api/v1/documents", params={"page": 2, "page_size": 3})
    assert page.status_code == 200
    body = page.json()
    assert (body["total"], body["total_pages"], body["current_page"]) == (4, 2, 2)
    assert len(body["items"]) == 1

    by_loan = client.get("/api/v1/documents", params={"loan_id": str(loans[0].id)}).json()
    assert [item["loan_id"] for item in by_loan["items"]] == [str(loans[0].id)]

    downloaded = client.get("/api/v1/documents", params={"downloaded": "true"}).json()
    assert [item["loan_id"] for item in downloaded["items"]] == [str(loans[3].id)]


def test_download_url_counts_downloads(client, fake_repo):
    loan = fake_repo.add_loan(make_loan(status="APPROVED"))
    document = make_document(loan)
    fake_repo.documents.append(document)

    first = client.get(f"/api/v1/documents/{document.id}/download")
    second = client.get(f"/api/v1/documents/{document.id}/download")

    assert first.status_code == 200
    assert first.json()["url"].startswith(f"https://storage.test/{document.object_key}")
    assert first.json()["file_type"] == "application/zip"
    assert second.json()["download_count"] == 2


def test_download_unknown_document_is_not_found(client):
    response = client.get("/api/v1/documents/00000000-0000-0000-0000-000000000000/download")

    assert response.status_code == 404


def test_local_content_serves_signed_objects(client, tmp_path):
    storage = LocalFileSystemAdapter(str(tmp_path), "http://testserver", signing_key="secret")
    storage.put_object("users/u/loans/l/generated/about-loan.pdf", b"%PDF-1.4 local", "application/pdf")
    app.dependency_overrides[deps.get_storage] = lambda: storage

    url = urlparse(storage.generate_download_url("users/u/loans/l/generated/about-loan.pdf", 60))
    ok = client.get(f"{url.path}?{url.query}")
    tampered = client.get(f"{url.path}?{url.query}".replace("about-loan", "promissory-note"))

    assert ok.status_code == 200
    assert ok.content == b"%PDF-1.4 local"
    assert tampered.status_code == 403


def test_local_content_not_available_for_remote_storage(client):
    response = client.get(
        "/api/v1/documents/local-content",
        params={"key": "a.pdf", "expires": 1, "signature": "x"},
    )

    assert response.status_code == 404
