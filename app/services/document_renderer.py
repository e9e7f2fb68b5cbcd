"""Rendering of the legal documents attached to an approved loan.

Each document is a short, fixed text filled with the borrower's identity and
loan fields, closed by the borrower's signature image. Visual fidelity is not a
goal; the PDFs only need to carry the right data.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import io
import zipfile
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable
from uuid import UUID

import httpx
from reportlab.lib.pagesizes import letter
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfgen import canvas

from app.schemas.loan import GeneratedDocumentKind
from app.services.storage.adapter import StorageAdapter


@dataclass(frozen=True)
class DocumentWorkItem:
    kind: GeneratedDocumentKind
    loan_id: UUID
    user_id: UUID
    full_name: str
    identity_number: str
    signature: str
    cantity: str
    entity: str | None = None
    account_number: str | None = None
    saving_account: bool = True
    issued_on: date = field(default_factory=date.today)


_TEMPLATES: dict[GeneratedDocumentKind, tuple[str, list[str]]] = {
    GeneratedDocumentKind.ABOUT_LOAN: (
        "Loan disbursement details",
        [
            "I, {full_name}, identified with document number {identity_number}, "
            "request the disbursement of the approved loan for {cantity}.",
            "Funds must be transferred to my {account_kind} account number "
            "{account_number} at {entity}.",
            "I confirm the information above is accurate and complete.",
        ],
    ),
    GeneratedDocumentKind.INSTRUCTION_LETTER: (
        "Instruction letter",
        [
            "I, {full_name}, identified with document number {identity_number}, "
            "authorize the lender to complete the blank spaces of the promissory "
            "note signed for loan {loan_id}.",
            "The amount shall match the outstanding balance of the loan, "
            "initially {cantity}, plus interest and costs accrued on the date it is filled in.",
            "The due date shall be the date on which the note is filled in.",
        ],
    ),
    GeneratedDocumentKind.SALARY_PAYMENT_AUTHORIZATION: (
        "Payroll deduction authorization",
        [
            "I, {full_name}, identified with document number {identity_number}, "
            "authorize my employer to deduct from my salary the installments of "
            "loan {loan_id} for a total of {cantity}.",
            "This authorization remains in force until the loan is fully repaid.",
        ],
    ),
    GeneratedDocumentKind.PROMISSORY_NOTE: (
        "Promissory note",
        [
            "I, {full_name}, identified with document number {identity_number}, "
            "unconditionally promise to pay to the order of the lender the sum of "
            "{cantity} under loan {loan_id}.",
            "Late payments accrue the maximum interest allowed by law.",
        ],
    ),
}


class SignatureLoader:
    """Resolves a stored signature reference into raw image bytes.

    References are ``data:`` URLs, ``http(s)`` URLs or object-storage keys.
    """

    def __init__(self, adapter: StorageAdapter, *, timeout_seconds: float = 10.0) -> None:
        self.adapter = adapter
        self.timeout_seconds = timeout_seconds

    async def load(self, reference: str) -> bytes:
        if reference.startswith("data:"):
            return _decode_data_url(reference)
        if reference.startswith(("http://", "https://")):
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.get(reference)
                response.raise_for_status()
                return response.content
        return await asyncio.to_thread(self.adapter.read_object, reference)


def _decode_data_url(reference: str) -> bytes:
    header, _, data = reference.partition(",")
    if not data or ";base64" not in header:
        raise ValueError("Signature data URL must be base64 encoded")
    try:
        return base64.b64decode(data, validate=True)
    except binascii.Error as exc:
        raise ValueError("Signature data URL is not valid base64") from exc


class DocumentRenderer:
    def __init__(self, signature_loader: SignatureLoader) -> None:
        self.signature_loader = signature_loader

    async def render(self, item: DocumentWorkItem) -> bytes:
        signature_image = await self.signature_loader.load(item.signature)
        return await asyncio.to_thread(render_pdf, item, signature_image)


def render_pdf(item: DocumentWorkItem, signature_image: bytes | None = None) -> bytes:
    title, paragraphs = _TEMPLATES[item.kind]
    values = {
        "full_name": item.full_name,
        "identity_number": item.identity_number,
        "cantity": item.cantity,
        "loan_id": item.loan_id,
        "entity": item.entity or "-",
        "account_number": item.account_number or "-",
        "account_kind": "savings" if item.saving_account else "checking",
    }

    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=letter)
    c.setTitle(title)
    width, height = letter
    text_width = width - 100

    c.setFont("Helvetica-Bold", 16)
    c.drawString(50, height - 50, title)
    c.setFont("Helvetica", 10)
    c.drawString(50, height - 68, f"Date: {item.issued_on.isoformat()}")

    y_pos = height - 100
    c.setFont("Helvetica", 12)
    for paragraph in paragraphs:
        for line in simpleSplit(paragraph.format(**values), "Helvetica", 12, text_width):
            c.drawString(50, y_pos, line)
            y_pos -= 16
        y_pos -= 10

    # Signature block
    y_pos -= 20
    if signature_image:
        image = ImageReader(io.BytesIO(signature_image))
        c.drawImage(image, 50, y_pos - 60, width=150, height=60, mask="auto")
    y_pos -= 70
    c.line(50, y_pos, 250, y_pos)
    c.setFont("Helvetica", 10)
    c.drawString(50, y_pos - 14, "Applicant signature")
    c.drawString(50, y_pos - 28, f"Name: {item.full_name}")
    c.drawString(50, y_pos - 42, f"ID: {item.identity_number}")

    c.showPage()
    c.save()
    return buffer.getvalue()


def bundle_documents(documents: Iterable[tuple[str, bytes]]) -> bytes:
    """Pack rendered PDFs into one zip archive with a ``<kind>.pdf`` entry each."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as archive:
        for kind, content in documents:
            archive.writestr(f"{kind}.pdf", content)
    return buffer.getvalue()
