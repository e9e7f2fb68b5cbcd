from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LoanStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    POSTPONED = "POSTPONED"
    ARCHIVED = "ARCHIVED"


class UploadSlot(str, Enum):
    FIRST_FLYER = "first_flyer"
    SECOND_FLYER = "second_flyer"
    THIRD_FLYER = "third_flyer"
    LABOR_CARD = "labor_card"

    @property
    def upload_id_field(self) -> str:
        return f"upid_{self.value}"


class GeneratedDocumentKind(str, Enum):
    ABOUT_LOAN = "about-loan"
    INSTRUCTION_LETTER = "instruction-letter"
    SALARY_PAYMENT_AUTHORIZATION = "salary-payment-authorization"
    PROMISSORY_NOTE = "promissory-note"


CANONICAL_DOCUMENT_KINDS: tuple[GeneratedDocumentKind, ...] = tuple(GeneratedDocumentKind)


class LoanEventType(str, Enum):
    CHANGE_CANTITY = "CHANGE_CANTITY"
    DOCS_REJECT = "DOCS_REJECT"


def _clean_cantity(value: str) -> str:
    cleaned = (value or "").strip()
    try:
        amount = Decimal(cleaned)
    except InvalidOperation as exc:
        raise ValueError("cantity must be a numeric amount") from exc
    if not amount.is_finite() or amount <= 0:
        raise ValueError("cantity must be greater than zero")
    return cleaned


class CantityOffer(BaseModel):
    """A counter-offer made by an employee; both fields are mandatory."""

    model_config = ConfigDict(frozen=True)

    amount: str
    reason: str

    @field_validator("amount")
    @classmethod
    def _validate_amount(cls, value: str) -> str:
        return _clean_cantity(value)

    @field_validator("reason")
    @classmethod
    def _validate_reason(cls, value: str) -> str:
        cleaned = (value or "").strip()
        if not cleaned:
            raise ValueError("reason is required for a cantity offer")
        return cleaned


class LoanStatusChangeRequest(BaseModel):
    status: LoanStatus
    reason: str | None = Field(default=None, max_length=1000)


class CantityOfferRequest(BaseModel):
    new_cantity: str = Field(min_length=1, max_length=50)
    reason: str = Field(min_length=1, max_length=1000)

    def to_offer(self) -> CantityOffer:
        return CantityOffer(amount=self.new_cantity, reason=self.reason)


class CantityOfferResponseRequest(BaseModel):
    accept: bool


class EmployeeAssignRequest(BaseModel):
    employee_id: str = Field(min_length=1, max_length=100)


class CycodeUpdateRequest(BaseModel):
    cycode: str = Field(min_length=1, max_length=100)


class ReasonRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=1000)


class LoanApplicationDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    employee_id: str | None = None
    status: LoanStatus
    cantity: str
    new_cantity: str | None = None
    new_cantity_opt: bool = False
    reason_change_cantity: str | None = None
    reason_reject: str | None = None
    entity: str | None = None
    bank_account_masked: str | None = None
    has_signature: bool = False
    first_flyer: str | None = None
    second_flyer: str | None = None
    third_flyer: str | None = None
    labor_card: str | None = None
    is_disbursed: bool = False
    disbursed_at: datetime | None = None
    cycode: str | None = None
    extract: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class GeneratedDocumentDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    loan_id: UUID
    upload_id: str
    public_url: str | None = None
    file_type: str
    document_types: list[str]
    download_count: int = 0
    created_at: datetime | None = None


class GeneratedDocumentListResponse(BaseModel):
    items: list[GeneratedDocumentDTO]
    total: int
    total_pages: int
    current_page: int


class DocumentDownloadResponse(BaseModel):
    document_id: UUID
    url: str
    file_type: str
    download_count: int


class EligibleLoanDTO(BaseModel):
    loan_id: UUID
    user_id: UUID
    name: str
    status: LoanStatus
    created_at: datetime | None = None


class EligibleLoanListResponse(BaseModel):
    count: int
    loans: list[EligibleLoanDTO]


class BatchItemStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class BatchReportDetail(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    loan_id: UUID
    user_id: UUID | None = None
    name: str = ""
    status: BatchItemStatus
    error: str | None = None


class BatchReport(BaseModel):
    processed: int = 0
    successful: int = 0
    failed: int = 0
    details: list[BatchReportDetail] = Field(default_factory=list)
