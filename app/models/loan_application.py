import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.base import Base
from app.models.types import EncryptedString


UPLOAD_SLOTS = ("first_flyer", "second_flyer", "third_flyer", "labor_card")


class LoanApplication(Base):
    __tablename__ = "loan_applications"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint(
            "status IN ('DRAFT', 'PENDING', 'APPROVED', 'POSTPONED', 'ARCHIVED')",
            name="ck_loan_app_status",
        ),
        CheckConstraint(
            "NOT new_cantity_opt OR (new_cantity IS NOT NULL AND status = 'PENDING')",
            name="ck_loan_app_open_offer",
        ),
        CheckConstraint(
            "NOT is_disbursed OR status = 'APPROVED'",
            name="ck_loan_app_disbursed_approved",
        ),
        CheckConstraint("version >= 1", name="ck_loan_app_version_positive"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    employee_id = Column(String(100), nullable=True, index=True)
    status = Column(String(20), nullable=False, default="DRAFT", index=True)
    version = Column(Integer, nullable=False, default=1)

    cantity = Column(String(50), nullable=False)
    new_cantity = Column(String(50), nullable=True)
    new_cantity_opt = Column(Boolean, nullable=False, default=False)
    reason_change_cantity = Column(String(1000), nullable=True)
    reason_reject = Column(String(1000), nullable=True)

    entity = Column(String(150), nullable=True)
    bank_saving_account = Column(Boolean, nullable=False, default=True)
    bank_number_account = Column(EncryptedString(), nullable=True)

    signature = Column(String(2048), nullable=True)
    up_signature_id = Column(String(100), nullable=True)
    terms_and_conditions = Column(Boolean, nullable=False, default=False)

    first_flyer = Column(String(1024), nullable=True)
    upid_first_flyer = Column(String(100), nullable=True)
    second_flyer = Column(String(1024), nullable=True)
    upid_second_flyer = Column(String(100), nullable=True)
    third_flyer = Column(String(1024), nullable=True)
    upid_third_flyer = Column(String(100), nullable=True)
    labor_card = Column(String(1024), nullable=True)
    upid_labor_card = Column(String(100), nullable=True)

    is_disbursed = Column(Boolean, nullable=False, default=False)
    disbursed_at = Column(DateTime(timezone=True), nullable=True)
    cycode = Column(String(100), nullable=True, index=True)
    extract = Column(String(1024), nullable=True)

    documents_claimed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    user = relationship("User", back_populates="loan_applications")
    generated_documents = relationship(
        "GeneratedDocument",
        back_populates="loan",
        order_by="GeneratedDocument.created_at",
    )
    events = relationship("LoanEvent", back_populates="loan", order_by="LoanEvent.created_at")

    __mapper_args__ = {"version_id_col": version}

    @property
    def disbursed(self) -> bool:
        return bool(self.is_disbursed or self.cycode or self.extract)

    @property
    def awaiting_client_response(self) -> bool:
        return bool(self.new_cantity_opt)

    def missing_upload_slots(self) -> list[str]:
        return [slot for slot in UPLOAD_SLOTS if not getattr(self, slot)]
