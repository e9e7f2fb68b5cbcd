import uuid

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.base import Base


class GeneratedDocument(Base):
    __tablename__ = "generated_documents"
    __table_args__ = (
        Index("ix_generated_documents_loan_created", "loan_id", "created_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_id = Column(
        UUID(as_uuid=True),
        ForeignKey("loan_applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    upload_id = Column(String(100), nullable=False)
    public_url = Column(String(2048), nullable=True)
    object_key = Column(String(1024), nullable=False)
    file_type = Column(String(100), nullable=False, default="application/pdf")
    document_types = Column(JSON, nullable=False, default=list)
    download_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    loan = relationship("LoanApplication", back_populates="generated_documents")

    # Server-side timestamps come back with the INSERT so DTOs can read them after commit.
    __mapper_args__ = {"eager_defaults": True}
