import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.base import Base


IDENTITY_DOCUMENT_TYPES = ("CC", "CE", "PASAPORTE")


class IdentityDocument(Base):
    __tablename__ = "identity_documents"
    __table_args__ = (
        CheckConstraint(
            "document_type IN ('CC', 'CE', 'PASAPORTE')",
            name="ck_identity_document_type",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    document_type = Column(String(20), nullable=False, default="CC")
    number = Column(String(50), nullable=True)
    document_sides = Column(String(1024), nullable=True)
    up_id = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    user = relationship("User", back_populates="identity_documents")
