import uuid

from sqlalchemy import Column, DateTime, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(255), nullable=False, unique=True)
    names = Column(String(150), nullable=False)
    first_last_name = Column(String(100), nullable=False)
    second_last_name = Column(String(100), nullable=True)
    phone = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    identity_documents = relationship(
        "IdentityDocument", back_populates="user", cascade="all, delete-orphan"
    )
    loan_applications = relationship("LoanApplication", back_populates="user")

    @property
    def full_name(self) -> str:
        parts = [self.names, self.first_last_name, self.second_last_name]
        return " ".join(part.strip() for part in parts if part and part.strip())
