from app.models.audit_log import AuditLog
from app.models.generated_document import GeneratedDocument
from app.models.identity_document import IdentityDocument
from app.models.loan_application import LoanApplication
from app.models.loan_event import LoanEvent
from app.models.user import User

__all__ = [
    "AuditLog",
    "GeneratedDocument",
    "IdentityDocument",
    "LoanApplication",
    "LoanEvent",
    "User",
]
