from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True, eq=False)
class LoanError(ValueError):
    code: str
    message: str
    details: dict = field(default_factory=dict)

    status_code = 400

    def __str__(self) -> str:
        return self.message


class InvalidTransition(LoanError):
    status_code = 409

    def __init__(self, from_status: str, to_status: str) -> None:
        super().__init__(
            code="invalid_transition",
            message=f"Cannot move loan from {from_status} to {to_status}",
            details={"from": from_status, "to": to_status},
        )


class PreconditionFailed(LoanError):
    status_code = 422

    def __init__(self, message: str, **details) -> None:
        super().__init__(code="precondition_failed", message=message, details=details)


class AwaitingClientResponse(LoanError):
    status_code = 409

    def __init__(self, loan_id) -> None:
        super().__init__(
            code="awaiting_client_response",
            message="Loan is waiting for the client to answer a cantity offer",
            details={"loan_id": str(loan_id)},
        )


class NotFound(LoanError):
    status_code = 404

    def __init__(self, resource: str, resource_id) -> None:
        super().__init__(
            code="not_found",
            message=f"{resource} {resource_id} not found",
            details={"resource": resource, "id": str(resource_id)},
        )


class UploadFailed(LoanError):
    status_code = 502

    def __init__(self, object_key: str, attempts: int, last_error: BaseException | None) -> None:
        super().__init__(
            code="upload_failed",
            message=f"Upload of {object_key} failed after {attempts} attempts",
            details={
                "object_key": object_key,
                "attempts": attempts,
                "last_error": str(last_error) if last_error else None,
            },
        )


class AlreadyDisbursed(LoanError):
    status_code = 409

    def __init__(self, loan_id) -> None:
        super().__init__(
            code="already_disbursed",
            message="Loan has already been disbursed",
            details={"loan_id": str(loan_id)},
        )
