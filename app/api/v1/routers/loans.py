from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import ValidationError

from app.api import deps
from app.models.loan_application import LoanApplication
from app.models.types import mask_account_number
from app.schemas.loan import (
    CantityOfferRequest,
    CantityOfferResponseRequest,
    CycodeUpdateRequest,
    EmployeeAssignRequest,
    LoanApplicationDTO,
    LoanStatusChangeRequest,
    ReasonRequest,
    UploadSlot,
)
from app.services.loan_disbursement import LoanDisbursementService
from app.services.loan_errors import PreconditionFailed
from app.services.loan_status import LoanStatusService
from app.services.loan_uploads import LoanUploadService

router = APIRouter(prefix="/loans", tags=["loans"])


def _loan_dto(loan: LoanApplication) -> LoanApplicationDTO:
    dto = LoanApplicationDTO.model_validate(loan)
    return dto.model_copy(
        update={
            "bank_account_masked": (
                mask_account_number(loan.bank_number_account) if loan.bank_number_account else None
            ),
            "has_signature": bool(loan.signature),
        }
    )


@router.post("/{loan_id}/status", response_model=LoanApplicationDTO, summary="Change loan status")
async def change_status(
    loan_id: UUID,
    payload: LoanStatusChangeRequest,
    actor_id: str | None = Depends(deps.get_actor_id),
    service: LoanStatusService = Depends(deps.get_status_service),
) -> LoanApplicationDTO:
    loan = await service.transition(loan_id, payload.status, reason=payload.reason, actor_id=actor_id)
    return _loan_dto(loan)


@router.post(
    "/{loan_id}/cantity-offer",
    response_model=LoanApplicationDTO,
    summary="Propose a new cantity to the client",
)
async def propose_cantity(
    loan_id: UUID,
    payload: CantityOfferRequest,
    actor_id: str | None = Depends(deps.get_actor_id),
    service: LoanStatusService = Depends(deps.get_status_service),
) -> LoanApplicationDTO:
    try:
        offer = payload.to_offer()
    except ValidationError as exc:
        raise PreconditionFailed(
            "invalid cantity offer", errors=[error["msg"] for error in exc.errors()]
        ) from exc
    loan = await service.propose_cantity(loan_id, offer, actor_id=actor_id)
    return _loan_dto(loan)


@router.post(
    "/{loan_id}/cantity-offer/response",
    response_model=LoanApplicationDTO,
    summary="Record the client's answer to a cantity offer",
)
async def respond_to_cantity(
    loan_id: UUID,
    payload: CantityOfferResponseRequest,
    actor_id: str | None = Depends(deps.get_actor_id),
    service: LoanStatusService = Depends(deps.get_status_service),
) -> LoanApplicationDTO:
    loan = await service.respond_to_cantity(loan_id, accept=payload.accept, actor_id=actor_id)
    return _loan_dto(loan)


@router.put("/{loan_id}/employee", response_model=LoanApplicationDTO, summary="Assign reviewer")
async def assign_employee(
    loan_id: UUID,
    payload: EmployeeAssignRequest,
    actor_id: str | None = Depends(deps.get_actor_id),
    service: LoanStatusService = Depends(deps.get_status_service),
) -> LoanApplicationDTO:
    loan = await service.assign_employee(loan_id, payload.employee_id, actor_id=actor_id)
    return _loan_dto(loan)


@router.put("/{loan_id}/reject-reason", response_model=LoanApplicationDTO, summary="Set reject reason")
async def set_reject_reason(
    loan_id: UUID,
    payload: ReasonRequest,
    actor_id: str | None = Depends(deps.get_actor_id),
    service: LoanStatusService = Depends(deps.get_status_service),
) -> LoanApplicationDTO:
    loan = await service.set_reject_reason(loan_id, payload.reason, actor_id=actor_id)
    return _loan_dto(loan)


@router.post("/{loan_id}/disbursement", response_model=LoanApplicationDTO, summary="Disburse loan")
async def disburse_loan(
    loan_id: UUID,
    cycode: str | None = Form(default=None),
    extract: UploadFile | None = File(default=None),
    actor_id: str | None = Depends(deps.get_actor_id),
    service: LoanDisbursementService = Depends(deps.get_disbursement_service),
) -> LoanApplicationDTO:
    extract_content = None
    extract_filename = None
    if extract is not None:
        extract_content = await extract.read()
        extract_filename = extract.filename
        await extract.close()
    loan = await service.disburse(
        loan_id,
        cycode=cycode,
        extract_content=extract_content,
        extract_filename=extract_filename,
        actor_id=actor_id,
    )
    return _loan_dto(loan)


@router.put(
    "/extracts/{cycode}",
    response_model=LoanApplicationDTO,
    summary="Upload bank extract matched by cycode",
)
async def upload_extract_by_cycode(
    cycode: str,
    file: UploadFile = File(...),
    actor_id: str | None = Depends(deps.get_actor_id),
    service: LoanDisbursementService = Depends(deps.get_disbursement_service),
) -> LoanApplicationDTO:
    content = await file.read()
    await file.close()
    loan = await service.upload_extract_by_cycode(cycode, content, file.filename, actor_id=actor_id)
    return _loan_dto(loan)


@router.put("/{loan_id}/cycode", response_model=LoanApplicationDTO, summary="Update cycode")
async def update_cycode(
    loan_id: UUID,
    payload: CycodeUpdateRequest,
    actor_id: str | None = Depends(deps.get_actor_id),
    service: LoanDisbursementService = Depends(deps.get_disbursement_service),
) -> LoanApplicationDTO:
    loan = await service.update_cycode(loan_id, payload.cycode, actor_id=actor_id)
    return _loan_dto(loan)


@router.put("/{loan_id}/extract", response_model=LoanApplicationDTO, summary="Upload bank extract")
async def upload_extract(
    loan_id: UUID,
    file: UploadFile = File(...),
    cycode: str | None = Form(default=None),
    actor_id: str | None = Depends(deps.get_actor_id),
    service: LoanDisbursementService = Depends(deps.get_disbursement_service),
) -> LoanApplicationDTO:
    content = await file.read()
    await file.close()
    loan = await service.upload_extract(
        loan_id, content, file.filename, cycode=cycode, actor_id=actor_id
    )
    return _loan_dto(loan)


@router.post(
    "/{loan_id}/uploads/{slot}/rejection",
    response_model=LoanApplicationDTO,
    summary="Reject an uploaded document",
)
async def reject_upload(
    loan_id: UUID,
    slot: UploadSlot,
    payload: ReasonRequest,
    actor_id: str | None = Depends(deps.get_actor_id),
    service: LoanUploadService = Depends(deps.get_upload_service),
) -> LoanApplicationDTO:
    loan = await service.reject_upload(loan_id, slot, payload.reason, actor_id=actor_id)
    return _loan_dto(loan)


@router.put(
    "/{loan_id}/uploads/{slot}",
    response_model=LoanApplicationDTO,
    summary="Upload a replacement document",
)
async def replace_upload(
    loan_id: UUID,
    slot: UploadSlot,
    file: UploadFile = File(...),
    actor_id: str | None = Depends(deps.get_actor_id),
    service: LoanUploadService = Depends(deps.get_upload_service),
) -> LoanApplicationDTO:
    content = await file.read()
    await file.close()
    loan = await service.replace_upload(loan_id, slot, content, file.filename, actor_id=actor_id)
    return _loan_dto(loan)
