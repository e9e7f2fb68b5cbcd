import itertools
from uuid import uuid4

import pytest

from app.schemas.loan import CantityOffer, LoanEventType, LoanStatus
from app.services.loan_errors import (
    AwaitingClientResponse,
    InvalidTransition,
    NotFound,
    PreconditionFailed,
)
from app.services.loan_status import ALLOWED_TRANSITIONS, LoanStatusService, check_transition
from tests.fakes import RecordingNotifier, make_loan


@pytest.fixture
def status_service(fake_repo, notifier) -> LoanStatusService:
    return LoanStatusService(fake_repo, notifier)


_INVALID_PAIRS = [
    pair
    for pair in itertools.product(LoanStatus, LoanStatus)
    if pair not in ALLOWED_TRANSITIONS
]


@pytest.mark.asyncio
@pytest.mark.parametrize("current,target", _INVALID_PAIRS, ids=lambda s: s.value)
async def test_invalid_transition_leaves_loan_unchanged(fake_repo, status_service, current, target):
    loan = fake_repo.add_loan(make_loan(status=current.value))

    with pytest.raises(InvalidTransition) as excinfo:
        await status_service.transition(loan.id, target, reason="because")

    assert excinfo.value.details == {"from": current.value, "to": target.value}
    assert loan.status == current.value
    assert loan.reason_reject is None
    assert fake_repo.commits == 0
    assert fake_repo.audits == []


@pytest.mark.asyncio
async def test_draft_moves_to_pending_when_all_slots_uploaded(fake_repo, status_service, notifier):
    loan = fake_repo.add_loan(make_loan(status="DRAFT"))

    updated = await status_service.transition(loan.id, LoanStatus.PENDING, actor_id="emp-7")

    assert updated.status == "PENDING"
    assert updated.employee_id == "emp-7"
    assert fake_repo.commits == 1
    assert fake_repo.audits[0]["action"] == "loan_application.status_changed"
    assert fake_repo.audits[0]["before"]["status"] == "DRAFT"
    # Pending is not announced to the client.
    assert notifier.notifications == []


@pytest.mark.asyncio
async def test_pending_requires_every_upload_slot(fake_repo, status_service):
    loan = fake_repo.add_loan(make_loan(status="DRAFT", labor_card=None, second_flyer=None))

    with pytest.raises(PreconditionFailed) as excinfo:
        await status_service.transition(loan.id, LoanStatus.PENDING)

    assert excinfo.value.details["missing_slots"] == ["second_flyer", "labor_card"]
    assert loan.status == "DRAFT"


@pytest.mark.asyncio
async def test_approval_requires_signature_then_succeeds_once_signed(fake_repo, status_service, notifier):
    loan = fake_repo.add_loan(make_loan(signature=None))

    with pytest.raises(PreconditionFailed) as excinfo:
        await status_service.transition(loan.id, LoanStatus.APPROVED)
    assert excinfo.value.message == "signature required"
    assert loan.status == "PENDING"

    loan.signature = "data:image/png;base64,iVBORw0KGgo="
    updated = await status_service.transition(loan.id, LoanStatus.APPROVED)

    assert updated.status == "APPROVED"
    assert [n.event for n in notifier.notifications] == ["loan.approved"]


@pytest.mark.asyncio
@pytest.mark.parametrize("target", [LoanStatus.POSTPONED, LoanStatus.ARCHIVED])
async def test_postpone_and_archive_require_reason(fake_repo, status_service, target):
    loan = fake_repo.add_loan(make_loan())

    with pytest.raises(PreconditionFailed):
        await status_service.transition(loan.id, target, reason="   ")
    assert loan.status == "PENDING"

    updated = await status_service.transition(loan.id, target, reason="  income too low ")
    assert updated.status == target.value
    assert updated.reason_reject == "income too low"


@pytest.mark.asyncio
async def test_notification_failure_does_not_undo_transition(fake_repo):
    service = LoanStatusService(fake_repo, RecordingNotifier(fail=True))
    loan = fake_repo.add_loan(make_loan())

    updated = await service.transition(loan.id, LoanStatus.ARCHIVED, reason="duplicate request")

    assert updated.status == "ARCHIVED"
    assert fake_repo.commits == 1


@pytest.mark.asyncio
async def test_transition_unknown_loan_raises_not_found(status_service):
    with pytest.raises(NotFound):
        await status_service.transition(uuid4(), LoanStatus.APPROVED)


@pytest.mark.asyncio
async def test_cantity_negotiation_accepted(fake_repo, status_service, notifier):
    loan = fake_repo.add_loan(make_loan(cantity="1000000"))

    offer = CantityOffer(amount="1200000", reason="income verified")
    proposed = await status_service.propose_cantity(loan.id, offer, actor_id="emp-1")

    assert proposed.new_cantity == "1200000"
    assert proposed.reason_change_cantity == "income verified"
    assert proposed.new_cantity_opt is True
    assert proposed.cantity == "1000000"
    assert [e.event_type for e in fake_repo.events] == [LoanEventType.CHANGE_CANTITY.value]
    assert notifier.notifications[-1].event == "loan.cantity_offer"
    assert notifier.notifications[-1].payload == {"new_cantity": "1200000", "reason": "income verified"}

    answered = await status_service.respond_to_cantity(loan.id, accept=True)

    assert answered.cantity == "1200000"
    assert answered.new_cantity is None
    assert answered.new_cantity_opt is False
    assert all(event.is_answered for event in fake_repo.events)
    assert fake_repo.audits[-1]["action"] == "loan_application.cantity_accepted"


@pytest.mark.asyncio
async def test_cantity_negotiation_rejected_keeps_original_amount(fake_repo, status_service):
    loan = fake_repo.add_loan(make_loan(cantity="1000000"))
    await status_service.propose_cantity(loan.id, CantityOffer(amount="800000", reason="low score"))

    answered = await status_service.respond_to_cantity(loan.id, accept=False)

    assert answered.cantity == "1000000"
    assert answered.new_cantity_opt is False


@pytest.mark.asyncio
async def test_open_offer_blocks_transitions_and_second_offer(fake_repo, status_service):
    loan = fake_repo.add_loan(make_loan())
    await status_service.propose_cantity(loan.id, CantityOffer(amount="500000", reason="policy limit"))

    with pytest.raises(AwaitingClientResponse):
        await status_service.transition(loan.id, LoanStatus.APPROVED)
    with pytest.raises(AwaitingClientResponse):
        await status_service.propose_cantity(loan.id, CantityOffer(amount="400000", reason="again"))
    assert loan.status == "PENDING"
    assert loan.new_cantity == "500000"


@pytest.mark.asyncio
async def test_offer_only_allowed_on_pending_loans(fake_repo, status_service):
    loan = fake_repo.add_loan(make_loan(status="APPROVED"))

    with pytest.raises(PreconditionFailed):
        await status_service.propose_cantity(loan.id, CantityOffer(amount="500000", reason="late change"))


@pytest.mark.asyncio
async def test_respond_without_open_offer_fails(fake_repo, status_service):
    loan = fake_repo.add_loan(make_loan())

    with pytest.raises(PreconditionFailed):
        await status_service.respond_to_cantity(loan.id, accept=True)


@pytest.mark.parametrize(
    "amount,reason",
    [("0", "zero"), ("-5", "negative"), ("abc", "text"), ("1000", "   ")],
)
def test_cantity_offer_rejects_invalid_values(amount, reason):
    with pytest.raises(ValueError):
        CantityOffer(amount=amount, reason=reason)


def test_check_transition_reports_invalid_pair_before_preconditions():
    loan = make_loan(status="APPROVED", signature=None, new_cantity_opt=True)

    with pytest.raises(InvalidTransition):
        check_transition(loan, LoanStatus.PENDING)


@pytest.mark.asyncio
async def test_assign_employee_and_reject_reason(fake_repo, status_service):
    loan = fake_repo.add_loan(make_loan())

    await status_service.assign_employee(loan.id, "emp-42", actor_id="admin")
    await status_service.set_reject_reason(loan.id, " missing payslip ")

    assert loan.employee_id == "emp-42"
    assert loan.reason_reject == "missing payslip"
    assert [a["action"] for a in fake_repo.audits] == [
        "loan_application.employee_assigned",
        "loan_application.reject_reason_set",
    ]
