from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

from app.models.loan_application import LoanApplication
from app.schemas.loan import CantityOffer, LoanEventType, LoanStatus
from app.services.audit import loan_snapshot
from app.services.loan_errors import (
    AwaitingClientResponse,
    InvalidTransition,
    NotFound,
    PreconditionFailed,
)
from app.services.loan_repository import LoanRepository
from app.services.notifications import LoanNotification, Notifier, notify_safely

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS: frozenset[tuple[LoanStatus, LoanStatus]] = frozenset(
    {
        (LoanStatus.DRAFT, LoanStatus.PENDING),
        (LoanStatus.PENDING, LoanStatus.APPROVED),
        (LoanStatus.PENDING, LoanStatus.POSTPONED),
        (LoanStatus.PENDING, LoanStatus.ARCHIVED),
    }
)

NOTIFIED_STATUSES = {LoanStatus.APPROVED, LoanStatus.POSTPONED, LoanStatus.ARCHIVED}


def check_transition(loan: LoanApplication, target: LoanStatus, *, reason: str | None = None) -> None:
    """Raise the matching LoanError when ``loan`` may not move to ``target``."""
    current = LoanStatus(loan.status)
    if (current, target) not in ALLOWED_TRANSITIONS:
        raise InvalidTransition(current.value, target.value)
    if loan.awaiting_client_response:
        raise AwaitingClientResponse(loan.id)

    if target == LoanStatus.PENDING:
        missing = loan.missing_upload_slots()
        if missing:
            raise PreconditionFailed("required uploads missing", missing_slots=missing)
    elif target == LoanStatus.APPROVED:
        if not loan.signature:
            raise PreconditionFailed("signature required")
    elif target in (LoanStatus.POSTPONED, LoanStatus.ARCHIVED):
        if not (reason or "").strip():
            raise PreconditionFailed(f"reason required to move loan to {target.value}")


class LoanStatusService:
    """Applies status changes and the cantity negotiation to a single loan."""

    def __init__(self, repository: LoanRepository, notifier: Notifier) -> None:
        self.repository = repository
        self.notifier = notifier

    async def _get_loan(self, loan_id: UUID) -> LoanApplication:
        loan = await self.repository.get(loan_id)
        if not loan:
            raise NotFound("loan_application", loan_id)
        return loan

    async def _save(self, loan: LoanApplication, *, actor_id: str | None, action: str, before) -> None:
        self.repository.record_audit(loan, actor_id=actor_id, action=action, before=before)
        await self.repository.commit()
        await self.repository.refresh(loan)

    async def transition(
        self,
        loan_id: UUID,
        target: LoanStatus,
        *,
        reason: str | None = None,
        actor_id: str | None = None,
    ) -> LoanApplication:
        loan = await self._get_loan(loan_id)
        check_transition(loan, target, reason=reason)

        before = loan_snapshot(loan)
        loan.status = target.value
        if target in (LoanStatus.POSTPONED, LoanStatus.ARCHIVED):
            loan.reason_reject = reason.strip()
        if actor_id:
            loan.employee_id = actor_id
        await self._save(loan, actor_id=actor_id, action="loan_application.status_changed", before=before)
        logger.info(
            "Loan moved from %s to %s",
            before.get("status"),
            target.value,
            extra={"loan_id": loan.id},
        )

        if target in NOTIFIED_STATUSES:
            await notify_safely(
                self.notifier,
                LoanNotification(
                    event=f"loan.{target.value.lower()}",
                    loan_id=loan.id,
                    user_id=loan.user_id,
                    payload={"status": target.value, "reason": loan.reason_reject},
                ),
            )
        return loan

    async def propose_cantity(
        self, loan_id: UUID, offer: CantityOffer, *, actor_id: str | None = None
    ) -> LoanApplication:
        loan = await self._get_loan(loan_id)
        if loan.status != LoanStatus.PENDING.value:
            raise PreconditionFailed("cantity can only be renegotiated on pending loans", status=loan.status)
        if loan.awaiting_client_response:
            raise AwaitingClientResponse(loan.id)

        before = loan_snapshot(loan)
        loan.new_cantity = offer.amount
        loan.reason_change_cantity = offer.reason
        loan.new_cantity_opt = True
        if actor_id:
            loan.employee_id = actor_id
        self.repository.add_event(loan.id, LoanEventType.CHANGE_CANTITY.value)
        await self._save(loan, actor_id=actor_id, action="loan_application.cantity_proposed", before=before)

        await notify_safely(
            self.notifier,
            LoanNotification(
                event="loan.cantity_offer",
                loan_id=loan.id,
                user_id=loan.user_id,
                payload={"new_cantity": offer.amount, "reason": offer.reason},
            ),
        )
        return loan

    async def respond_to_cantity(
        self, loan_id: UUID, *, accept: bool, actor_id: str | None = None
    ) -> LoanApplication:
        loan = await self._get_loan(loan_id)
        if not loan.awaiting_client_response:
            raise PreconditionFailed("no open cantity offer")

        before = loan_snapshot(loan)
        if accept:
            loan.cantity = loan.new_cantity
        loan.new_cantity = None
        loan.new_cantity_opt = False

        now = datetime.now(timezone.utc)
        for event in await self.repository.open_events(loan.id, LoanEventType.CHANGE_CANTITY.value):
            event.is_answered = True
            event.answered_at = now
        action = "loan_application.cantity_accepted" if accept else "loan_application.cantity_rejected"
        await self._save(loan, actor_id=actor_id, action=action, before=before)
        return loan

    async def assign_employee(
        self, loan_id: UUID, employee_id: str, *, actor_id: str | None = None
    ) -> LoanApplication:
        loan = await self._get_loan(loan_id)
        before = loan_snapshot(loan)
        loan.employee_id = employee_id
        await self._save(loan, actor_id=actor_id, action="loan_application.employee_assigned", before=before)
        return loan

    async def set_reject_reason(
        self, loan_id: UUID, reason: str, *, actor_id: str | None = None
    ) -> LoanApplication:
        if not (reason or "").strip():
            raise PreconditionFailed("reason required")
        loan = await self._get_loan(loan_id)
        before = loan_snapshot(loan)
        loan.reason_reject = reason.strip()
        await self._save(loan, actor_id=actor_id, action="loan_application.reject_reason_set", before=before)
        return loan
