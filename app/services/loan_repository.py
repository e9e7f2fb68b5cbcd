from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import and_, delete, exists, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.generated_document import GeneratedDocument
from app.models.identity_document import IdentityDocument
from app.models.loan_application import LoanApplication
from app.models.loan_event import LoanEvent
from app.schemas.loan import LoanStatus
from app.services.audit import loan_snapshot, record_audit_log


# Loans in these states never get legal documents generated.
UNDOCUMENTABLE_STATUSES = (
    LoanStatus.DRAFT.value,
    LoanStatus.PENDING.value,
    LoanStatus.POSTPONED.value,
    LoanStatus.ARCHIVED.value,
)


class LoanRepository:
    """Queries and single-record updates over loans and their generated documents.

    Nothing here commits implicitly except the document claim, which has to be
    visible to concurrent runs before any rendering starts.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, loan_id: UUID) -> LoanApplication | None:
        stmt = (
            select(LoanApplication)
            .options(selectinload(LoanApplication.user))
            .where(LoanApplication.id == loan_id)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_cycode(self, cycode: str) -> LoanApplication | None:
        stmt = select(LoanApplication).where(LoanApplication.cycode == cycode).limit(1)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def find_eligible(self, limit: int | None = None) -> list[LoanApplication]:
        has_documents = exists().where(GeneratedDocument.loan_id == LoanApplication.id)
        stmt = (
            select(LoanApplication)
            .options(selectinload(LoanApplication.user))
            .where(
                LoanApplication.status.not_in(UNDOCUMENTABLE_STATUSES),
                ~has_documents,
            )
            .order_by(LoanApplication.created_at.asc(), LoanApplication.id.asc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def claim_for_documents(
        self, loan_id: UUID, *, ttl_seconds: int, allow_existing: bool = False
    ) -> bool:
        now = datetime.now(timezone.utc)
        stale_before = now - timedelta(seconds=ttl_seconds)
        conditions = [
            LoanApplication.id == loan_id,
            or_(
                LoanApplication.documents_claimed_at.is_(None),
                LoanApplication.documents_claimed_at < stale_before,
            ),
        ]
        if not allow_existing:
            conditions.append(~exists().where(GeneratedDocument.loan_id == loan_id))
        stmt = (
            update(LoanApplication)
            .where(*conditions)
            .values(documents_claimed_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount == 1

    async def release_claim(self, loan_id: UUID) -> None:
        stmt = (
            update(LoanApplication)
            .where(LoanApplication.id == loan_id)
            .values(documents_claimed_at=None)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(stmt)

    async def identity_number(self, user_id: UUID) -> str | None:
        stmt = (
            select(IdentityDocument.number)
            .where(IdentityDocument.user_id == user_id)
            .order_by(IdentityDocument.created_at.asc())
            .limit(1)
        )
        result = await self.db.execute(stmt)
        number = result.scalar_one_or_none()
        return number or None

    async def has_documents(self, loan_id: UUID) -> bool:
        stmt = select(func.count(GeneratedDocument.id)).where(GeneratedDocument.loan_id == loan_id)
        result = await self.db.execute(stmt)
        return (result.scalar_one() or 0) > 0

    async def list_documents_for_loan(self, loan_id: UUID) -> list[GeneratedDocument]:
        stmt = (
            select(GeneratedDocument)
            .where(GeneratedDocument.loan_id == loan_id)
            .order_by(GeneratedDocument.created_at.asc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def replace_documents(
        self, loan_id: UUID, documents: Sequence[GeneratedDocument]
    ) -> None:
        await self.db.execute(
            delete(GeneratedDocument)
            .where(GeneratedDocument.loan_id == loan_id)
            .execution_options(synchronize_session=False)
        )
        self.add_documents(documents)

    def add_documents(self, documents: Sequence[GeneratedDocument]) -> None:
        self.db.add_all(list(documents))

    async def list_documents(
        self,
        *,
        user_id: UUID | None = None,
        loan_id: UUID | None = None,
        downloaded: bool | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[GeneratedDocument], int, int]:
        conditions = []
        if loan_id is not None:
            conditions.append(GeneratedDocument.loan_id == loan_id)
        if user_id is not None:
            conditions.append(
                GeneratedDocument.loan_id.in_(
                    select(LoanApplication.id).where(LoanApplication.user_id == user_id)
                )
            )
        if downloaded is True:
            conditions.append(GeneratedDocument.download_count > 0)
        elif downloaded is False:
            conditions.append(GeneratedDocument.download_count == 0)
        where = and_(*conditions) if conditions else None

        count_stmt = select(func.count(GeneratedDocument.id))
        list_stmt = select(GeneratedDocument).order_by(GeneratedDocument.created_at.desc())
        if where is not None:
            count_stmt = count_stmt.where(where)
            list_stmt = list_stmt.where(where)

        total = (await self.db.execute(count_stmt)).scalar_one() or 0
        total_pages = math.ceil(total / page_size) if total else 0
        list_stmt = list_stmt.offset((page - 1) * page_size).limit(page_size)
        items = list((await self.db.execute(list_stmt)).scalars().all())
        return items, total, total_pages

    async def get_document(self, document_id: UUID) -> GeneratedDocument | None:
        return await self.db.get(GeneratedDocument, document_id)

    async def open_events(self, loan_id: UUID, event_type: str) -> list[LoanEvent]:
        stmt = select(LoanEvent).where(
            LoanEvent.loan_id == loan_id,
            LoanEvent.event_type == event_type,
            LoanEvent.is_answered.is_(False),
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    def add_event(self, loan_id: UUID, event_type: str) -> LoanEvent:
        event = LoanEvent(loan_id=loan_id, event_type=event_type, is_answered=False)
        self.db.add(event)
        return event

    def record_audit(
        self,
        loan: LoanApplication,
        *,
        actor_id: str | None,
        action: str,
        before: dict[str, Any] | None,
    ) -> None:
        record_audit_log(
            self.db,
            actor_id=actor_id,
            action=action,
            resource_type="loan_application",
            resource_id=str(loan.id),
            old_value=before,
            new_value=loan_snapshot(loan),
        )

    def add(self, instance: Any) -> None:
        self.db.add(instance)

    async def commit(self) -> None:
        await self.db.commit()

    async def rollback(self) -> None:
        await self.db.rollback()

    async def refresh(self, instance: Any) -> None:
        await self.db.refresh(instance)
