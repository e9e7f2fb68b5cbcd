from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol
from uuid import UUID

import httpx

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoanNotification:
    event: str
    loan_id: UUID
    user_id: UUID | None = None
    payload: dict[str, Any] = field(default_factory=dict)

    def as_json(self) -> dict[str, Any]:
        return {
            "event": self.event,
            "loan_id": str(self.loan_id),
            "user_id": str(self.user_id) if self.user_id else None,
            "payload": self.payload,
        }


class Notifier(Protocol):
    async def notify(self, notification: LoanNotification) -> None: ...


class LoggingNotifier:
    """Default notifier: records the event in the application log only."""

    async def notify(self, notification: LoanNotification) -> None:
        logger.info(
            "Loan notification %s",
            notification.event,
            extra={"loan_id": notification.loan_id},
        )


class WebhookNotifier:
    def __init__(self, url: str, *, timeout_seconds: float = 10.0) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds

    async def notify(self, notification: LoanNotification) -> None:
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            response = await client.post(self.url, json=notification.as_json())
            response.raise_for_status()


async def notify_safely(notifier: Notifier, notification: LoanNotification) -> bool:
    """Deliver a notification without letting delivery problems reach the caller."""
    try:
        await notifier.notify(notification)
    except Exception:
        logger.exception(
            "Failed to deliver loan notification %s",
            notification.event,
            extra={"loan_id": notification.loan_id},
        )
        return False
    return True
