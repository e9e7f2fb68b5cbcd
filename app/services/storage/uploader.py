from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from app.services.loan_errors import UploadFailed
from app.services.storage.adapter import StorageAdapter

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class UploadPolicy:
    max_attempts: int = 3
    backoff_base_seconds: float = 1.0

    def backoff_for(self, attempt: int) -> float:
        """Delay after failed attempt number ``attempt`` (1-based)."""
        return self.backoff_base_seconds * (2 ** (attempt - 1))


@dataclass(frozen=True)
class UploadResult:
    public_url: str
    object_key: str
    attempts: int


class BlobUploadClient:
    """Uploads bytes to object storage, retrying transient failures with backoff.

    Objects are written under a caller-chosen key and overwrite whatever was
    there, so retrying an upload that partially succeeded is harmless.
    """

    def __init__(
        self,
        adapter: StorageAdapter,
        policy: UploadPolicy | None = None,
        *,
        sleep: Sleep | None = None,
    ) -> None:
        self.adapter = adapter
        self.policy = policy or UploadPolicy()
        self._sleep = sleep or asyncio.sleep

    async def upload(self, content: bytes, key: str, content_type: str) -> UploadResult:
        last_error: Exception | None = None
        for attempt in range(1, self.policy.max_attempts + 1):
            try:
                await asyncio.to_thread(self.adapter.put_object, key, content, content_type)
                public_url = self.adapter.public_url(key)
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "Upload attempt %s/%s for %s failed: %s",
                    attempt,
                    self.policy.max_attempts,
                    key,
                    exc,
                )
                if attempt < self.policy.max_attempts:
                    await self._sleep(self.policy.backoff_for(attempt))
                continue
            return UploadResult(public_url=public_url, object_key=key, attempts=attempt)

        raise UploadFailed(key, self.policy.max_attempts, last_error)
