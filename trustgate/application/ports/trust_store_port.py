from __future__ import annotations

from datetime import datetime
from typing import Protocol

from trustgate.domain.entities.device import TrustRecord


class TrustStorePort(Protocol):
    async def get_record(self, *, user_id: str, fingerprint: str) -> TrustRecord | None:
        ...

    async def upsert_trusted(
        self,
        *,
        user_id: str,
        fingerprint: str,
        label: str | None,
        user_agent: str | None,
        last_used_at: datetime,
    ) -> None:
        ...

    async def touch(self, *, user_id: str, fingerprint: str, last_used_at: datetime) -> None:
        ...
