from __future__ import annotations

from datetime import datetime
from typing import Protocol

from trustgate.domain.entities.account import Account, ModerationRecord


class AccountStorePort(Protocol):
    async def find_by_identifier(self, *, identifier: str) -> Account | None:
        ...

    async def find_by_email(self, *, email: str) -> Account | None:
        ...

    async def update_activity(self, *, email: str, last_active_at: datetime, online: bool) -> None:
        ...


class ModerationHistoryPort(Protocol):
    async def list_moderation_records(self, *, email: str, limit: int) -> list[ModerationRecord]:
        ...
