from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal


AccountRole = Literal["user", "admin"]
AccountStatus = Literal["active", "inactive", "suspended", "banned"]
PortalName = Literal["user", "admin"]


@dataclass(frozen=True)
class Account:
    id: str
    email: str
    username: str | None
    first_name: str | None
    last_name: str | None
    role: AccountRole
    status: AccountStatus
    last_active_at: datetime | None
    is_online: bool

    @property
    def display_name(self) -> str:
        parts = [part for part in (self.first_name, self.last_name) if part]
        if parts:
            return " ".join(parts)
        return self.username or self.email


@dataclass(frozen=True)
class ModerationRecord:
    action: str
    reason: str | None
    admin_email: str | None
    created_at: datetime
