from __future__ import annotations

from typing import Protocol

from trustgate.domain.entities.account import PortalName


class ActivityLogPort(Protocol):
    async def record_login(self, *, email: str, portal: PortalName) -> None:
        ...

    async def record_logout(self, *, email: str, portal: PortalName) -> None:
        ...
