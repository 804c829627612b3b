from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Protocol

from trustgate.domain.entities.auth import AuthSession, OtpPurpose


OtpFailureKind = Literal["invalid", "expired", "forbidden", "unknown"]


@dataclass(frozen=True)
class OtpVerification:
    session: AuthSession | None
    failure: OtpFailureKind | None = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None and self.session is not None


class OtpPort(Protocol):
    async def send(self, *, email: str, purpose: OtpPurpose) -> None:
        """Raises OtpSendFailedError or ExternalServiceError."""
        ...

    async def verify(self, *, email: str, code: str) -> OtpVerification:
        ...
