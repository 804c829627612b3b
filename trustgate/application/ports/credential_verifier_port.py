from __future__ import annotations

from typing import Protocol

from trustgate.domain.entities.auth import AuthIdentity, AuthSession


class CredentialVerifierPort(Protocol):
    async def sign_in(self, *, email: str, password: str) -> AuthSession:
        """Raises InvalidCredentialsError, EmailUnconfirmedError or ExternalServiceError."""
        ...

    async def get_current_identity(self, *, session: AuthSession) -> AuthIdentity | None:
        ...

    async def sign_out(self, *, session: AuthSession) -> None:
        ...
