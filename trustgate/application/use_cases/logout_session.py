from __future__ import annotations

from trustgate.application.dto.login import LogoutInput
from trustgate.application.ports.access_token_port import AccessTokenPort
from trustgate.application.ports.account_store_port import AccountStorePort
from trustgate.application.ports.activity_log_port import ActivityLogPort
from trustgate.application.ports.credential_verifier_port import CredentialVerifierPort
from trustgate.domain.entities.auth import AuthIdentity, AuthSession

from .login_common import run_best_effort, utcnow


class LogoutSessionUseCase:
    def __init__(
        self,
        *,
        access_token_port: AccessTokenPort,
        credential_verifier: CredentialVerifierPort,
        account_store: AccountStorePort,
        activity_log: ActivityLogPort,
        timeout_seconds: float,
    ):
        self._access_token_port = access_token_port
        self._credential_verifier = credential_verifier
        self._account_store = account_store
        self._activity_log = activity_log
        self._timeout_seconds = timeout_seconds

    async def execute(self, command: LogoutInput) -> None:
        claims = self._access_token_port.decode(token=command.access_token)
        session = AuthSession(
            identity=AuthIdentity(id=claims.user_id, email=claims.email or "", email_confirmed=True),
            access_token=command.access_token,
            refresh_token="",
            expires_at=None,
        )
        await run_best_effort(
            "logout_session: sign_out",
            self._credential_verifier.sign_out(session=session),
            timeout_seconds=self._timeout_seconds,
        )
        if not claims.email:
            return

        await run_best_effort(
            "logout_session: update_activity",
            self._account_store.update_activity(email=claims.email, last_active_at=utcnow(), online=False),
            timeout_seconds=self._timeout_seconds,
        )
        await run_best_effort(
            "logout_session: record_logout",
            self._activity_log.record_logout(email=claims.email, portal=command.portal),
            timeout_seconds=self._timeout_seconds,
        )
