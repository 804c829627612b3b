from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from trustgate.application.dto.login import (
    AuthenticateInput,
    CancelResult,
    CompletedSessionOutput,
    LoginOutcome,
    build_account_summary,
)
from trustgate.application.ports.account_store_port import AccountStorePort, ModerationHistoryPort
from trustgate.application.ports.activity_log_port import ActivityLogPort
from trustgate.application.ports.credential_verifier_port import CredentialVerifierPort
from trustgate.application.ports.otp_port import OtpPort, OtpVerification
from trustgate.domain.entities.account import Account, ModerationRecord
from trustgate.domain.entities.auth import AuthSession
from trustgate.domain.exceptions import (
    AccountBannedError,
    AccountNotFoundError,
    AccountSuspendedError,
    ExternalServiceError,
    InvalidLoginInputError,
    InvalidLoginStateError,
    LoginError,
    LoginFailureReason,
    OtpCooldownError,
    OtpExpiredError,
    OtpInvalidError,
    OtpSendFailedError,
    OtpVerificationUnknownError,
    ProfileLookupFailedError,
)
from trustgate.domain.services.device_fingerprint import DeviceFingerprinter
from trustgate.domain.services.login_state import LoginState, transition
from trustgate.domain.services.portal_policy import PortalPolicy

from .device_trust import DEFAULT_DEVICE_LABEL, DeviceTrustService
from .login_common import (
    OTP_CODE_PATTERN,
    call_with_timeout,
    is_email,
    normalize_email,
    run_best_effort,
    utcnow,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT_SECONDS = 20.0
DEFAULT_RESEND_COOLDOWN_SECONDS = 60
MODERATION_HISTORY_LIMIT = 20

_BUSY_STATES = frozenset(
    {LoginState.VALIDATING_CREDENTIALS, LoginState.CHECKING_TRUST, LoginState.VERIFYING_OTP}
)

SessionReadyCallback = Callable[[CompletedSessionOutput], Awaitable[None]]


class _Cancelled(LoginError):
    reason = LoginFailureReason.CANCELLED


@dataclass(frozen=True)
class _Challenge:
    email: str
    account: Account
    fingerprint: str
    device_label: str
    user_agent: str


class LoginOrchestrator:
    """Runs one login flow for one portal.

    ``authenticate`` either completes the session straight away (trusted
    device) or discards the fresh session and opens an OTP challenge that
    ``submit_otp`` closes. Every step that awaits an external call checks,
    once it resumes, that the attempt it belongs to is still current, so a
    late answer never finalizes a flow the user already abandoned.
    """

    def __init__(
        self,
        *,
        policy: PortalPolicy,
        credential_verifier: CredentialVerifierPort,
        account_store: AccountStorePort,
        otp_port: OtpPort,
        device_trust: DeviceTrustService,
        activity_log: ActivityLogPort,
        fingerprinter: DeviceFingerprinter,
        moderation_history: ModerationHistoryPort | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        resend_cooldown_seconds: int = DEFAULT_RESEND_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        on_session_ready: SessionReadyCallback | None = None,
    ):
        self._policy = policy
        self._credentials = credential_verifier
        self._accounts = account_store
        self._otp = otp_port
        self._device_trust = device_trust
        self._activity_log = activity_log
        self._fingerprinter = fingerprinter
        self._moderation_history = moderation_history
        self._timeout_seconds = timeout_seconds
        self._resend_cooldown_seconds = resend_cooldown_seconds
        self._clock = clock
        self._on_session_ready = on_session_ready

        self._state = LoginState.IDLE
        self._attempt = 0
        self._challenge: _Challenge | None = None
        self._cooldown_until: float | None = None
        self._finalized_attempt: int | None = None
        self._completed_outcome: LoginOutcome | None = None

    @property
    def state(self) -> LoginState:
        return self._state

    @property
    def policy(self) -> PortalPolicy:
        return self._policy

    @property
    def otp_email(self) -> str | None:
        return self._challenge.email if self._challenge else None

    def resend_available_in(self) -> int:
        if self._cooldown_until is None:
            return 0
        return max(0, math.ceil(self._cooldown_until - self._clock()))

    async def authenticate(self, command: AuthenticateInput) -> LoginOutcome:
        if self._state in _BUSY_STATES:
            raise InvalidLoginStateError("A login step is already in progress.")

        self._attempt += 1
        attempt = self._attempt
        self._challenge = None
        self._cooldown_until = None
        self._move(LoginState.VALIDATING_CREDENTIALS)

        try:
            return await self._authenticate(command)
        except LoginError as exc:
            if self._is_stale(attempt):
                return self._cancelled_outcome()
            self._challenge = None
            self._move(LoginState.REJECTED)
            logger.info(
                "login_orchestrator: rejected portal=%s stage=authenticate reason=%s",
                self._policy.name,
                exc.reason.value,
            )
            return LoginOutcome.rejected(exc)

    async def submit_otp(self, code: str) -> LoginOutcome:
        if self._state != LoginState.AWAITING_OTP or self._challenge is None:
            raise InvalidLoginStateError("No verification code is pending for this login.")

        code = code.strip()
        if not OTP_CODE_PATTERN.match(code):
            return LoginOutcome.retry(
                InvalidLoginInputError("Enter the 6-digit verification code."),
                resend_available_in=self.resend_available_in(),
            )

        attempt = self._attempt
        challenge = self._challenge
        self._move(LoginState.VERIFYING_OTP)

        try:
            verification = await self._call(self._otp.verify(email=challenge.email, code=code))
        except ExternalServiceError as exc:
            if self._is_stale(attempt):
                return self._cancelled_outcome()
            logger.warning(
                "login_orchestrator: otp_verify_unavailable portal=%s error=%s",
                self._policy.name,
                exc,
            )
            self._move(LoginState.AWAITING_OTP)
            return LoginOutcome.retry(
                OtpVerificationUnknownError("Verification failed. Please try again."),
                resend_available_in=self.resend_available_in(),
            )

        if self._is_stale(attempt):
            if verification.session is not None:
                await self._discard_session(verification.session)
            return self._cancelled_outcome()

        if not verification.ok:
            return self._verification_failed(verification)

        try:
            return await self._complete_verified(attempt, challenge, verification.session)
        except LoginError as exc:
            if self._is_stale(attempt):
                return self._cancelled_outcome()
            self._challenge = None
            self._move(LoginState.REJECTED)
            logger.info(
                "login_orchestrator: rejected portal=%s stage=submit_otp reason=%s",
                self._policy.name,
                exc.reason.value,
            )
            return LoginOutcome.rejected(exc)

    async def resend_otp(self) -> LoginOutcome:
        if self._state != LoginState.AWAITING_OTP or self._challenge is None:
            raise InvalidLoginStateError("No verification code is pending for this login.")

        remaining = self.resend_available_in()
        if remaining > 0:
            return LoginOutcome.retry(
                OtpCooldownError(
                    f"Please wait {remaining} seconds before requesting a new code.",
                    retry_after_seconds=remaining,
                ),
                resend_available_in=remaining,
            )

        attempt = self._attempt
        email = self._challenge.email
        try:
            await self._send_code(email)
        except LoginError as exc:
            if self._is_stale(attempt):
                return self._cancelled_outcome()
            return LoginOutcome.retry(exc, resend_available_in=0)

        if self._is_stale(attempt):
            return self._cancelled_outcome()
        logger.info("login_orchestrator: otp_resent portal=%s", self._policy.name)
        return LoginOutcome.otp_required(otp_email=email, resend_available_in=self.resend_available_in())

    def cancel(self) -> CancelResult:
        if self._state == LoginState.SESSION_COMPLETE:
            return "already_completed"
        if self._state not in (LoginState.AWAITING_OTP, LoginState.VERIFYING_OTP):
            return "nothing_pending"

        self._attempt += 1
        self._challenge = None
        self._cooldown_until = None
        self._move(LoginState.REJECTED)
        logger.info("login_orchestrator: challenge_cancelled portal=%s", self._policy.name)
        return "cancelled"

    async def finalize_session(
        self,
        *,
        account: Account,
        session: AuthSession,
        fingerprint: str,
        verified_with_otp: bool,
    ) -> LoginOutcome:
        attempt = self._attempt
        if self._finalized_attempt == attempt and self._completed_outcome is not None:
            return self._completed_outcome

        self._finalized_attempt = attempt
        self._challenge = None
        self._cooldown_until = None
        self._move(LoginState.SESSION_COMPLETE)

        await run_best_effort(
            "login_orchestrator: update_activity",
            self._accounts.update_activity(email=account.email, last_active_at=utcnow(), online=True),
            timeout_seconds=self._timeout_seconds,
        )
        await run_best_effort(
            "login_orchestrator: record_login",
            self._activity_log.record_login(email=account.email, portal=self._policy.name),
            timeout_seconds=self._timeout_seconds,
        )

        completed = CompletedSessionOutput(
            account=build_account_summary(account),
            session=session,
            fingerprint=fingerprint,
            verified_with_otp=verified_with_otp,
        )
        outcome = LoginOutcome.session_completed(completed)
        self._completed_outcome = outcome
        logger.info(
            "login_orchestrator: session_completed portal=%s account_id=%s otp=%s",
            self._policy.name,
            account.id,
            verified_with_otp,
        )
        if self._on_session_ready is not None:
            await self._on_session_ready(completed)
        return outcome

    async def _authenticate(self, command: AuthenticateInput) -> LoginOutcome:
        identifier = command.identifier.strip()
        if not identifier:
            raise InvalidLoginInputError("Please enter your email or username.")
        if not command.password.strip():
            raise InvalidLoginInputError("Please enter your password.")

        account = await self._resolve_account(identifier)
        email = account.email.lower() if account is not None else normalize_email(identifier)
        if account is not None:
            await self._check_admission(account)

        session = await self._call(self._credentials.sign_in(email=email, password=command.password))
        if account is None:
            account = await self._load_profile_after_sign_in(email, session)
            try:
                await self._check_admission(account)
            except LoginError:
                await self._discard_session(session)
                raise

        self._move(LoginState.CHECKING_TRUST)
        fingerprint = self._fingerprinter.compute(command.device)
        user_id = session.identity.id

        trusted = False
        if not self._policy.always_require_otp:
            trusted = await self._device_trust.is_trusted(user_id=user_id, fingerprint=fingerprint)

        if trusted:
            await self._device_trust.touch(user_id=user_id, fingerprint=fingerprint, last_used_at=utcnow())
            return await self.finalize_session(
                account=account,
                session=session,
                fingerprint=fingerprint,
                verified_with_otp=False,
            )

        # No authenticated session may stay open while the code is pending.
        await self._discard_session(session)
        self._challenge = _Challenge(
            email=email,
            account=account,
            fingerprint=fingerprint,
            device_label=DEFAULT_DEVICE_LABEL,
            user_agent=command.device.user_agent,
        )
        await self._send_code(email)
        self._move(LoginState.AWAITING_OTP)
        logger.info(
            "login_orchestrator: otp_required portal=%s account_id=%s",
            self._policy.name,
            account.id,
        )
        return LoginOutcome.otp_required(otp_email=email, resend_available_in=self.resend_available_in())

    async def _resolve_account(self, identifier: str) -> Account | None:
        if is_email(identifier):
            try:
                return await self._call(self._accounts.find_by_email(email=normalize_email(identifier)))
            except ExternalServiceError as exc:
                logger.warning("login_orchestrator: account_lookup_failed by=email error=%s", exc)
                return None

        if "@" in identifier:
            raise InvalidLoginInputError("Please enter a valid email address.")

        try:
            account = await self._call(self._accounts.find_by_identifier(identifier=identifier))
        except ExternalServiceError as exc:
            logger.warning("login_orchestrator: account_lookup_failed by=username error=%s", exc)
            account = None
        if account is None:
            raise AccountNotFoundError("Username not found. Please check your credentials.")
        return account

    async def _check_admission(self, account: Account) -> None:
        if account.status == "banned":
            history = await self._load_moderation_history(account.email)
            raise AccountBannedError(
                "Your account has been banned. Please contact support for assistance.",
                email=account.email,
                display_name=account.display_name,
                moderation_history=tuple(history),
            )
        if account.status == "suspended":
            raise AccountSuspendedError(
                "Your account has been suspended. Please contact support for assistance."
            )
        self._policy.check(account)

    async def _load_profile_after_sign_in(self, email: str, session: AuthSession) -> Account:
        try:
            account = await self._call(self._accounts.find_by_email(email=email))
        except ExternalServiceError as exc:
            logger.warning("login_orchestrator: profile_lookup_failed error=%s", exc)
            account = None
        if account is None:
            await self._discard_session(session)
            logger.error(
                "login_orchestrator: profile_missing portal=%s identity_id=%s",
                self._policy.name,
                session.identity.id,
            )
            raise ProfileLookupFailedError("Unable to load your profile details. Please contact support.")
        return account

    async def _load_moderation_history(self, email: str) -> list[ModerationRecord]:
        if self._moderation_history is None:
            return []
        try:
            return await self._call(
                self._moderation_history.list_moderation_records(
                    email=email,
                    limit=MODERATION_HISTORY_LIMIT,
                )
            )
        except Exception as exc:
            logger.warning("login_orchestrator: moderation_history_unavailable error=%s", exc)
            return []

    async def _complete_verified(
        self,
        attempt: int,
        challenge: _Challenge,
        session: AuthSession,
    ) -> LoginOutcome:
        try:
            identity = await self._call(self._credentials.get_current_identity(session=session))
        except ExternalServiceError:
            await self._discard_session(session)
            raise
        if self._is_stale(attempt):
            await self._discard_session(session)
            return self._cancelled_outcome()
        if identity is None or identity.email.lower() != challenge.email:
            await self._discard_session(session)
            raise OtpVerificationUnknownError("Authentication failed. Please try again.")

        await self._device_trust.upsert_trusted(
            user_id=identity.id,
            fingerprint=challenge.fingerprint,
            label=challenge.device_label,
            user_agent=challenge.user_agent,
            last_used_at=utcnow(),
        )
        if self._is_stale(attempt):
            await self._discard_session(session)
            return self._cancelled_outcome()

        return await self.finalize_session(
            account=challenge.account,
            session=session,
            fingerprint=challenge.fingerprint,
            verified_with_otp=True,
        )

    def _verification_failed(self, verification: OtpVerification) -> LoginOutcome:
        if verification.failure == "invalid":
            self._move(LoginState.AWAITING_OTP)
            return LoginOutcome.retry(
                OtpInvalidError("Invalid verification code. Please check and try again."),
                resend_available_in=self.resend_available_in(),
            )

        if verification.failure in ("expired", "forbidden"):
            error: LoginError
            if verification.failure == "expired":
                error = OtpExpiredError("Verification code expired. Please sign in again to get a new one.")
            else:
                error = OtpVerificationUnknownError("Access denied. Please sign in again to get a new code.")
            self._challenge = None
            self._cooldown_until = None
            self._move(LoginState.REJECTED)
            logger.info(
                "login_orchestrator: challenge_closed portal=%s failure=%s",
                self._policy.name,
                verification.failure,
            )
            return LoginOutcome.rejected(error)

        self._move(LoginState.AWAITING_OTP)
        return LoginOutcome.retry(
            OtpVerificationUnknownError(verification.message or "Verification failed. Please try again."),
            resend_available_in=self.resend_available_in(),
        )

    async def _send_code(self, email: str) -> None:
        # Reserved before the await so an overlapping resend already sees the cooldown.
        reserved = self._clock() + self._resend_cooldown_seconds
        self._cooldown_until = reserved
        try:
            await self._call(self._otp.send(email=email, purpose=self._policy.otp_purpose))
        except LoginError as exc:
            if self._cooldown_until == reserved:
                self._cooldown_until = None
            if isinstance(exc, ExternalServiceError):
                raise OtpSendFailedError("Failed to send verification code. Please try again.") from exc
            raise

    async def _discard_session(self, session: AuthSession) -> None:
        await run_best_effort(
            "login_orchestrator: sign_out",
            self._credentials.sign_out(session=session),
            timeout_seconds=self._timeout_seconds,
        )

    async def _call(self, awaitable: Awaitable[T]) -> T:
        return await call_with_timeout(awaitable, timeout_seconds=self._timeout_seconds)

    def _is_stale(self, attempt: int) -> bool:
        return attempt != self._attempt

    def _cancelled_outcome(self) -> LoginOutcome:
        return LoginOutcome.rejected(_Cancelled("Login was cancelled."))

    def _move(self, target: LoginState) -> None:
        self._state = transition(self._state, target)
