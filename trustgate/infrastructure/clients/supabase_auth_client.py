from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Callable, TypeVar

from supabase import AuthApiError, AuthError, Client, ClientOptions, create_client

from trustgate.application.ports.credential_verifier_port import CredentialVerifierPort
from trustgate.application.ports.otp_port import OtpFailureKind, OtpPort, OtpVerification
from trustgate.domain.entities.auth import AuthIdentity, AuthSession, OtpPurpose
from trustgate.domain.exceptions import (
    EmailUnconfirmedError,
    ExternalServiceError,
    InvalidCredentialsError,
    OtpSendFailedError,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class SupabaseAuthSettings:
    url: str
    anon_key: str
    password_reset_redirect_url: str = ""


def _error_details(exc: AuthApiError) -> tuple[int, str, str]:
    """Returns (status, error_code, message) of an auth API error."""
    return int(exc.status or 0), str(getattr(exc, "code", None) or ""), str(exc.message or exc)


def classify_otp_failure(status_code: int, error_code: str, message: str) -> OtpFailureKind:
    text = f"{error_code} {message}".lower()
    if "expired" in text:
        return "expired"
    if "invalid" in text:
        return "invalid"
    if status_code == 403:
        return "forbidden"
    return "unknown"


def _to_identity(user: Any) -> AuthIdentity:
    return AuthIdentity(
        id=str(user.id),
        email=str(getattr(user, "email", None) or "").lower(),
        email_confirmed=bool(
            getattr(user, "email_confirmed_at", None) or getattr(user, "confirmed_at", None)
        ),
    )


def _to_session(response: Any) -> AuthSession:
    session = getattr(response, "session", None)
    user = getattr(session, "user", None) or getattr(response, "user", None)
    if session is None or user is None or not session.access_token:
        raise ExternalServiceError("Auth service returned an incomplete session.")

    expires_at = None
    if getattr(session, "expires_at", None) is not None:
        expires_at = datetime.fromtimestamp(int(session.expires_at), tz=timezone.utc)
    elif getattr(session, "expires_in", None) is not None:
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(session.expires_in))

    return AuthSession(
        identity=_to_identity(user),
        access_token=str(session.access_token),
        refresh_token=str(getattr(session, "refresh_token", None) or ""),
        expires_at=expires_at,
    )


def create_auth_client(settings: SupabaseAuthSettings) -> Client:
    # No stored or refreshed sessions: every call carries its own tokens.
    return create_client(
        settings.url,
        settings.anon_key,
        options=ClientOptions(auto_refresh_token=False, persist_session=False),
    )


class SupabaseAuthClient(CredentialVerifierPort, OtpPort):
    """Password sign-in, e-mail OTP and recovery through the Supabase auth API.

    The supabase client is synchronous, so each call runs in a worker thread.
    A fresh client is built per call because sign-in stores the session on
    the client instance.
    """

    def __init__(
        self,
        settings: SupabaseAuthSettings,
        *,
        client_factory: Callable[[], Client] | None = None,
    ):
        self._settings = settings
        self._client_factory = client_factory or (lambda: create_auth_client(settings))

    async def sign_in(self, *, email: str, password: str) -> AuthSession:
        try:
            response = await self._call(
                "sign_in",
                lambda auth: auth.sign_in_with_password({"email": email, "password": password}),
            )
        except AuthApiError as exc:
            status, error_code, message = _error_details(exc)
            lowered = f"{error_code} {message}".lower()
            if "email not confirmed" in lowered or "email_not_confirmed" in lowered:
                raise EmailUnconfirmedError(
                    "Please check your email and confirm your account before logging in."
                ) from exc
            if status < 500 and (
                "invalid login credentials" in lowered
                or "invalid_credentials" in lowered
                or "invalid_grant" in lowered
            ):
                raise InvalidCredentialsError(
                    "Invalid email/username or password. Please try again."
                ) from exc

            logger.warning(
                "supabase_auth: sign_in_failed status=%s error_code=%s message=%s",
                status,
                error_code,
                message,
            )
            raise ExternalServiceError("Login failed. Please try again.") from exc
        return _to_session(response)

    async def get_current_identity(self, *, session: AuthSession) -> AuthIdentity | None:
        try:
            response = await self._call("get_user", lambda auth: auth.get_user(session.access_token))
        except AuthApiError as exc:
            status, _, message = _error_details(exc)
            if status in (401, 403, 404):
                return None
            raise ExternalServiceError(f"Could not load the signed-in user: {message}") from exc
        user = getattr(response, "user", None)
        if user is None or not getattr(user, "id", None):
            return None
        return _to_identity(user)

    async def sign_out(self, *, session: AuthSession) -> None:
        try:
            await self._call("sign_out", lambda auth: auth.admin.sign_out(session.access_token))
        except AuthApiError as exc:
            status, _, message = _error_details(exc)
            # 401/404: the session is already gone.
            if status in (401, 403, 404):
                return
            raise ExternalServiceError(f"Sign out failed: {message}") from exc

    async def send(self, *, email: str, purpose: OtpPurpose) -> None:
        if purpose == OtpPurpose.PASSWORD_RESET:
            options = {}
            if self._settings.password_reset_redirect_url:
                options["redirect_to"] = self._settings.password_reset_redirect_url

            def request(auth):
                return auth.reset_password_for_email(email, options)
        else:
            def request(auth):
                return auth.sign_in_with_otp(
                    {
                        "email": email,
                        "options": {
                            "should_create_user": False,
                            "data": {"purpose": purpose.value},
                        },
                    }
                )

        try:
            await self._call("send_otp", request)
        except AuthApiError as exc:
            status, error_code, message = _error_details(exc)
            logger.warning(
                "supabase_auth: otp_send_failed status=%s purpose=%s error_code=%s message=%s",
                status,
                purpose.value,
                error_code,
                message,
            )
            raise OtpSendFailedError("Failed to send verification code. Please try again.") from exc
        logger.info("supabase_auth: otp_sent purpose=%s", purpose.value)

    async def verify(self, *, email: str, code: str) -> OtpVerification:
        try:
            response = await self._call(
                "verify_otp",
                lambda auth: auth.verify_otp({"type": "email", "email": email, "token": code}),
            )
        except AuthApiError as exc:
            status, error_code, message = _error_details(exc)
            failure = classify_otp_failure(status, error_code, message)
            logger.info(
                "supabase_auth: otp_verify_failed status=%s failure=%s error_code=%s",
                status,
                failure,
                error_code,
            )
            return OtpVerification(session=None, failure=failure, message=message)
        return OtpVerification(session=_to_session(response))

    async def _call(self, operation: str, request: Callable[[Any], T]) -> T:
        """Runs ``request`` against a fresh client's auth API.

        ``AuthApiError`` is left to the caller; any other auth error (network,
        unexpected payload) means the service is unavailable.
        """
        def run() -> T:
            return request(self._client_factory().auth)

        try:
            return await asyncio.to_thread(run)
        except AuthApiError:
            raise
        except AuthError as exc:
            logger.warning("supabase_auth: request_failed operation=%s error=%s", operation, exc)
            raise ExternalServiceError("Authentication service is unavailable. Please try again.") from exc
