from __future__ import annotations

from functools import lru_cache
from typing import Callable

from fastapi import Header, HTTPException

from trustgate.application.use_cases.device_trust import DeviceTrustService
from trustgate.application.use_cases.login_attempts import LoginAttemptRegistry
from trustgate.application.use_cases.login_orchestrator import LoginOrchestrator
from trustgate.application.use_cases.logout_session import LogoutSessionUseCase
from trustgate.application.use_cases.request_password_reset import RequestPasswordResetUseCase
from trustgate.domain.services.device_fingerprint import DeviceFingerprinter
from trustgate.domain.services.portal_policy import (
    PortalPolicy,
    admin_portal_policy,
    user_portal_policy,
)
from trustgate.infrastructure.clients.supabase_auth_client import SupabaseAuthClient, SupabaseAuthSettings
from trustgate.infrastructure.db.engine import get_engine
from trustgate.infrastructure.db.repositories.accounts_repository import SqlAccountsRepository
from trustgate.infrastructure.db.repositories.activity_log_repository import SqlActivityLogRepository
from trustgate.infrastructure.db.repositories.device_trust_repository import SqlDeviceTrustRepository
from trustgate.infrastructure.security.token_service import SupabaseJwtVerifier
from trustgate.shared.config import get_settings


def _get_db_engine():
    settings = get_settings()
    if not settings.postgres_dsn:
        raise HTTPException(status_code=500, detail="POSTGRES_DSN is required.")
    return get_engine(settings.postgres_dsn)


@lru_cache(maxsize=1)
def _get_auth_client() -> SupabaseAuthClient:
    settings = get_settings()
    if not settings.supabase_url:
        raise HTTPException(status_code=500, detail="SUPABASE_URL is required.")
    if not settings.supabase_anon_key:
        raise HTTPException(status_code=500, detail="SUPABASE_ANON_KEY is required.")
    return SupabaseAuthClient(
        SupabaseAuthSettings(
            url=settings.supabase_url,
            anon_key=settings.supabase_anon_key,
            password_reset_redirect_url=settings.password_reset_redirect_url,
        )
    )


@lru_cache(maxsize=1)
def _get_token_verifier() -> SupabaseJwtVerifier:
    settings = get_settings()
    if not settings.supabase_jwt_secret:
        raise HTTPException(status_code=500, detail="SUPABASE_JWT_SECRET is required.")
    return SupabaseJwtVerifier(jwt_secret=settings.supabase_jwt_secret)


@lru_cache(maxsize=1)
def _get_fingerprinter() -> DeviceFingerprinter:
    settings = get_settings()
    return DeviceFingerprinter(
        algorithm=settings.fingerprint_hash_algorithm,
        length=settings.fingerprint_length,
    )


def _get_accounts_repository() -> SqlAccountsRepository:
    return SqlAccountsRepository(_get_db_engine())


@lru_cache(maxsize=1)
def get_login_attempt_registry() -> LoginAttemptRegistry:
    settings = get_settings()
    return LoginAttemptRegistry(ttl_seconds=settings.login_attempt_ttl_seconds)


def get_portal_policy(portal: str) -> PortalPolicy:
    if portal == "user":
        return user_portal_policy()
    if portal == "admin":
        settings = get_settings()
        return admin_portal_policy(
            allowed_emails=settings.admin_email_allowlist,
            always_require_otp=settings.admin_always_require_otp,
        )
    raise HTTPException(status_code=404, detail="Portal not found.")


def get_login_orchestrator_factory() -> Callable[[PortalPolicy], LoginOrchestrator]:
    settings = get_settings()
    engine = _get_db_engine()
    auth_client = _get_auth_client()
    accounts = SqlAccountsRepository(engine)
    device_trust = DeviceTrustService(
        trust_store=SqlDeviceTrustRepository(engine),
        timeout_seconds=settings.external_call_timeout_seconds,
    )
    activity_log = SqlActivityLogRepository(engine)
    fingerprinter = _get_fingerprinter()

    def _factory(policy: PortalPolicy) -> LoginOrchestrator:
        return LoginOrchestrator(
            policy=policy,
            credential_verifier=auth_client,
            account_store=accounts,
            otp_port=auth_client,
            device_trust=device_trust,
            activity_log=activity_log,
            fingerprinter=fingerprinter,
            moderation_history=accounts,
            timeout_seconds=settings.external_call_timeout_seconds,
            resend_cooldown_seconds=settings.otp_resend_cooldown_seconds,
        )

    return _factory


def get_request_password_reset_use_case() -> RequestPasswordResetUseCase:
    settings = get_settings()
    return RequestPasswordResetUseCase(
        account_store=_get_accounts_repository(),
        otp_port=_get_auth_client(),
        timeout_seconds=settings.external_call_timeout_seconds,
    )


def get_logout_session_use_case() -> LogoutSessionUseCase:
    settings = get_settings()
    engine = _get_db_engine()
    return LogoutSessionUseCase(
        access_token_port=_get_token_verifier(),
        credential_verifier=_get_auth_client(),
        account_store=SqlAccountsRepository(engine),
        activity_log=SqlActivityLogRepository(engine),
        timeout_seconds=settings.external_call_timeout_seconds,
    )


def get_bearer_token(authorization: str = Header(...)) -> str:
    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Invalid authorization header.")
    token = authorization.replace("Bearer ", "", 1).strip()
    if not token:
        raise HTTPException(status_code=401, detail="Missing access token.")
    return token
