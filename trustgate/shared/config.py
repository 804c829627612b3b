from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv


load_dotenv()


def _env(name: str, default: str | None = None) -> str | None:
    return os.getenv(name, default)


def _bool(name: str, default: bool = False) -> bool:
    value = _env(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _csv(name: str) -> tuple[str, ...]:
    value = _env(name)
    if not value:
        return ()
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    supabase_url: str
    supabase_anon_key: str
    supabase_jwt_secret: str
    postgres_dsn: str
    external_call_timeout_seconds: float
    otp_resend_cooldown_seconds: int
    login_attempt_ttl_seconds: float
    fingerprint_hash_algorithm: str
    fingerprint_length: int
    admin_email_allowlist: tuple[str, ...]
    admin_always_require_otp: bool
    password_reset_redirect_url: str
    cors_allow_origins: tuple[str, ...]
    log_level: str


def get_settings() -> Settings:
    return Settings(
        supabase_url=(_env("SUPABASE_URL", "") or "").rstrip("/"),
        supabase_anon_key=_env("SUPABASE_ANON_KEY", ""),
        supabase_jwt_secret=_env("SUPABASE_JWT_SECRET", ""),
        postgres_dsn=_env("POSTGRES_DSN", ""),
        external_call_timeout_seconds=float(_env("EXTERNAL_CALL_TIMEOUT_SECONDS", "20")),
        otp_resend_cooldown_seconds=int(_env("OTP_RESEND_COOLDOWN_SECONDS", "60")),
        login_attempt_ttl_seconds=float(_env("LOGIN_ATTEMPT_TTL_SECONDS", "900")),
        fingerprint_hash_algorithm=_env("FINGERPRINT_HASH_ALGORITHM", "sha256"),
        fingerprint_length=int(_env("FINGERPRINT_LENGTH", "32")),
        admin_email_allowlist=_csv("ADMIN_EMAIL_ALLOWLIST"),
        admin_always_require_otp=_bool("ADMIN_ALWAYS_REQUIRE_OTP"),
        password_reset_redirect_url=_env("PASSWORD_RESET_REDIRECT_URL", ""),
        cors_allow_origins=_csv("CORS_ALLOW_ORIGINS") or ("*",),
        log_level=_env("LOG_LEVEL", "INFO").upper(),
    )
