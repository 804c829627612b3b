from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from trustgate.domain.entities.account import ModerationRecord


class LoginFailureReason(str, Enum):
    INVALID_INPUT = "invalid_input"
    ACCOUNT_NOT_FOUND = "account_not_found"
    ACCOUNT_BANNED = "account_banned"
    ACCOUNT_SUSPENDED = "account_suspended"
    ROLE_NOT_PERMITTED = "role_not_permitted"
    INVALID_CREDENTIALS = "invalid_credentials"
    EMAIL_UNCONFIRMED = "email_unconfirmed"
    PROFILE_LOOKUP_FAILED = "profile_lookup_failed"
    OTP_SEND_FAILED = "otp_send_failed"
    OTP_COOLDOWN = "otp_cooldown"
    OTP_EXPIRED = "otp_expired"
    OTP_INVALID = "otp_invalid"
    OTP_VERIFICATION_UNKNOWN_ERROR = "otp_verification_unknown_error"
    SERVICE_UNAVAILABLE = "service_unavailable"
    CANCELLED = "cancelled"


class DomainError(Exception):
    """Base for domain errors."""


class LoginError(DomainError):
    """Login attempt failed for a reason the caller can show to the user."""

    reason: LoginFailureReason = LoginFailureReason.SERVICE_UNAVAILABLE

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidLoginInputError(LoginError):
    """Empty or malformed input rejected before any external call."""

    reason = LoginFailureReason.INVALID_INPUT


class AccountNotFoundError(LoginError):
    """Identifier does not resolve to an account."""

    reason = LoginFailureReason.ACCOUNT_NOT_FOUND


class AccountBannedError(LoginError):
    """Account is banned; carries what an appeal flow needs."""

    reason = LoginFailureReason.ACCOUNT_BANNED

    def __init__(
        self,
        message: str,
        *,
        email: str,
        display_name: str,
        moderation_history: tuple[ModerationRecord, ...] = (),
    ):
        super().__init__(message)
        self.email = email
        self.display_name = display_name
        self.moderation_history = moderation_history


class AccountSuspendedError(LoginError):
    """Account is temporarily suspended."""

    reason = LoginFailureReason.ACCOUNT_SUSPENDED


class RoleNotPermittedError(LoginError):
    """Account role (or address) is not allowed on this portal."""

    reason = LoginFailureReason.ROLE_NOT_PERMITTED


class InvalidCredentialsError(LoginError):
    """Identifier/password pair rejected by the credential service."""

    reason = LoginFailureReason.INVALID_CREDENTIALS


class EmailUnconfirmedError(LoginError):
    """Credentials are valid but the e-mail was never confirmed."""

    reason = LoginFailureReason.EMAIL_UNCONFIRMED


class ProfileLookupFailedError(LoginError):
    """Credential layer accepted the identity but no account profile matches it."""

    reason = LoginFailureReason.PROFILE_LOOKUP_FAILED


class OtpSendFailedError(LoginError):
    """Verification code could not be sent."""

    reason = LoginFailureReason.OTP_SEND_FAILED


class OtpCooldownError(LoginError):
    """Resend requested before the cooldown elapsed."""

    reason = LoginFailureReason.OTP_COOLDOWN

    def __init__(self, message: str, *, retry_after_seconds: int):
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


class OtpExpiredError(LoginError):
    """Challenge expired; a new code is needed."""

    reason = LoginFailureReason.OTP_EXPIRED


class OtpInvalidError(LoginError):
    """Submitted code does not match; the challenge stays open."""

    reason = LoginFailureReason.OTP_INVALID


class OtpVerificationUnknownError(LoginError):
    """Verification failed for a reason the OTP service did not classify."""

    reason = LoginFailureReason.OTP_VERIFICATION_UNKNOWN_ERROR


class ExternalServiceError(LoginError):
    """Transport or unexpected failure talking to an external service."""

    reason = LoginFailureReason.SERVICE_UNAVAILABLE


class ExternalServiceTimeoutError(ExternalServiceError):
    """External call did not answer within the configured bound."""


class InvalidLoginStateError(DomainError):
    """Operation not allowed in the current state of the login flow."""


class AccessTokenInvalidError(DomainError):
    """Bearer token could not be verified."""
