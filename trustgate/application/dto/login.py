from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from trustgate.domain.entities.account import Account, ModerationRecord, PortalName
from trustgate.domain.entities.auth import AuthSession
from trustgate.domain.entities.device import DeviceEnvironment
from trustgate.domain.exceptions import AccountBannedError, LoginError, LoginFailureReason


OutcomeStatus = Literal["completed", "otp_required", "retry", "rejected"]
CancelResult = Literal["cancelled", "already_completed", "nothing_pending"]


@dataclass(frozen=True)
class AuthenticateInput:
    identifier: str
    password: str
    device: DeviceEnvironment


@dataclass(frozen=True)
class AccountSummaryOutput:
    id: str
    email: str
    display_name: str
    role: str
    status: str


@dataclass(frozen=True)
class CompletedSessionOutput:
    account: AccountSummaryOutput
    session: AuthSession
    fingerprint: str
    verified_with_otp: bool


@dataclass(frozen=True)
class AppealContextOutput:
    email: str
    display_name: str
    moderation_history: tuple[ModerationRecord, ...]


@dataclass(frozen=True)
class LoginOutcome:
    status: OutcomeStatus
    reason: LoginFailureReason | None = None
    message: str | None = None
    completed: CompletedSessionOutput | None = None
    otp_email: str | None = None
    resend_available_in: int | None = None
    appeal: AppealContextOutput | None = None

    @classmethod
    def session_completed(cls, completed: CompletedSessionOutput) -> LoginOutcome:
        return cls(status="completed", completed=completed)

    @classmethod
    def otp_required(cls, *, otp_email: str, resend_available_in: int) -> LoginOutcome:
        return cls(
            status="otp_required",
            otp_email=otp_email,
            resend_available_in=resend_available_in,
            message="A verification code was sent to your email.",
        )

    @classmethod
    def retry(cls, error: LoginError, *, resend_available_in: int | None = None) -> LoginOutcome:
        return cls(
            status="retry",
            reason=error.reason,
            message=error.message,
            resend_available_in=resend_available_in,
        )

    @classmethod
    def rejected(cls, error: LoginError) -> LoginOutcome:
        appeal = None
        if isinstance(error, AccountBannedError):
            appeal = AppealContextOutput(
                email=error.email,
                display_name=error.display_name,
                moderation_history=error.moderation_history,
            )
        return cls(status="rejected", reason=error.reason, message=error.message, appeal=appeal)


@dataclass(frozen=True)
class PasswordResetInput:
    identifier: str


@dataclass(frozen=True)
class PasswordResetOutput:
    email: str


@dataclass(frozen=True)
class LogoutInput:
    access_token: str
    portal: PortalName


@dataclass(frozen=True)
class AccessTokenClaims:
    user_id: str
    email: str | None


def build_account_summary(account: Account) -> AccountSummaryOutput:
    return AccountSummaryOutput(
        id=account.id,
        email=account.email,
        display_name=account.display_name,
        role=account.role,
        status=account.status,
    )
