from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from trustgate.domain.entities.account import Account, AccountRole, PortalName
from trustgate.domain.entities.auth import OtpPurpose
from trustgate.domain.exceptions import RoleNotPermittedError


@dataclass(frozen=True)
class PortalPolicy:
    """What distinguishes the citizen portal from the admin console.

    Both portals share one login flow; only role admission, the OTP purpose
    and whether trusted devices may skip the code differ.
    """

    name: PortalName
    allowed_roles: frozenset[AccountRole]
    otp_purpose: OtpPurpose = OtpPurpose.NEW_DEVICE
    allowed_emails: frozenset[str] = field(default_factory=frozenset)
    always_require_otp: bool = False
    denied_message: str = "This account cannot sign in here."

    def admits(self, account: Account) -> bool:
        if account.role not in self.allowed_roles:
            return False
        if self.allowed_emails and account.email.lower() not in self.allowed_emails:
            return False
        return True

    def check(self, account: Account) -> None:
        if not self.admits(account):
            raise RoleNotPermittedError(self.denied_message)


def user_portal_policy() -> PortalPolicy:
    return PortalPolicy(name="user", allowed_roles=frozenset({"user", "admin"}))


def admin_portal_policy(
    *,
    allowed_emails: Iterable[str] = (),
    always_require_otp: bool = False,
) -> PortalPolicy:
    return PortalPolicy(
        name="admin",
        allowed_roles=frozenset({"admin"}),
        allowed_emails=frozenset(email.strip().lower() for email in allowed_emails if email.strip()),
        always_require_otp=always_require_otp,
        denied_message="Only LDRRMO personnel can access the admin console.",
    )
