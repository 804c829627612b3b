from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class OtpPurpose(str, Enum):
    NEW_DEVICE = "new_device"
    PASSWORD_RESET = "password_reset"


@dataclass(frozen=True)
class AuthIdentity:
    id: str
    email: str
    email_confirmed: bool


@dataclass(frozen=True)
class AuthSession:
    identity: AuthIdentity
    access_token: str
    refresh_token: str
    expires_at: datetime | None
