from __future__ import annotations

from typing import Protocol

from trustgate.application.dto.login import AccessTokenClaims


class AccessTokenPort(Protocol):
    def decode(self, *, token: str) -> AccessTokenClaims:
        ...
