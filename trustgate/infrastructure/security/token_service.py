from __future__ import annotations

import jwt

from trustgate.application.dto.login import AccessTokenClaims
from trustgate.application.ports.access_token_port import AccessTokenPort
from trustgate.domain.exceptions import AccessTokenInvalidError


class SupabaseJwtVerifier(AccessTokenPort):
    def __init__(self, *, jwt_secret: str, audience: str = "authenticated"):
        self._jwt_secret = jwt_secret
        self._audience = audience

    def decode(self, *, token: str) -> AccessTokenClaims:
        try:
            payload = jwt.decode(
                token,
                self._jwt_secret,
                algorithms=["HS256"],
                audience=self._audience,
            )
        except jwt.PyJWTError as exc:
            raise AccessTokenInvalidError("Invalid access token.") from exc

        user_id = payload.get("sub")
        if not user_id or not isinstance(user_id, str):
            raise AccessTokenInvalidError("Invalid token subject.")

        email = payload.get("email")
        return AccessTokenClaims(
            user_id=user_id,
            email=email.lower() if isinstance(email, str) and email else None,
        )
