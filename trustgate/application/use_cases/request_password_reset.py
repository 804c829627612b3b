from __future__ import annotations

import logging

from trustgate.application.dto.login import PasswordResetInput, PasswordResetOutput
from trustgate.application.ports.account_store_port import AccountStorePort
from trustgate.application.ports.otp_port import OtpPort
from trustgate.domain.entities.auth import OtpPurpose
from trustgate.domain.exceptions import (
    AccountNotFoundError,
    ExternalServiceError,
    InvalidLoginInputError,
    OtpSendFailedError,
)

from .login_common import call_with_timeout, is_email, normalize_email


logger = logging.getLogger(__name__)


class RequestPasswordResetUseCase:
    def __init__(self, *, account_store: AccountStorePort, otp_port: OtpPort, timeout_seconds: float):
        self._account_store = account_store
        self._otp_port = otp_port
        self._timeout_seconds = timeout_seconds

    async def execute(self, command: PasswordResetInput) -> PasswordResetOutput:
        identifier = command.identifier.strip()
        if not identifier:
            raise InvalidLoginInputError("Enter your email or username to reset password.")

        if is_email(identifier):
            email = normalize_email(identifier)
        elif "@" in identifier:
            raise InvalidLoginInputError("Please enter a valid email address.")
        else:
            try:
                account = await call_with_timeout(
                    self._account_store.find_by_identifier(identifier=identifier),
                    timeout_seconds=self._timeout_seconds,
                )
            except ExternalServiceError as exc:
                logger.warning("request_password_reset: account_lookup_failed error=%s", exc)
                account = None
            if account is None:
                raise AccountNotFoundError("Username not found. Enter your email instead.")
            email = account.email.lower()

        try:
            await call_with_timeout(
                self._otp_port.send(email=email, purpose=OtpPurpose.PASSWORD_RESET),
                timeout_seconds=self._timeout_seconds,
            )
        except OtpSendFailedError:
            raise
        except ExternalServiceError as exc:
            raise OtpSendFailedError("Failed to send reset email. Try again.") from exc

        logger.info("request_password_reset: reset_email_sent")
        return PasswordResetOutput(email=email)
