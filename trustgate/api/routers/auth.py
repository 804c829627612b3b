from __future__ import annotations

import logging
from typing import Callable, Union

from fastapi import APIRouter, Depends, HTTPException, Response

from trustgate.api.deps import (
    get_bearer_token,
    get_login_attempt_registry,
    get_login_orchestrator_factory,
    get_logout_session_use_case,
    get_portal_policy,
    get_request_password_reset_use_case,
)
from trustgate.api.schemas.auth import (
    AccountResponse,
    AttemptRequest,
    CancelResponse,
    LoginCompletedResponse,
    LoginRequest,
    LogoutResponse,
    OtpRequiredResponse,
    OtpVerifyRequest,
    PasswordResetRequest,
    PasswordResetResponse,
    SessionResponse,
)
from trustgate.application.dto.login import (
    AuthenticateInput,
    LoginOutcome,
    LogoutInput,
    PasswordResetInput,
)
from trustgate.application.use_cases.login_attempts import LoginAttemptRegistry
from trustgate.application.use_cases.login_orchestrator import LoginOrchestrator
from trustgate.application.use_cases.logout_session import LogoutSessionUseCase
from trustgate.application.use_cases.request_password_reset import RequestPasswordResetUseCase
from trustgate.domain.entities.device import DeviceEnvironment
from trustgate.domain.exceptions import (
    AccessTokenInvalidError,
    InvalidLoginStateError,
    LoginError,
    LoginFailureReason,
)
from trustgate.domain.services.portal_policy import PortalPolicy


logger = logging.getLogger(__name__)

router = APIRouter()

_STATUS_BY_REASON = {
    LoginFailureReason.INVALID_INPUT: 422,
    LoginFailureReason.ACCOUNT_NOT_FOUND: 404,
    LoginFailureReason.ACCOUNT_BANNED: 403,
    LoginFailureReason.ACCOUNT_SUSPENDED: 403,
    LoginFailureReason.ROLE_NOT_PERMITTED: 403,
    LoginFailureReason.INVALID_CREDENTIALS: 401,
    LoginFailureReason.EMAIL_UNCONFIRMED: 403,
    LoginFailureReason.PROFILE_LOOKUP_FAILED: 502,
    LoginFailureReason.OTP_SEND_FAILED: 502,
    LoginFailureReason.OTP_COOLDOWN: 429,
    LoginFailureReason.OTP_EXPIRED: 410,
    LoginFailureReason.OTP_INVALID: 422,
    LoginFailureReason.OTP_VERIFICATION_UNKNOWN_ERROR: 422,
    LoginFailureReason.SERVICE_UNAVAILABLE: 503,
    LoginFailureReason.CANCELLED: 409,
}


def _failure_detail(outcome: LoginOutcome) -> dict:
    detail: dict = {
        "status": outcome.status,
        "reason": outcome.reason.value if outcome.reason else None,
        "message": outcome.message,
    }
    if outcome.resend_available_in is not None:
        detail["resend_available_in"] = outcome.resend_available_in
    if outcome.appeal is not None:
        detail["appeal"] = {
            "email": outcome.appeal.email,
            "display_name": outcome.appeal.display_name,
            "moderation_history": [
                {
                    "action": record.action,
                    "reason": record.reason,
                    "admin_email": record.admin_email,
                    "created_at": record.created_at.isoformat(),
                }
                for record in outcome.appeal.moderation_history
            ],
        }
    return detail


def _raise_for_outcome(outcome: LoginOutcome) -> None:
    status_code = _STATUS_BY_REASON.get(outcome.reason, 400)
    headers = None
    if outcome.reason == LoginFailureReason.OTP_COOLDOWN and outcome.resend_available_in:
        headers = {"Retry-After": str(outcome.resend_available_in)}
    raise HTTPException(status_code=status_code, detail=_failure_detail(outcome), headers=headers)


def _completed_response(outcome: LoginOutcome) -> LoginCompletedResponse:
    completed = outcome.completed
    return LoginCompletedResponse(
        account=AccountResponse(
            id=completed.account.id,
            email=completed.account.email,
            display_name=completed.account.display_name,
            role=completed.account.role,
            status=completed.account.status,
        ),
        session=SessionResponse(
            access_token=completed.session.access_token,
            refresh_token=completed.session.refresh_token,
            expires_at=completed.session.expires_at,
        ),
        verified_with_otp=completed.verified_with_otp,
    )


def _otp_required_response(outcome: LoginOutcome, attempt_id: str) -> OtpRequiredResponse:
    return OtpRequiredResponse(
        attempt_id=attempt_id,
        otp_email=outcome.otp_email,
        resend_available_in=outcome.resend_available_in or 0,
        message=outcome.message,
    )


def _pending_attempt(
    registry: LoginAttemptRegistry,
    attempt_id: str,
    policy: PortalPolicy,
) -> LoginOrchestrator:
    orchestrator = registry.get(attempt_id, portal=policy.name)
    if orchestrator is None:
        raise HTTPException(status_code=409, detail="Login attempt not found or expired. Please sign in again.")
    return orchestrator


@router.post(
    "/v1/auth/{portal}/login",
    response_model=Union[LoginCompletedResponse, OtpRequiredResponse],
)
async def login(
    req: LoginRequest,
    response: Response,
    policy: PortalPolicy = Depends(get_portal_policy),
    orchestrator_factory: Callable[[PortalPolicy], LoginOrchestrator] = Depends(get_login_orchestrator_factory),
    registry: LoginAttemptRegistry = Depends(get_login_attempt_registry),
):
    orchestrator = orchestrator_factory(policy)
    outcome = await orchestrator.authenticate(
        AuthenticateInput(
            identifier=req.identifier,
            password=req.password,
            device=DeviceEnvironment(**req.device.model_dump()),
        )
    )
    if outcome.status == "completed":
        return _completed_response(outcome)
    if outcome.status == "otp_required":
        attempt_id = registry.register(orchestrator)
        response.status_code = 202
        return _otp_required_response(outcome, attempt_id)
    _raise_for_outcome(outcome)


@router.post("/v1/auth/{portal}/otp/verify", response_model=LoginCompletedResponse)
async def verify_otp(
    req: OtpVerifyRequest,
    policy: PortalPolicy = Depends(get_portal_policy),
    registry: LoginAttemptRegistry = Depends(get_login_attempt_registry),
):
    orchestrator = _pending_attempt(registry, req.attempt_id, policy)
    try:
        outcome = await orchestrator.submit_otp(req.code)
    except InvalidLoginStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    finally:
        registry.settle(req.attempt_id)

    if outcome.status == "completed":
        return _completed_response(outcome)
    _raise_for_outcome(outcome)


@router.post("/v1/auth/{portal}/otp/resend", response_model=OtpRequiredResponse, status_code=202)
async def resend_otp(
    req: AttemptRequest,
    policy: PortalPolicy = Depends(get_portal_policy),
    registry: LoginAttemptRegistry = Depends(get_login_attempt_registry),
):
    orchestrator = _pending_attempt(registry, req.attempt_id, policy)
    try:
        outcome = await orchestrator.resend_otp()
    except InvalidLoginStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc

    if outcome.status == "otp_required":
        return _otp_required_response(outcome, req.attempt_id)
    _raise_for_outcome(outcome)


@router.post("/v1/auth/{portal}/otp/cancel", response_model=CancelResponse)
async def cancel_otp(
    req: AttemptRequest,
    policy: PortalPolicy = Depends(get_portal_policy),
    registry: LoginAttemptRegistry = Depends(get_login_attempt_registry),
):
    return CancelResponse(result=registry.cancel(req.attempt_id, portal=policy.name))


@router.post("/v1/auth/password-reset", response_model=PasswordResetResponse, status_code=202)
async def request_password_reset(
    req: PasswordResetRequest,
    use_case: RequestPasswordResetUseCase = Depends(get_request_password_reset_use_case),
):
    try:
        output = await use_case.execute(PasswordResetInput(identifier=req.identifier))
    except LoginError as exc:
        status_code = _STATUS_BY_REASON.get(exc.reason, 400)
        raise HTTPException(
            status_code=status_code,
            detail={"reason": exc.reason.value, "message": exc.message},
        ) from exc
    return PasswordResetResponse(
        email=output.email,
        message="Password reset link sent to your email.",
    )


@router.post("/v1/auth/logout", response_model=LogoutResponse)
async def logout(
    portal: str = "user",
    token: str = Depends(get_bearer_token),
    use_case: LogoutSessionUseCase = Depends(get_logout_session_use_case),
):
    policy = get_portal_policy(portal)
    try:
        await use_case.execute(LogoutInput(access_token=token, portal=policy.name))
    except AccessTokenInvalidError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    return LogoutResponse(ok=True)
