from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class DeviceEnvironmentRequest(BaseModel):
    user_agent: str = Field(..., max_length=1024)
    language: str = Field(default="", max_length=64)
    color_depth: int = Field(default=0, ge=0)
    screen_width: int = Field(default=0, ge=0)
    screen_height: int = Field(default=0, ge=0)
    timezone_offset_minutes: int = 0
    cookies_enabled: bool = True
    java_enabled: bool = False
    pdf_viewer_enabled: bool | None = None


class LoginRequest(BaseModel):
    identifier: str = Field(..., max_length=255)
    password: str = Field(..., max_length=256)
    device: DeviceEnvironmentRequest


class AttemptRequest(BaseModel):
    attempt_id: str = Field(..., min_length=1, max_length=128)


class OtpVerifyRequest(AttemptRequest):
    code: str = Field(..., max_length=16)


class PasswordResetRequest(BaseModel):
    identifier: str = Field(..., max_length=255)


class AccountResponse(BaseModel):
    id: str
    email: str
    display_name: str
    role: str
    status: str


class SessionResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_at: datetime | None


class LoginCompletedResponse(BaseModel):
    status: str = "completed"
    account: AccountResponse
    session: SessionResponse
    verified_with_otp: bool


class OtpRequiredResponse(BaseModel):
    status: str = "otp_required"
    attempt_id: str
    otp_email: str
    resend_available_in: int
    message: str | None = None


class CancelResponse(BaseModel):
    result: str


class PasswordResetResponse(BaseModel):
    email: str
    message: str


class LogoutResponse(BaseModel):
    ok: bool
