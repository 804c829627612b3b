from __future__ import annotations

from enum import Enum

from trustgate.domain.exceptions import InvalidLoginStateError


class LoginState(str, Enum):
    IDLE = "idle"
    VALIDATING_CREDENTIALS = "validating_credentials"
    CHECKING_TRUST = "checking_trust"
    AWAITING_OTP = "awaiting_otp"
    VERIFYING_OTP = "verifying_otp"
    SESSION_COMPLETE = "session_complete"
    REJECTED = "rejected"


TERMINAL_STATES = frozenset({LoginState.SESSION_COMPLETE, LoginState.REJECTED})

# A new submit is accepted from any state that is not mid-call; it supersedes
# a pending challenge.
_TRANSITIONS: dict[LoginState, frozenset[LoginState]] = {
    LoginState.IDLE: frozenset({LoginState.VALIDATING_CREDENTIALS}),
    LoginState.VALIDATING_CREDENTIALS: frozenset(
        {LoginState.REJECTED, LoginState.CHECKING_TRUST}
    ),
    LoginState.CHECKING_TRUST: frozenset(
        {LoginState.SESSION_COMPLETE, LoginState.AWAITING_OTP, LoginState.REJECTED}
    ),
    LoginState.AWAITING_OTP: frozenset(
        {
            LoginState.VERIFYING_OTP,
            LoginState.AWAITING_OTP,
            LoginState.REJECTED,
            LoginState.VALIDATING_CREDENTIALS,
        }
    ),
    LoginState.VERIFYING_OTP: frozenset(
        {LoginState.SESSION_COMPLETE, LoginState.AWAITING_OTP, LoginState.REJECTED}
    ),
    LoginState.SESSION_COMPLETE: frozenset({LoginState.VALIDATING_CREDENTIALS}),
    LoginState.REJECTED: frozenset({LoginState.VALIDATING_CREDENTIALS}),
}


def can_transition(current: LoginState, target: LoginState) -> bool:
    return target in _TRANSITIONS[current]


def transition(current: LoginState, target: LoginState) -> LoginState:
    if not can_transition(current, target):
        raise InvalidLoginStateError(
            f"Cannot move login flow from '{current.value}' to '{target.value}'."
        )
    return target
