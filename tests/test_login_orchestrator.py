from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from trustgate.application.dto.login import AuthenticateInput
from trustgate.domain.entities.account import ModerationRecord
from trustgate.domain.entities.auth import OtpPurpose
from trustgate.domain.exceptions import (
    EmailUnconfirmedError,
    InvalidLoginStateError,
    LoginFailureReason,
)
from trustgate.domain.services.login_state import LoginState
from trustgate.domain.services.portal_policy import admin_portal_policy

from fakes import (
    DEVICE,
    VALID_CODE,
    build_harness,
    make_account,
    make_identity,
    unavailable,
)


def _login(identifier: str = "juan@example.com", password: str = "s3cret-pass") -> AuthenticateInput:
    return AuthenticateInput(identifier=identifier, password=password, device=DEVICE)


async def _await_otp(harness):
    outcome = await harness.orchestrator.authenticate(_login())
    assert outcome.status == "otp_required"
    return outcome


@pytest.mark.asyncio
async def test_trusted_device_completes_without_otp():
    harness = build_harness()
    harness.trust_store.trust("auth-1", harness.fingerprint)

    outcome = await harness.orchestrator.authenticate(_login())

    assert outcome.status == "completed"
    assert outcome.completed.verified_with_otp is False
    assert outcome.completed.account.email == "juan@example.com"
    assert outcome.completed.account.display_name == "Juan Dela Cruz"
    assert harness.otp.sent == []
    assert harness.trust_store.touches == [("auth-1", harness.fingerprint)]
    assert harness.credentials.signed_out == []
    assert harness.activity_log.logins == [("juan@example.com", "user")]
    assert harness.accounts.activity_updates == [("juan@example.com", True)]
    assert harness.orchestrator.state == LoginState.SESSION_COMPLETE
    assert len(harness.ready) == 1


@pytest.mark.asyncio
async def test_untrusted_device_sends_one_code_and_discards_session():
    harness = build_harness()

    outcome = await harness.orchestrator.authenticate(_login(identifier="  Juan@Example.com "))

    assert outcome.status == "otp_required"
    assert outcome.otp_email == "juan@example.com"
    assert outcome.resend_available_in == 60
    assert harness.otp.sent == [("juan@example.com", OtpPurpose.NEW_DEVICE)]
    assert len(harness.credentials.signed_out) == 1
    assert harness.orchestrator.state == LoginState.AWAITING_OTP
    assert harness.orchestrator.otp_email == "juan@example.com"
    assert harness.ready == []
    assert harness.activity_log.logins == []


@pytest.mark.asyncio
async def test_username_is_resolved_to_the_account_email():
    harness = build_harness()

    outcome = await harness.orchestrator.authenticate(_login(identifier="juan"))

    assert outcome.status == "otp_required"
    assert harness.credentials.sign_in_calls == ["juan@example.com"]


@pytest.mark.asyncio
async def test_correct_code_trusts_device_and_completes():
    harness = build_harness()
    await _await_otp(harness)

    outcome = await harness.orchestrator.submit_otp(VALID_CODE)

    assert outcome.status == "completed"
    assert outcome.completed.verified_with_otp is True
    assert outcome.completed.fingerprint == harness.fingerprint
    assert harness.trust_store.upserts == [("auth-1", harness.fingerprint, "Unknown Device")]
    assert harness.orchestrator.state == LoginState.SESSION_COMPLETE
    assert harness.activity_log.logins == [("juan@example.com", "user")]
    assert len(harness.ready) == 1


@pytest.mark.asyncio
async def test_device_trusted_after_otp_skips_code_next_time():
    harness = build_harness()
    await _await_otp(harness)
    await harness.orchestrator.submit_otp(VALID_CODE)

    outcome = await harness.orchestrator.authenticate(_login())

    assert outcome.status == "completed"
    assert outcome.completed.verified_with_otp is False
    assert len(harness.otp.sent) == 1


@pytest.mark.asyncio
async def test_wrong_code_keeps_challenge_open_without_trusting():
    harness = build_harness()
    await _await_otp(harness)

    outcome = await harness.orchestrator.submit_otp("000000")

    assert outcome.status == "retry"
    assert outcome.reason == LoginFailureReason.OTP_INVALID
    assert harness.orchestrator.state == LoginState.AWAITING_OTP
    assert harness.trust_store.upserts == []

    completed = await harness.orchestrator.submit_otp(VALID_CODE)
    assert completed.status == "completed"


@pytest.mark.asyncio
async def test_malformed_code_is_rejected_before_verification():
    harness = build_harness()
    await _await_otp(harness)

    outcome = await harness.orchestrator.submit_otp("12ab")

    assert outcome.reason == LoginFailureReason.INVALID_INPUT
    assert harness.otp.verify_calls == []
    assert harness.orchestrator.state == LoginState.AWAITING_OTP


@pytest.mark.asyncio
async def test_expired_code_closes_the_challenge():
    harness = build_harness()
    await _await_otp(harness)
    harness.otp.next_failure = "expired"

    outcome = await harness.orchestrator.submit_otp(VALID_CODE)

    assert outcome.status == "rejected"
    assert outcome.reason == LoginFailureReason.OTP_EXPIRED
    assert harness.orchestrator.state == LoginState.REJECTED
    with pytest.raises(InvalidLoginStateError):
        await harness.orchestrator.submit_otp(VALID_CODE)


@pytest.mark.asyncio
async def test_forbidden_code_closes_the_challenge_as_unknown_error():
    harness = build_harness()
    await _await_otp(harness)
    harness.otp.next_failure = "forbidden"

    outcome = await harness.orchestrator.submit_otp(VALID_CODE)

    assert outcome.status == "rejected"
    assert outcome.reason == LoginFailureReason.OTP_VERIFICATION_UNKNOWN_ERROR
    assert outcome.message.startswith("Access denied")


@pytest.mark.asyncio
async def test_verify_transport_failure_is_retryable():
    harness = build_harness()
    await _await_otp(harness)
    harness.otp.verify_error = unavailable()

    outcome = await harness.orchestrator.submit_otp(VALID_CODE)

    assert outcome.status == "retry"
    assert outcome.reason == LoginFailureReason.OTP_VERIFICATION_UNKNOWN_ERROR
    assert harness.orchestrator.state == LoginState.AWAITING_OTP


@pytest.mark.asyncio
async def test_verified_identity_must_match_challenge_email():
    harness = build_harness()
    await _await_otp(harness)
    harness.credentials.identity_override = make_identity("someone@else.org", user_id="auth-9")

    outcome = await harness.orchestrator.submit_otp(VALID_CODE)

    assert outcome.status == "rejected"
    assert outcome.reason == LoginFailureReason.OTP_VERIFICATION_UNKNOWN_ERROR
    assert harness.trust_store.upserts == []
    assert len(harness.credentials.signed_out) == 2


@pytest.mark.asyncio
async def test_wrong_password_never_fingerprints_or_reads_trust():
    harness = build_harness()

    outcome = await harness.orchestrator.authenticate(_login(password="wrong"))

    assert outcome.status == "rejected"
    assert outcome.reason == LoginFailureReason.INVALID_CREDENTIALS
    assert harness.fingerprinter.calls == 0
    assert harness.trust_store.get_calls == []
    assert harness.otp.sent == []
    assert harness.orchestrator.state == LoginState.REJECTED


@pytest.mark.asyncio
async def test_unconfirmed_email_is_reported():
    harness = build_harness()
    harness.credentials.sign_in_error = EmailUnconfirmedError("Please confirm your account.")

    outcome = await harness.orchestrator.authenticate(_login())

    assert outcome.reason == LoginFailureReason.EMAIL_UNCONFIRMED


@pytest.mark.asyncio
async def test_banned_account_never_signs_in_and_carries_appeal_context():
    harness = build_harness(accounts=[make_account(status="banned")])
    harness.moderation.records = [
        ModerationRecord(
            action="ban",
            reason="Repeated false reports",
            admin_email="ldrrmo@example.gov",
            created_at=datetime(2026, 5, 1, tzinfo=timezone.utc),
        )
    ]
    harness.trust_store.trust("auth-1", harness.fingerprint)

    outcome = await harness.orchestrator.authenticate(_login())

    assert outcome.status == "rejected"
    assert outcome.reason == LoginFailureReason.ACCOUNT_BANNED
    assert harness.credentials.sign_in_calls == []
    assert harness.otp.sent == []
    assert outcome.appeal.email == "juan@example.com"
    assert outcome.appeal.display_name == "Juan Dela Cruz"
    assert outcome.appeal.moderation_history[0].reason == "Repeated false reports"
    assert harness.ready == []


@pytest.mark.asyncio
async def test_suspended_account_is_rejected():
    harness = build_harness(accounts=[make_account(status="suspended")])

    outcome = await harness.orchestrator.authenticate(_login())

    assert outcome.reason == LoginFailureReason.ACCOUNT_SUSPENDED
    assert harness.credentials.sign_in_calls == []


@pytest.mark.asyncio
async def test_unknown_username_is_account_not_found():
    harness = build_harness()

    outcome = await harness.orchestrator.authenticate(_login(identifier="nobody"))

    assert outcome.reason == LoginFailureReason.ACCOUNT_NOT_FOUND
    assert harness.credentials.sign_in_calls == []


@pytest.mark.asyncio
async def test_blank_input_is_rejected_before_any_call():
    harness = build_harness()

    outcome = await harness.orchestrator.authenticate(_login(identifier="   "))
    assert outcome.reason == LoginFailureReason.INVALID_INPUT

    outcome = await harness.orchestrator.authenticate(_login(password="   "))
    assert outcome.reason == LoginFailureReason.INVALID_INPUT
    assert harness.credentials.sign_in_calls == []


@pytest.mark.asyncio
async def test_missing_profile_after_sign_in_signs_out():
    harness = build_harness()
    harness.credentials.add(make_identity("ghost@example.com", user_id="auth-ghost"), "s3cret-pass")

    outcome = await harness.orchestrator.authenticate(_login(identifier="ghost@example.com"))

    assert outcome.status == "rejected"
    assert outcome.reason == LoginFailureReason.PROFILE_LOOKUP_FAILED
    assert [session.identity.id for session in harness.credentials.signed_out] == ["auth-ghost"]
    assert harness.trust_store.get_calls == []


@pytest.mark.asyncio
async def test_trust_lookup_failure_fails_closed():
    harness = build_harness()
    harness.trust_store.trust("auth-1", harness.fingerprint)
    harness.trust_store.get_error = unavailable()

    outcome = await harness.orchestrator.authenticate(_login())

    assert outcome.status == "otp_required"
    assert len(harness.otp.sent) == 1


@pytest.mark.asyncio
async def test_trust_upsert_failure_does_not_block_login():
    harness = build_harness()
    await _await_otp(harness)
    harness.trust_store.upsert_error = unavailable()

    outcome = await harness.orchestrator.submit_otp(VALID_CODE)

    assert outcome.status == "completed"
    assert harness.trust_store.upserts == []


@pytest.mark.asyncio
async def test_activity_log_failure_does_not_block_login():
    harness = build_harness()
    harness.trust_store.trust("auth-1", harness.fingerprint)
    harness.activity_log.error = unavailable()

    outcome = await harness.orchestrator.authenticate(_login())

    assert outcome.status == "completed"


@pytest.mark.asyncio
async def test_otp_send_failure_rejects_the_attempt():
    harness = build_harness()
    harness.otp.send_error = unavailable()

    outcome = await harness.orchestrator.authenticate(_login())

    assert outcome.status == "rejected"
    assert outcome.reason == LoginFailureReason.OTP_SEND_FAILED
    assert harness.orchestrator.state == LoginState.REJECTED


@pytest.mark.asyncio
async def test_resend_respects_cooldown():
    harness = build_harness()
    await _await_otp(harness)

    harness.clock.advance(20)
    outcome = await harness.orchestrator.resend_otp()
    assert outcome.status == "retry"
    assert outcome.reason == LoginFailureReason.OTP_COOLDOWN
    assert outcome.resend_available_in == 40
    assert len(harness.otp.sent) == 1

    harness.clock.advance(41)
    outcome = await harness.orchestrator.resend_otp()
    assert outcome.status == "otp_required"
    assert outcome.resend_available_in == 60
    assert len(harness.otp.sent) == 2
    assert harness.orchestrator.state == LoginState.AWAITING_OTP


@pytest.mark.asyncio
async def test_overlapping_resends_send_a_single_code():
    harness = build_harness()
    await _await_otp(harness)
    harness.clock.advance(61)
    harness.otp.send_gate = asyncio.Event()

    first = asyncio.create_task(harness.orchestrator.resend_otp())
    second = asyncio.create_task(harness.orchestrator.resend_otp())
    await asyncio.sleep(0)
    harness.otp.send_gate.set()
    outcomes = await asyncio.gather(first, second)

    statuses = sorted(outcome.status for outcome in outcomes)
    assert statuses == ["otp_required", "retry"]
    refused = next(outcome for outcome in outcomes if outcome.status == "retry")
    assert refused.reason == LoginFailureReason.OTP_COOLDOWN
    assert len(harness.otp.sent) == 2


@pytest.mark.asyncio
async def test_failed_resend_releases_cooldown():
    harness = build_harness()
    await _await_otp(harness)
    harness.clock.advance(61)
    harness.otp.send_error = unavailable()

    outcome = await harness.orchestrator.resend_otp()

    assert outcome.status == "retry"
    assert outcome.reason == LoginFailureReason.OTP_SEND_FAILED
    assert outcome.resend_available_in == 0
    assert harness.orchestrator.resend_available_in() == 0
    assert harness.orchestrator.state == LoginState.AWAITING_OTP


@pytest.mark.asyncio
async def test_cancel_abandons_pending_challenge():
    harness = build_harness()
    await _await_otp(harness)

    assert harness.orchestrator.cancel() == "cancelled"
    assert harness.orchestrator.state == LoginState.REJECTED
    with pytest.raises(InvalidLoginStateError):
        await harness.orchestrator.submit_otp(VALID_CODE)


@pytest.mark.asyncio
async def test_cancel_after_completion_reports_already_completed():
    harness = build_harness()
    await _await_otp(harness)
    await harness.orchestrator.submit_otp(VALID_CODE)

    assert harness.orchestrator.cancel() == "already_completed"
    assert harness.orchestrator.state == LoginState.SESSION_COMPLETE


def test_cancel_without_challenge_has_nothing_pending():
    harness = build_harness()

    assert harness.orchestrator.cancel() == "nothing_pending"


@pytest.mark.asyncio
async def test_late_verification_after_cancel_is_discarded():
    harness = build_harness()
    await _await_otp(harness)
    harness.otp.verify_gate = asyncio.Event()

    pending = asyncio.create_task(harness.orchestrator.submit_otp(VALID_CODE))
    await asyncio.sleep(0)
    assert harness.orchestrator.state == LoginState.VERIFYING_OTP

    assert harness.orchestrator.cancel() == "cancelled"
    harness.otp.verify_gate.set()
    outcome = await pending

    assert outcome.status == "rejected"
    assert outcome.reason == LoginFailureReason.CANCELLED
    assert harness.trust_store.upserts == []
    assert harness.ready == []
    assert harness.orchestrator.state == LoginState.REJECTED
    assert len(harness.credentials.signed_out) == 2


@pytest.mark.asyncio
async def test_cancel_while_trusting_device_discards_session():
    harness = build_harness()
    await _await_otp(harness)
    harness.trust_store.upsert_gate = asyncio.Event()

    pending = asyncio.create_task(harness.orchestrator.submit_otp(VALID_CODE))
    for _ in range(50):
        await asyncio.sleep(0)

    assert harness.orchestrator.cancel() == "cancelled"
    harness.trust_store.upsert_gate.set()
    outcome = await pending

    assert outcome.status == "rejected"
    assert outcome.reason == LoginFailureReason.CANCELLED
    assert harness.ready == []
    assert harness.orchestrator.state == LoginState.REJECTED
    assert len(harness.credentials.signed_out) == 2


@pytest.mark.asyncio
async def test_second_submit_while_busy_is_refused():
    harness = build_harness()
    await _await_otp(harness)
    harness.otp.verify_gate = asyncio.Event()

    pending = asyncio.create_task(harness.orchestrator.submit_otp(VALID_CODE))
    await asyncio.sleep(0)

    with pytest.raises(InvalidLoginStateError):
        await harness.orchestrator.authenticate(_login())

    harness.otp.verify_gate.set()
    outcome = await pending
    assert outcome.status == "completed"


@pytest.mark.asyncio
async def test_credential_timeout_is_service_unavailable():
    harness = build_harness(timeout_seconds=0.01)
    harness.credentials.sign_in_delay = 1.0

    outcome = await harness.orchestrator.authenticate(_login())

    assert outcome.status == "rejected"
    assert outcome.reason == LoginFailureReason.SERVICE_UNAVAILABLE
    assert harness.orchestrator.state == LoginState.REJECTED


@pytest.mark.asyncio
async def test_finalize_session_runs_side_effects_once():
    harness = build_harness()
    harness.trust_store.trust("auth-1", harness.fingerprint)
    first = await harness.orchestrator.authenticate(_login())

    again = await harness.orchestrator.finalize_session(
        account=make_account(),
        session=first.completed.session,
        fingerprint=first.completed.fingerprint,
        verified_with_otp=False,
    )

    assert again is first
    assert len(harness.ready) == 1
    assert harness.activity_log.logins == [("juan@example.com", "user")]


@pytest.mark.asyncio
async def test_admin_portal_rejects_citizen_role_before_sign_in():
    harness = build_harness(policy=admin_portal_policy())

    outcome = await harness.orchestrator.authenticate(_login())

    assert outcome.reason == LoginFailureReason.ROLE_NOT_PERMITTED
    assert outcome.message == "Only LDRRMO personnel can access the admin console."
    assert harness.credentials.sign_in_calls == []


@pytest.mark.asyncio
async def test_admin_portal_can_require_otp_on_trusted_devices():
    harness = build_harness(
        policy=admin_portal_policy(always_require_otp=True),
        accounts=[make_account(role="admin", email="admin@ldrrmo.gov")],
    )
    harness.trust_store.trust("auth-1", harness.fingerprint)

    outcome = await harness.orchestrator.authenticate(_login(identifier="admin@ldrrmo.gov"))
    assert outcome.status == "otp_required"
    assert harness.trust_store.get_calls == []

    completed = await harness.orchestrator.submit_otp(VALID_CODE)
    assert completed.status == "completed"
    assert harness.activity_log.logins == [("admin@ldrrmo.gov", "admin")]


@pytest.mark.asyncio
async def test_admin_allowlist_is_enforced():
    harness = build_harness(
        policy=admin_portal_policy(allowed_emails=("chief@ldrrmo.gov",)),
        accounts=[make_account(role="admin", email="admin@ldrrmo.gov")],
    )

    outcome = await harness.orchestrator.authenticate(_login(identifier="admin@ldrrmo.gov"))

    assert outcome.reason == LoginFailureReason.ROLE_NOT_PERMITTED
