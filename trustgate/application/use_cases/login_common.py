from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, TypeVar

from trustgate.domain.exceptions import ExternalServiceTimeoutError


logger = logging.getLogger(__name__)

T = TypeVar("T")

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
OTP_CODE_PATTERN = re.compile(r"^[0-9]{6}$")


@dataclass(frozen=True)
class BestEffortResult:
    ok: bool
    error: str | None = None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def is_email(identifier: str) -> bool:
    return EMAIL_PATTERN.match(identifier) is not None


async def call_with_timeout(awaitable: Awaitable[T], *, timeout_seconds: float) -> T:
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_seconds)
    except asyncio.TimeoutError as exc:
        raise ExternalServiceTimeoutError(
            "The service took too long to respond. Please try again."
        ) from exc


async def run_best_effort(
    label: str,
    awaitable: Awaitable[object],
    *,
    timeout_seconds: float,
) -> BestEffortResult:
    try:
        await asyncio.wait_for(awaitable, timeout=timeout_seconds)
    except Exception as exc:
        logger.warning("%s: best_effort_failed error=%s", label, str(exc) or type(exc).__name__)
        return BestEffortResult(ok=False, error=str(exc) or type(exc).__name__)
    return BestEffortResult(ok=True)
