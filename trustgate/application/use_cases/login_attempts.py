from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable

from trustgate.application.dto.login import CancelResult
from trustgate.domain.entities.account import PortalName
from trustgate.domain.services.login_state import TERMINAL_STATES, LoginState

from .login_orchestrator import LoginOrchestrator


logger = logging.getLogger(__name__)


@dataclass
class _PendingAttempt:
    orchestrator: LoginOrchestrator | None
    portal: PortalName
    expires_at: float
    completed: bool = False


class LoginAttemptRegistry:
    """Keeps OTP challenges addressable between HTTP requests.

    Finished attempts are settled: the orchestrator (and the session it holds)
    is released, and only a completion marker survives until the TTL so a late
    cancel can still answer ``already_completed``.
    """

    def __init__(self, *, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = Lock()
        self._attempts: dict[str, _PendingAttempt] = {}

    def register(self, orchestrator: LoginOrchestrator) -> str:
        attempt_id = secrets.token_urlsafe(24)
        with self._lock:
            self._purge_expired_locked()
            self._attempts[attempt_id] = _PendingAttempt(
                orchestrator=orchestrator,
                portal=orchestrator.policy.name,
                expires_at=self._clock() + self._ttl_seconds,
            )
        return attempt_id

    def get(self, attempt_id: str, *, portal: PortalName) -> LoginOrchestrator | None:
        with self._lock:
            self._purge_expired_locked()
            pending = self._attempts.get(attempt_id)
        if pending is None or pending.portal != portal:
            return None
        return pending.orchestrator

    def settle(self, attempt_id: str) -> None:
        """Releases the orchestrator of an attempt that reached a terminal state."""
        with self._lock:
            pending = self._attempts.get(attempt_id)
            if pending is None or pending.orchestrator is None:
                return
            state = pending.orchestrator.state
            if state not in TERMINAL_STATES:
                return
            if state == LoginState.SESSION_COMPLETE:
                pending.orchestrator = None
                pending.completed = True
            else:
                del self._attempts[attempt_id]
        logger.debug("login_attempts: settled state=%s", state.value)

    def cancel(self, attempt_id: str, *, portal: PortalName) -> CancelResult:
        with self._lock:
            self._purge_expired_locked()
            pending = self._attempts.get(attempt_id)
            if pending is None or pending.portal != portal:
                return "nothing_pending"
            del self._attempts[attempt_id]
            if pending.orchestrator is None:
                return "already_completed" if pending.completed else "nothing_pending"
            return pending.orchestrator.cancel()

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge_expired_locked()

    def __len__(self) -> int:
        with self._lock:
            return len(self._attempts)

    def _purge_expired_locked(self) -> int:
        now = self._clock()
        expired = [key for key, pending in self._attempts.items() if pending.expires_at <= now]
        for key in expired:
            orchestrator = self._attempts.pop(key).orchestrator
            if orchestrator is not None and orchestrator.state not in TERMINAL_STATES:
                orchestrator.cancel()
        if expired:
            logger.debug("login_attempts: purged_expired count=%s", len(expired))
        return len(expired)
