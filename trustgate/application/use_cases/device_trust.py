from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from trustgate.application.ports.trust_store_port import TrustStorePort

from .login_common import BestEffortResult, run_best_effort


logger = logging.getLogger(__name__)

DEFAULT_DEVICE_LABEL = "Unknown Device"


class DeviceTrustService:
    """Trust lookups fail closed; trust writes never fail the login."""

    def __init__(self, *, trust_store: TrustStorePort, timeout_seconds: float):
        self._trust_store = trust_store
        self._timeout_seconds = timeout_seconds

    async def is_trusted(self, *, user_id: str, fingerprint: str) -> bool:
        try:
            record = await asyncio.wait_for(
                self._trust_store.get_record(user_id=user_id, fingerprint=fingerprint),
                timeout=self._timeout_seconds,
            )
        except Exception as exc:
            logger.warning(
                "device_trust: lookup_failed user_id=%s error=%s",
                user_id,
                str(exc) or type(exc).__name__,
            )
            return False
        return bool(record is not None and record.is_trusted)

    async def upsert_trusted(
        self,
        *,
        user_id: str,
        fingerprint: str,
        label: str | None,
        user_agent: str | None,
        last_used_at: datetime,
    ) -> BestEffortResult:
        result = await run_best_effort(
            "device_trust: upsert_trusted",
            self._trust_store.upsert_trusted(
                user_id=user_id,
                fingerprint=fingerprint,
                label=label or DEFAULT_DEVICE_LABEL,
                user_agent=user_agent,
                last_used_at=last_used_at,
            ),
            timeout_seconds=self._timeout_seconds,
        )
        if result.ok:
            logger.info("device_trust: device_trusted user_id=%s", user_id)
        return result

    async def touch(self, *, user_id: str, fingerprint: str, last_used_at: datetime) -> BestEffortResult:
        return await run_best_effort(
            "device_trust: touch",
            self._trust_store.touch(user_id=user_id, fingerprint=fingerprint, last_used_at=last_used_at),
            timeout_seconds=self._timeout_seconds,
        )
