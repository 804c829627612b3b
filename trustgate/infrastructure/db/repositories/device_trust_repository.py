from __future__ import annotations

from datetime import datetime

from sqlalchemy import text

from trustgate.application.ports.trust_store_port import TrustStorePort
from trustgate.domain.entities.device import TrustRecord
from trustgate.infrastructure.db.engine import run_sync
from trustgate.infrastructure.db.mappers.accounts_mapper import map_row_to_trust_record


class SqlDeviceTrustRepository(TrustStorePort):
    def __init__(self, engine):
        self._engine = engine

    async def get_record(self, *, user_id: str, fingerprint: str) -> TrustRecord | None:
        return await run_sync(self._get_record, user_id, fingerprint)

    async def upsert_trusted(
        self,
        *,
        user_id: str,
        fingerprint: str,
        label: str | None,
        user_agent: str | None,
        last_used_at: datetime,
    ) -> None:
        await run_sync(self._upsert_trusted, user_id, fingerprint, label, user_agent, last_used_at)

    async def touch(self, *, user_id: str, fingerprint: str, last_used_at: datetime) -> None:
        await run_sync(self._touch, user_id, fingerprint, last_used_at)

    def _get_record(self, user_id: str, fingerprint: str) -> TrustRecord | None:
        sql = """
            SELECT user_id, device_fingerprint, device_name, user_agent, is_trusted, last_used_at
            FROM public.device_fingerprints
            WHERE user_id = :user_id
              AND device_fingerprint = :device_fingerprint
            LIMIT 1
        """
        with self._engine.connect() as conn:
            row = conn.execute(
                text(sql),
                {"user_id": user_id, "device_fingerprint": fingerprint},
            ).mappings().first()
        if row is None:
            return None
        return map_row_to_trust_record(row)

    def _upsert_trusted(
        self,
        user_id: str,
        fingerprint: str,
        label: str | None,
        user_agent: str | None,
        last_used_at: datetime,
    ) -> None:
        sql = """
            INSERT INTO public.device_fingerprints (
                user_id, device_fingerprint, device_name, user_agent, is_trusted, last_used_at
            ) VALUES (
                :user_id, :device_fingerprint, :device_name, :user_agent, true, :last_used_at
            )
            ON CONFLICT (user_id, device_fingerprint) DO UPDATE
            SET device_name = EXCLUDED.device_name,
                user_agent = EXCLUDED.user_agent,
                is_trusted = true,
                last_used_at = EXCLUDED.last_used_at
        """
        with self._engine.begin() as conn:
            conn.execute(
                text(sql),
                {
                    "user_id": user_id,
                    "device_fingerprint": fingerprint,
                    "device_name": label,
                    "user_agent": user_agent,
                    "last_used_at": last_used_at,
                },
            )

    def _touch(self, user_id: str, fingerprint: str, last_used_at: datetime) -> None:
        sql = """
            UPDATE public.device_fingerprints
            SET last_used_at = :last_used_at
            WHERE user_id = :user_id
              AND device_fingerprint = :device_fingerprint
        """
        with self._engine.begin() as conn:
            conn.execute(
                text(sql),
                {
                    "user_id": user_id,
                    "device_fingerprint": fingerprint,
                    "last_used_at": last_used_at,
                },
            )
