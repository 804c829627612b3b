from __future__ import annotations

from datetime import datetime
import logging

from sqlalchemy import text

from trustgate.application.ports.account_store_port import AccountStorePort, ModerationHistoryPort
from trustgate.domain.entities.account import Account, ModerationRecord
from trustgate.infrastructure.db.engine import run_sync
from trustgate.infrastructure.db.mappers.accounts_mapper import (
    map_row_to_account,
    map_row_to_moderation_record,
)


logger = logging.getLogger(__name__)

_ACCOUNT_COLUMNS = """
    id, user_email, username, user_firstname, user_lastname, role, status, last_active_at, is_online
"""


class SqlAccountsRepository(AccountStorePort, ModerationHistoryPort):
    def __init__(self, engine):
        self._engine = engine

    async def find_by_identifier(self, *, identifier: str) -> Account | None:
        return await run_sync(self._find_by_identifier, identifier)

    async def find_by_email(self, *, email: str) -> Account | None:
        return await run_sync(self._find_by_email, email)

    async def update_activity(self, *, email: str, last_active_at: datetime, online: bool) -> None:
        await run_sync(self._update_activity, email, last_active_at, online)

    async def list_moderation_records(self, *, email: str, limit: int) -> list[ModerationRecord]:
        return await run_sync(self._list_moderation_records, email, limit)

    def _find_by_identifier(self, identifier: str) -> Account | None:
        sql = f"""
            SELECT {_ACCOUNT_COLUMNS}
            FROM public.users
            WHERE username = :identifier
               OR lower(user_email) = :identifier_lower
            LIMIT 2
        """
        with self._engine.connect() as conn:
            rows = conn.execute(
                text(sql),
                {
                    "identifier": identifier,
                    "identifier_lower": identifier.lower(),
                },
            ).mappings().all()
        if len(rows) != 1:
            if rows:
                logger.warning("accounts_repository: ambiguous_identifier matches=%s", len(rows))
            return None
        return map_row_to_account(rows[0])

    def _find_by_email(self, email: str) -> Account | None:
        sql = f"""
            SELECT {_ACCOUNT_COLUMNS}
            FROM public.users
            WHERE lower(user_email) = :email
            LIMIT 1
        """
        with self._engine.connect() as conn:
            row = conn.execute(text(sql), {"email": email.lower()}).mappings().first()
        if row is None:
            return None
        return map_row_to_account(row)

    def _update_activity(self, email: str, last_active_at: datetime, online: bool) -> None:
        sql = """
            UPDATE public.users
            SET last_active_at = :last_active_at,
                is_online = :is_online
            WHERE lower(user_email) = :email
        """
        with self._engine.begin() as conn:
            conn.execute(
                text(sql),
                {
                    "email": email.lower(),
                    "last_active_at": last_active_at,
                    "is_online": online,
                },
            )

    def _list_moderation_records(self, email: str, limit: int) -> list[ModerationRecord]:
        sql = """
            SELECT activity_type, details, admin_email, created_at
            FROM public.system_logs
            WHERE lower(target_user_email) = :email
              AND activity_type = 'user_action'
            ORDER BY created_at DESC
            LIMIT :limit
        """
        with self._engine.connect() as conn:
            rows = conn.execute(text(sql), {"email": email.lower(), "limit": limit}).mappings().all()
        return [map_row_to_moderation_record(row) for row in rows]
