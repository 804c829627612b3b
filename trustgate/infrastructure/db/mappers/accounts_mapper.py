from __future__ import annotations

from typing import Any, Mapping

from trustgate.domain.entities.account import Account, ModerationRecord
from trustgate.domain.entities.device import TrustRecord


def _as_str(value: Any) -> str:
    return str(value)


def map_row_to_account(row: Mapping[str, Any]) -> Account:
    return Account(
        id=_as_str(row["id"]),
        email=str(row["user_email"]).lower(),
        username=row.get("username"),
        first_name=row.get("user_firstname"),
        last_name=row.get("user_lastname"),
        role=row.get("role") or "user",
        status=row.get("status") or "active",
        last_active_at=row.get("last_active_at"),
        is_online=bool(row.get("is_online")),
    )


def map_row_to_trust_record(row: Mapping[str, Any]) -> TrustRecord:
    return TrustRecord(
        user_id=_as_str(row["user_id"]),
        fingerprint=row["device_fingerprint"],
        is_trusted=bool(row["is_trusted"]),
        label=row.get("device_name"),
        user_agent=row.get("user_agent"),
        last_used_at=row.get("last_used_at"),
    )


def map_row_to_moderation_record(row: Mapping[str, Any]) -> ModerationRecord:
    details = row.get("details") or {}
    if not isinstance(details, Mapping):
        details = {}
    action = details.get("action") or row.get("activity_type") or "user_action"
    reason = None
    for key in ("ban_reason", "suspension_reason", "warning_reason", "reason"):
        if details.get(key):
            reason = str(details[key])
            break
    return ModerationRecord(
        action=str(action),
        reason=reason,
        admin_email=row.get("admin_email"),
        created_at=row["created_at"],
    )
