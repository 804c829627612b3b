from __future__ import annotations

from datetime import datetime, timezone
import json

from sqlalchemy import text

from trustgate.application.ports.activity_log_port import ActivityLogPort
from trustgate.domain.entities.account import PortalName
from trustgate.infrastructure.db.engine import run_sync


_DESCRIPTIONS = {
    ("user", "login"): "User logged in successfully",
    ("user", "logout"): "User logged out",
    ("admin", "login"): "Admin logged in successfully",
    ("admin", "logout"): "Admin logged out",
}


class SqlActivityLogRepository(ActivityLogPort):
    """User portal events go to activity_logs, admin console events to system_logs."""

    def __init__(self, engine):
        self._engine = engine

    async def record_login(self, *, email: str, portal: PortalName) -> None:
        await run_sync(self._record, email, portal, "login")

    async def record_logout(self, *, email: str, portal: PortalName) -> None:
        await run_sync(self._record, email, portal, "logout")

    def _record(self, email: str, portal: PortalName, activity_type: str) -> None:
        details = json.dumps({"timestamp": datetime.now(timezone.utc).isoformat()})
        params = {
            "email": email.lower(),
            "activity_type": activity_type,
            "activity_description": _DESCRIPTIONS[(portal, activity_type)],
            "details": details,
        }
        if portal == "admin":
            sql = """
                INSERT INTO public.system_logs (
                    admin_email, activity_type, activity_description, details
                ) VALUES (
                    :email, :activity_type, :activity_description, CAST(:details AS jsonb)
                )
            """
        else:
            # activity_logs.user_email references users; skip unknown addresses.
            sql = """
                INSERT INTO public.activity_logs (
                    user_email, activity_type, activity_description, details
                )
                SELECT :email, :activity_type, :activity_description, CAST(:details AS jsonb)
                WHERE EXISTS (
                    SELECT 1 FROM public.users WHERE lower(user_email) = :email
                )
            """
        with self._engine.begin() as conn:
            conn.execute(text(sql), params)
