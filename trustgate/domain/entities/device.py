from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class DeviceEnvironment:
    user_agent: str
    language: str
    color_depth: int
    screen_width: int
    screen_height: int
    timezone_offset_minutes: int
    cookies_enabled: bool
    java_enabled: bool
    pdf_viewer_enabled: bool | None = None


@dataclass(frozen=True)
class TrustRecord:
    user_id: str
    fingerprint: str
    is_trusted: bool
    label: str | None
    user_agent: str | None
    last_used_at: datetime | None
