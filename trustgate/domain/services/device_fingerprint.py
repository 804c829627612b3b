from __future__ import annotations

import base64
import hashlib
import logging

from trustgate.domain.entities.device import DeviceEnvironment


logger = logging.getLogger(__name__)

COMPONENT_DELIMITER = "|"
DEFAULT_HASH_ALGORITHM = "sha256"
DEFAULT_FINGERPRINT_LENGTH = 32


def _flag(value: bool | None) -> str:
    return "true" if value else "false"


def fingerprint_components(environment: DeviceEnvironment) -> list[str]:
    """Ordered environment attributes that feed the fingerprint.

    The order is part of the fingerprint: reordering it invalidates every
    stored trust record.
    """
    return [
        environment.user_agent,
        environment.language,
        str(environment.color_depth),
        f"{environment.screen_width}x{environment.screen_height}",
        str(environment.timezone_offset_minutes),
        _flag(environment.cookies_enabled),
        _flag(environment.java_enabled),
        _flag(environment.pdf_viewer_enabled),
    ]


class DeviceFingerprinter:
    def __init__(
        self,
        *,
        algorithm: str = DEFAULT_HASH_ALGORITHM,
        length: int = DEFAULT_FINGERPRINT_LENGTH,
    ):
        if length <= 0:
            raise ValueError("fingerprint length must be positive.")
        self._algorithm = algorithm
        self._length = length

    def compute(self, environment: DeviceEnvironment) -> str:
        payload = COMPONENT_DELIMITER.join(fingerprint_components(environment))
        try:
            digest = hashlib.new(self._algorithm, payload.encode("utf-8"))
        except ValueError:
            logger.warning(
                "device_fingerprint: hash_unavailable algorithm=%s, using fallback encoding",
                self._algorithm,
            )
            return self.fallback(environment)
        return digest.hexdigest()[: self._length]

    def fallback(self, environment: DeviceEnvironment) -> str:
        raw = f"{environment.user_agent}{environment.screen_width}{environment.screen_height}"
        encoded = base64.b64encode(raw.encode("utf-8")).decode("ascii")
        return encoded[: self._length]
