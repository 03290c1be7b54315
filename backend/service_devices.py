"""
Device authentication.

Every `/device/*` route runs `authenticate()` on the `x-device-id` and
`x-device-token` headers before doing anything else, so a rejected request
never reaches the store beyond the single device lookup.
"""

import hmac
from typing import Optional

import structlog

from errors import AuthorizationError, ValidationError
from repo_devices import DeviceRepo

logger = structlog.get_logger(__name__)


class DeviceService:
    def __init__(self, repo: DeviceRepo):
        self.repo = repo

    def authenticate(self, device_id: Optional[str], token: Optional[str]) -> str:
        """Return the device id if the credentials are valid.

        Raises:
        - `ValidationError` (401) when either header is missing
        - `AuthorizationError` 401 for an unknown device or wrong token,
          403 for a disabled device
        """

        if not device_id or not token:
            raise ValidationError("Missing x-device-id or x-device-token", status_code=401)

        device = self.repo.get(device_id)
        if device is None:
            logger.warning("auth_unknown_device", device_id=device_id)
            raise AuthorizationError("Unknown device", status_code=401)
        if device.enabled is not True:
            logger.warning("auth_device_disabled", device_id=device_id)
            raise AuthorizationError("Device disabled", status_code=403)
        if not hmac.compare_digest(device.token.encode(), token.encode()):
            logger.warning("auth_bad_token", device_id=device_id)
            raise AuthorizationError("Invalid device token", status_code=401)

        return device_id

    @staticmethod
    def check_device_param(query_device_id: Optional[str], device_id: str) -> None:
        if not query_device_id or query_device_id != device_id:
            raise ValidationError("deviceId query param must match x-device-id")

    def health_check(self) -> None:
        self.repo.ping()
