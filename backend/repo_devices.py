"""
Repository: SQL operations for `devices`.

Devices are provisioned out of band (see `scripts/seed_device.py`); the
API only ever reads them.
"""

from typing import Optional

from db import get_conn
from models import Device


class DeviceRepo:
    """DB access for device credentials."""

    def get(self, device_id: str) -> Optional[Device]:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT device_id, token, enabled FROM devices WHERE device_id=%s",
                    (device_id,),
                )
                row = cur.fetchone()
        if row is None:
            return None
        return Device(device_id=row[0], token=row[1], enabled=row[2])

    def upsert(self, device_id: str, token: str, enabled: bool = True) -> Device:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "INSERT INTO devices (device_id, token, enabled) VALUES (%s, %s, %s) "
                    "ON CONFLICT (device_id) DO UPDATE SET token=EXCLUDED.token, enabled=EXCLUDED.enabled",
                    (device_id, token, enabled),
                )
            conn.commit()
        return Device(device_id=device_id, token=token, enabled=enabled)

    def ping(self) -> None:
        """Lightweight DB health check. Raises on error.

        Used by the top-level `/health` endpoint to validate DB reachability.
        """

        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
