"""
Repository: SQL operations for `device_commands`.

DB access only; the lifecycle rules live in `CommandService`. Each method
opens its own connection and commits before returning, so a select
followed by an update from the service is two separate transactions.

Important notes:
- `mark_completed` is an upsert. An id that does not exist yet produces a
  completed row owned by the calling device instead of an error.
- `payload` round-trips through `Jsonb`.
"""

from typing import Any, Dict, Optional

from psycopg.types.json import Jsonb

from db import get_conn
from models import Command, CommandStatus

COLUMNS = "id, device_id, type, payload, status, created_at, started_at, completed_at, result_ref"


def _row_to_command(r) -> Command:
    return Command(
        id=r[0],
        device_id=r[1],
        type=r[2],
        payload=r[3] or {},
        status=CommandStatus(r[4]),
        created_at=r[5],
        started_at=r[6],
        completed_at=r[7],
        result_ref=r[8],
    )


class CommandRepo:
    """DB access for commands. No business logic here."""

    def enqueue(self, device_id: str, command_type: str, payload: Dict[str, Any]) -> Command:
        """Insert a pending command. Used by the dispatch/seed tooling."""

        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"INSERT INTO device_commands (device_id, type, payload) "
                    f"VALUES (%s, %s, %s) RETURNING {COLUMNS}",
                    (device_id, command_type, Jsonb(payload)),
                )
                row = cur.fetchone()
            conn.commit()
        return _row_to_command(row)

    def find_oldest_pending(self, device_id: str) -> Optional[Command]:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"SELECT {COLUMNS} FROM device_commands "
                    "WHERE device_id=%s AND status='pending' "
                    "ORDER BY created_at ASC, id ASC LIMIT 1",
                    (device_id,),
                )
                row = cur.fetchone()
        return _row_to_command(row) if row else None

    def find_newest_running(self, device_id: str) -> Optional[Command]:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"SELECT {COLUMNS} FROM device_commands "
                    "WHERE device_id=%s AND status='running' "
                    "ORDER BY started_at DESC NULLS LAST, id DESC LIMIT 1",
                    (device_id,),
                )
                row = cur.fetchone()
        return _row_to_command(row) if row else None

    def mark_running(self, command_id: str) -> Optional[Command]:
        """Set status=running and started_at=now() on a still-pending command.

        Returns the updated row, or None if the command is gone or no
        longer pending (claimed or completed since it was selected).
        """

        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "UPDATE device_commands SET status='running', started_at=now() "
                    f"WHERE id=%s AND status='pending' RETURNING {COLUMNS}",
                    (command_id,),
                )
                row = cur.fetchone()
            conn.commit()
        return _row_to_command(row) if row else None

    def mark_completed(self, command_id: str, device_id: str, result_ref: Optional[str]) -> Command:
        """Merge status=completed, completed_at=now() and result_ref into a command."""

        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "INSERT INTO device_commands (id, device_id, status, completed_at, result_ref) "
                    "VALUES (%s, %s, 'completed', now(), %s) "
                    "ON CONFLICT (id) DO UPDATE SET status='completed', "
                    "completed_at=EXCLUDED.completed_at, result_ref=EXCLUDED.result_ref "
                    f"RETURNING {COLUMNS}",
                    (command_id, device_id, result_ref),
                )
                row = cur.fetchone()
            conn.commit()
        return _row_to_command(row)
