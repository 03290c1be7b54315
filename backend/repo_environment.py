"""
Repository: SQL operations for `environment_analysis`.

`result` is stored as JSONB exactly as `EnvironmentResult.model_dump()`
produces it.
"""

from typing import Optional

from psycopg.types.json import Jsonb

from db import get_conn
from models import EnvironmentAnalysis, EnvironmentResult

COLUMNS = "id, device_id, command_id, image_path, image_url, image_size, mimetype, result, created_at"


def _row_to_analysis(r) -> EnvironmentAnalysis:
    return EnvironmentAnalysis(
        id=str(r[0]),
        device_id=r[1],
        command_id=r[2],
        image_path=r[3],
        image_url=r[4],
        image_size=r[5],
        mimetype=r[6],
        result=EnvironmentResult.model_validate(r[7]),
        created_at=r[8],
    )


class EnvironmentRepo:
    """DB access for environment analyses."""

    def insert_analysis(self, analysis: EnvironmentAnalysis) -> EnvironmentAnalysis:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "INSERT INTO environment_analysis "
                    "(device_id, command_id, image_path, image_url, image_size, mimetype, result) "
                    f"VALUES (%s, %s, %s, %s, %s, %s, %s) RETURNING {COLUMNS}",
                    (
                        analysis.device_id,
                        analysis.command_id,
                        analysis.image_path,
                        analysis.image_url,
                        analysis.image_size,
                        analysis.mimetype,
                        Jsonb(analysis.result.model_dump()),
                    ),
                )
                row = cur.fetchone()
            conn.commit()
        return _row_to_analysis(row)

    def link_command(self, analysis_id: str, command_id: str) -> None:
        """Record which command an analysis ended up completing."""

        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "UPDATE environment_analysis SET command_id=%s WHERE id=%s",
                    (command_id, int(analysis_id)),
                )
            conn.commit()

    def latest_analysis(self, device_id: str) -> Optional[EnvironmentAnalysis]:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"SELECT {COLUMNS} FROM environment_analysis "
                    "WHERE device_id=%s ORDER BY created_at DESC, id DESC LIMIT 1",
                    (device_id,),
                )
                row = cur.fetchone()
        return _row_to_analysis(row) if row else None
