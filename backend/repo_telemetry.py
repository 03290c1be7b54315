"""
Repository: SQL operations for `heart_rate_telemetry` and
`heart_rate_analysis`.

Raw readings and their analyses are append-only. History is ordered by
`created_at` with `id` as the tiebreaker, newest first.
"""

from typing import List, Optional

from db import get_conn
from models import HeartRateAnalysis, HeartRateFlag, PrimaryStatus

ANALYSIS_COLUMNS = "id, device_id, bpm, spo2, flags, primary_status, reason, prev_bpm, created_at"


def _row_to_analysis(r) -> HeartRateAnalysis:
    return HeartRateAnalysis(
        id=str(r[0]),
        device_id=r[1],
        bpm=r[2],
        spo2=r[3],
        flags=[HeartRateFlag(f) for f in (r[4] or [])],
        primary_status=PrimaryStatus(r[5]),
        reason=r[6],
        prev_bpm=r[7],
        created_at=r[8],
    )


class TelemetryRepo:
    """DB access for heart-rate readings and analyses."""

    def insert_reading(self, device_id: str, bpm: float, spo2: float) -> str:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "INSERT INTO heart_rate_telemetry (device_id, bpm, spo2) "
                    "VALUES (%s, %s, %s) RETURNING id",
                    (device_id, bpm, spo2),
                )
                reading_id = cur.fetchone()[0]
            conn.commit()
        return str(reading_id)

    def insert_analysis(self, analysis: HeartRateAnalysis) -> HeartRateAnalysis:
        """Persist an analysis and return it with `id` and `created_at` filled."""

        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "INSERT INTO heart_rate_analysis "
                    "(device_id, bpm, spo2, flags, primary_status, reason, prev_bpm) "
                    f"VALUES (%s, %s, %s, %s::text[], %s, %s, %s) RETURNING {ANALYSIS_COLUMNS}",
                    (
                        analysis.device_id,
                        analysis.bpm,
                        analysis.spo2,
                        [f.value for f in analysis.flags],
                        analysis.primary_status.value,
                        analysis.reason,
                        analysis.prev_bpm,
                    ),
                )
                row = cur.fetchone()
            conn.commit()
        return _row_to_analysis(row)

    def latest_analysis(self, device_id: str) -> Optional[HeartRateAnalysis]:
        rows = self.recent_analyses(device_id, 1)
        return rows[0] if rows else None

    def recent_analyses(self, device_id: str, limit: int) -> List[HeartRateAnalysis]:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"SELECT {ANALYSIS_COLUMNS} FROM heart_rate_analysis "
                    "WHERE device_id=%s ORDER BY created_at DESC, id DESC LIMIT %s",
                    (device_id, limit),
                )
                return [_row_to_analysis(r) for r in cur.fetchall()]
