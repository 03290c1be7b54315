"""
Heart-rate telemetry: record, classify, summarize.

Recording is a sequence of independent writes: the raw reading is stored
first, then the previous analysis is read, then the new analysis is
written. If the classification step fails the raw reading stays. Two
concurrent submissions for one device may classify against the same
previous bpm.
"""

import math
from collections import Counter
from typing import Any, Dict, List, Optional

import structlog

from analysis_heart_rate import classify
from errors import ValidationError
from models import DashboardSummary, HeartRateAnalysis, HeartRateFlag, PrimaryStatus
from repo_environment import EnvironmentRepo
from repo_telemetry import TelemetryRepo
from settings import settings

logger = structlog.get_logger(__name__)


def to_finite_number(value: Any) -> Optional[float]:
    """Coerce a loosely typed JSON value to a finite float, or None."""

    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
    elif not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except (OverflowError, ValueError):
        # ints beyond float range overflow
        return None
    return number if math.isfinite(number) else None


def summarize(history: List[HeartRateAnalysis]) -> DashboardSummary:
    if not history:
        return DashboardSummary(
            count=0,
            total_readings=0,
            status_counts={s.value: 0 for s in PrimaryStatus},
            flag_counts={f.value: 0 for f in HeartRateFlag},
        )

    bpms = [a.bpm for a in history]
    statuses = Counter(a.primary_status.value for a in history)
    flags = Counter(f.value for a in history for f in a.flags)

    return DashboardSummary(
        count=len(history),
        total_readings=len(history),
        critical=statuses.get(PrimaryStatus.CRITICAL.value, 0),
        warning=statuses.get(PrimaryStatus.WARNING.value, 0),
        normal=statuses.get(PrimaryStatus.NORMAL.value, 0),
        avg_bpm=round(sum(bpms) / len(bpms), 1),
        min_bpm=min(bpms),
        max_bpm=max(bpms),
        avg_spo2=round(sum(a.spo2 for a in history) / len(history), 1),
        status_counts={s.value: statuses.get(s.value, 0) for s in PrimaryStatus},
        flag_counts={f.value: flags.get(f.value, 0) for f in HeartRateFlag},
    )


class TelemetryService:
    """Telemetry recorder and dashboard reader.

    Example usage:
        svc = TelemetryService(TelemetryRepo(), EnvironmentRepo())
        svc.record("watch-1", 72, 98)
    """

    def __init__(self, repo: TelemetryRepo, environment_repo: EnvironmentRepo):
        self.repo = repo
        self.environment_repo = environment_repo

    def record(self, device_id: str, bpm: Any, spo2: Any) -> HeartRateAnalysis:
        """Validate, persist the reading, classify it and persist the analysis.

        Raises:
        - `ValidationError` if bpm or spo2 is not a finite number. Nothing
          is written in that case.
        """

        bpm_value = to_finite_number(bpm)
        spo2_value = to_finite_number(spo2)
        if bpm_value is None or spo2_value is None:
            raise ValidationError("Body must include numeric bpm and spo2")

        self.repo.insert_reading(device_id, bpm_value, spo2_value)

        previous = self.repo.latest_analysis(device_id)
        prev_bpm = previous.bpm if previous else None

        result = classify(bpm_value, prev_bpm)
        analysis = self.repo.insert_analysis(
            HeartRateAnalysis(
                device_id=device_id,
                bpm=bpm_value,
                spo2=spo2_value,
                flags=result.flags,
                primary_status=result.primary_status,
                reason=result.reason,
                prev_bpm=prev_bpm,
            )
        )

        logger.info(
            "heart_rate_recorded",
            device_id=device_id,
            analysis_id=analysis.id,
            bpm=bpm_value,
            status=analysis.primary_status.value,
            flags=[f.value for f in analysis.flags],
        )
        return analysis

    def dashboard(self, device_id: str, limit: Optional[int] = None) -> Dict[str, Any]:
        limit = limit or settings.dashboard_history
        history = self.repo.recent_analyses(device_id, limit)
        return {
            "latest": history[0] if history else None,
            "history": history,
            "summary": summarize(history),
            "latestImage": self.environment_repo.latest_analysis(device_id),
        }
