"""
Heart-rate anomaly classification.

Pure functions only: no DB, no clock. `TelemetryService` looks up the
previous bpm and calls `classify`; tests call it directly.

Rules:
- `low`   bpm < 40
- `high`  bpm > 120
- `spike` |bpm - prev_bpm| >= 30, only when a finite prev_bpm exists

Flags are independent. The primary status is a strict priority:
spike -> critical, low/high -> warning, otherwise normal.
"""

import math
from typing import List, Optional

from models import HeartRateClassification, HeartRateFlag, PrimaryStatus

LOW_BPM = 40
HIGH_BPM = 120
SPIKE_DELTA = 30

NORMAL_REASON = "Within normal range."


def _format_delta(delta: float):
    # 30.0 -> "30", 30.5 -> "30.5"
    return int(delta) if float(delta).is_integer() else delta


def classify(bpm: float, prev_bpm: Optional[float]) -> HeartRateClassification:
    """Classify one sample against the previous one.

    `bpm` must be finite; that is checked by the caller. `prev_bpm` may be
    None (first reading for the device) or anything non-finite, in which
    case spike detection is skipped.
    """

    flags: List[HeartRateFlag] = []
    clauses: List[str] = []

    if bpm < LOW_BPM:
        flags.append(HeartRateFlag.LOW)
        clauses.append(f"BPM below {LOW_BPM}.")
    if bpm > HIGH_BPM:
        flags.append(HeartRateFlag.HIGH)
        clauses.append(f"BPM above {HIGH_BPM}.")

    if prev_bpm is not None and math.isfinite(prev_bpm):
        delta = abs(bpm - prev_bpm)
        if delta >= SPIKE_DELTA:
            flags.append(HeartRateFlag.SPIKE)
            clauses.append(f"Spike detected (Δ{_format_delta(delta)} from previous BPM).")

    return HeartRateClassification(
        flags=flags,
        primary_status=primary_status_for(flags),
        reason=" ".join(clauses) if clauses else NORMAL_REASON,
    )


def primary_status_for(flags) -> PrimaryStatus:
    if HeartRateFlag.SPIKE in flags:
        return PrimaryStatus.CRITICAL
    if HeartRateFlag.LOW in flags or HeartRateFlag.HIGH in flags:
        return PrimaryStatus.WARNING
    return PrimaryStatus.NORMAL
