"""
Pydantic models used across the backend.

Input validation for telemetry and uploads happens in the services (the
device firmware sends loosely typed bodies, and we want 400s with our own
messages rather than FastAPI's 422s). The models here are the shapes that
flow between repositories, services and routes.

Guidelines:
- API-facing models serialize with camelCase aliases (`deviceId`,
  `createdAt`) because that is what the devices already speak. Dump them
  with `model_dump(by_alias=True, mode="json")` at the route boundary.
- `EnvironmentResult` keeps snake_case keys (`risk_level`) for the same
  reason.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CommandStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"


class HeartRateFlag(str, Enum):
    LOW = "low"
    HIGH = "high"
    SPIKE = "spike"


class PrimaryStatus(str, Enum):
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Device(BaseModel):
    device_id: str
    token: str
    enabled: bool = False


class Command(ApiModel):
    """A unit of work dispatched to a device.

    `payload` is whatever the dispatcher attached; the backend never looks
    inside it.
    """

    id: str
    device_id: str
    type: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    status: CommandStatus
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    result_ref: Optional[str] = None


class HeartRateClassification(BaseModel):
    model_config = ConfigDict(frozen=True)

    flags: List[HeartRateFlag]
    primary_status: PrimaryStatus
    reason: str


class HeartRateAnalysis(ApiModel):
    id: Optional[str] = None
    device_id: str
    bpm: float
    spo2: float
    flags: List[HeartRateFlag] = Field(default_factory=list)
    primary_status: PrimaryStatus
    reason: str
    prev_bpm: Optional[float] = None
    created_at: Optional[datetime] = None


class Detection(BaseModel):
    """One label from the vision service, score in [0, 1]."""

    label: str
    score: float


class EnvironmentResult(BaseModel):
    hazards: List[str] = Field(default_factory=list)
    risk_level: str
    summary: str
    lighting: str = "unknown"
    labels: List[str] = Field(default_factory=list)


class EnvironmentAnalysis(ApiModel):
    id: Optional[str] = None
    device_id: str
    command_id: Optional[str] = None
    image_path: str
    image_url: str
    image_size: int
    mimetype: Optional[str] = None
    result: EnvironmentResult
    created_at: Optional[datetime] = None


class DashboardSummary(ApiModel):
    """Aggregates over the dashboard history window.

    `total_readings`, `critical`, `warning` and `normal` are the keys the
    device app reads; the rest are extra detail.
    """

    count: int
    total_readings: int
    critical: int = 0
    warning: int = 0
    normal: int = 0
    avg_bpm: Optional[float] = None
    min_bpm: Optional[float] = None
    max_bpm: Optional[float] = None
    avg_spo2: Optional[float] = None
    status_counts: Dict[str, int] = Field(default_factory=dict)
    flag_counts: Dict[str, int] = Field(default_factory=dict)
