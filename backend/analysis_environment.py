"""
Environment image analysis: labelers and hazard inference.

A labeler turns an image into a list of `Detection`s. Two variants exist:

- `StubLabeler` - no vision service configured; returns None so the caller
  falls back to `unknown_result()`.
- `LiveLabeler` - POSTs the image to an external endpoint that answers with
  a JSON list of `{"label": ..., "score": ...}`.

`infer` only ever sees the detection list and does not care which labeler
produced it.
"""

from typing import Iterable, List, Optional

import requests
import structlog
from pydantic import ValidationError as PydanticValidationError

from errors import LabelerError
from models import Detection, EnvironmentResult
from settings import Settings

logger = structlog.get_logger(__name__)

MIN_SCORE = 0.15
MAX_LABELS = 7

# canonical label <- substrings (first match wins)
LABEL_ALIASES = [
    ("cat", ("cat",)),
    ("tissue", ("tissue", "paper")),
    ("plunger", ("plunger", "plumber")),
    ("knife", ("knife",)),
]

HAZARD_KEYWORDS = {
    "sharp": ("knife", "scissors"),
    "fire": ("fire", "flame", "smoke"),
    "fall": ("stairs", "ladder"),
    "trip": ("cable", "wire"),
    "breakable": ("glass", "bottle"),
}

HIGH_RISK_HAZARDS = {"sharp", "fire"}


NOT_CONFIGURED_SUMMARY = "AI service not configured yet. This is a stub result."
FAILED_SUMMARY = "AI failed to analyze image."


def unknown_result(summary: str = NOT_CONFIGURED_SUMMARY) -> EnvironmentResult:
    """Result used whenever no usable detections are available.

    The summary tells a missing labeler apart from a failed one.
    """

    return EnvironmentResult(
        lighting="unknown",
        hazards=[],
        summary=summary,
        risk_level="unknown",
    )


def normalize_label(label: str) -> str:
    lowered = label.lower()
    for canonical, needles in LABEL_ALIASES:
        if any(n in lowered for n in needles):
            return canonical
    return lowered


def hazards_for(label: str) -> set:
    lowered = label.lower()
    return {
        category
        for category, keywords in HAZARD_KEYWORDS.items()
        if any(k in lowered for k in keywords)
    }


def infer(detections: Iterable[Detection]) -> EnvironmentResult:
    """Map raw detections to hazard categories and a risk level.

    Detections at or below MIN_SCORE are dropped, the rest are ranked by
    score (stable for ties) and capped at MAX_LABELS before normalization.
    """

    kept = [d for d in detections if d.score > MIN_SCORE]
    ranked = sorted(kept, key=lambda d: d.score, reverse=True)[:MAX_LABELS]

    labels: List[str] = []
    for d in ranked:
        name = normalize_label(d.label)
        if name and name not in labels:
            labels.append(name)

    hazards = set()
    for name in labels:
        hazards |= hazards_for(name)

    if hazards & HIGH_RISK_HAZARDS:
        risk_level = "high"
    elif hazards:
        risk_level = "medium"
    else:
        risk_level = "low"

    return EnvironmentResult(
        hazards=sorted(hazards),
        risk_level=risk_level,
        summary="Detected objects: " + ", ".join(labels),
        labels=labels,
    )


class Labeler:
    """Source of detections for an uploaded image."""

    name = "base"

    def detect(
        self, image_bytes: bytes, image_url: str, mimetype: Optional[str] = None
    ) -> Optional[List[Detection]]:
        raise NotImplementedError


class StubLabeler(Labeler):
    name = "stub"

    def detect(self, image_bytes, image_url, mimetype=None):
        return None


class LiveLabeler(Labeler):
    """Calls an external vision endpoint. One attempt, no retries."""

    name = "live"

    def __init__(self, url: str, api_key: str = "", timeout: float = 10.0):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout

    def detect(self, image_bytes, image_url, mimetype=None):
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        try:
            response = requests.post(
                self.url,
                files={"image": ("image.jpg", image_bytes, mimetype or "image/jpeg")},
                data={"imageUrl": image_url},
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            body = response.json()
        except requests.RequestException as e:
            raise LabelerError(f"Vision request failed: {e}") from e
        except ValueError as e:
            raise LabelerError(f"Vision response is not JSON: {e}") from e

        if not isinstance(body, list):
            raise LabelerError(f"Vision response must be a list, got {type(body).__name__}")

        try:
            return [Detection.model_validate(item) for item in body]
        except PydanticValidationError as e:
            raise LabelerError(f"Malformed detection in vision response: {e}") from e


def make_labeler(cfg: Settings) -> Labeler:
    if cfg.vision_url:
        logger.info("labeler_selected", labeler="live", url=cfg.vision_url)
        return LiveLabeler(cfg.vision_url, cfg.vision_api_key, cfg.vision_timeout)
    logger.info("labeler_selected", labeler="stub")
    return StubLabeler()
