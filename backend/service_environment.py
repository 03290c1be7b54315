"""
Environment image recording.

Steps for one upload: validate, store the image, label it, infer hazards,
persist the analysis, then complete the command it belongs to. A labeling
failure degrades to `unknown_result()`; a store failure aborts the request
and leaves whatever was already written.
"""

from typing import Any, Dict, Optional

import structlog

from analysis_environment import FAILED_SUMMARY, Labeler, infer, unknown_result
from errors import LabelerError, ValidationError
from models import EnvironmentAnalysis
from repo_environment import EnvironmentRepo
from service_commands import CommandService, clean_command_id
from storage import LocalImageStore

logger = structlog.get_logger(__name__)

ALLOWED_MIMETYPES = {"image/jpeg", "image/jpg"}


class EnvironmentService:
    def __init__(
        self,
        repo: EnvironmentRepo,
        image_store: LocalImageStore,
        labeler: Labeler,
        commands: CommandService,
        max_image_bytes: int,
    ):
        self.repo = repo
        self.image_store = image_store
        self.labeler = labeler
        self.commands = commands
        self.max_image_bytes = max_image_bytes

    def validate(self, image_bytes: Optional[bytes], mimetype: Optional[str]) -> None:
        if not image_bytes:
            raise ValidationError('Missing image file field "image"')
        if mimetype and mimetype not in ALLOWED_MIMETYPES:
            raise ValidationError("Only image/jpeg is supported")
        if len(image_bytes) > self.max_image_bytes:
            raise ValidationError(f"Image larger than {self.max_image_bytes} bytes", status_code=413)

    def analyze(self, image_bytes: bytes, image_url: str, mimetype: Optional[str]):
        try:
            detections = self.labeler.detect(image_bytes, image_url, mimetype)
        except LabelerError as e:
            logger.warning("labeler_failed", labeler=self.labeler.name, error=str(e))
            return unknown_result(FAILED_SUMMARY)
        if detections is None:
            return unknown_result()
        return infer(detections)

    def record(
        self,
        device_id: str,
        image_bytes: Optional[bytes],
        mimetype: Optional[str] = None,
        command_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Store and analyze one image; link it to a command.

        Returns a dict with `analysisId`, `imageUrl`, `commandId` (the
        command actually completed, or None) and `result`.
        """

        self.validate(image_bytes, mimetype)
        command_id = clean_command_id(command_id)

        image_path, image_url = self.image_store.save(device_id, image_bytes)
        result = self.analyze(image_bytes, image_url, mimetype)

        analysis = self.repo.insert_analysis(
            EnvironmentAnalysis(
                device_id=device_id,
                command_id=command_id,
                image_path=image_path,
                image_url=image_url,
                image_size=len(image_bytes),
                mimetype=mimetype,
                result=result,
            )
        )

        completed_id = self.commands.complete(device_id, analysis.id, command_id)
        if completed_id and completed_id != command_id:
            self.repo.link_command(analysis.id, completed_id)

        logger.info(
            "environment_recorded",
            device_id=device_id,
            analysis_id=analysis.id,
            command_id=completed_id,
            risk_level=result.risk_level,
            hazards=result.hazards,
        )
        return {
            "analysisId": analysis.id,
            "imageUrl": image_url,
            "commandId": completed_id,
            "result": result,
        }
