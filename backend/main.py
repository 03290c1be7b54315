from typing import Any, Optional

import structlog
from fastapi import Body, Depends, FastAPI, File, Form, Header, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from analysis_environment import make_labeler
from errors import AuthorizationError, ValidationError
from logging_setup import configure_logging
from repo_commands import CommandRepo
from repo_devices import DeviceRepo
from repo_environment import EnvironmentRepo
from repo_telemetry import TelemetryRepo
from service_commands import CommandService
from service_devices import DeviceService
from service_environment import EnvironmentService
from service_telemetry import TelemetryService
from settings import settings
from storage import LocalImageStore

configure_logging()
logger = structlog.get_logger(__name__)

app = FastAPI(title="DeviceLink Backend")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Instantiate the repos + services here so the routes remain thin and
# replaceable for testing (tests monkeypatch these module attributes).
environment_repo = EnvironmentRepo()
device_svc = DeviceService(DeviceRepo())
command_svc = CommandService(CommandRepo())
telemetry_svc = TelemetryService(TelemetryRepo(), environment_repo)
environment_svc = EnvironmentService(
    environment_repo,
    LocalImageStore(settings.media_root, settings.media_url, settings.public_base_url),
    make_labeler(settings),
    command_svc,
    settings.max_image_bytes,
)

app.mount(
    "/" + settings.media_url.strip("/"),
    StaticFiles(directory=settings.media_root, check_dir=False),
    name="media",
)


def current_device(
    x_device_id: Optional[str] = Header(None),
    x_device_token: Optional[str] = Header(None),
) -> str:
    try:
        return device_svc.authenticate(x_device_id, x_device_token)
    except (ValidationError, AuthorizationError) as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.exception("auth_failed", device_id=x_device_id)
        raise HTTPException(status_code=500, detail=f"Auth error: {e}")


def _dump(model):
    return model.model_dump(by_alias=True, mode="json") if model is not None else None


@app.get("/health")
def health():
    try:
        device_svc.health_check()
        return {"ok": True}
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"DB health check failed: {e}")


@app.get("/device/commands")
def next_command(
    deviceId: Optional[str] = Query(None),
    device_id: str = Depends(current_device),
):
    try:
        device_svc.check_device_param(deviceId, device_id)
        return {"command": _dump(command_svc.claim_next(device_id))}
    except ValueError as e:
        raise HTTPException(status_code=getattr(e, "status_code", 400), detail=str(e))
    except Exception as e:
        logger.exception("claim_failed", device_id=device_id)
        raise HTTPException(status_code=500, detail=f"Failed to fetch commands: {e}")


@app.get("/device/dashboard")
def dashboard(
    deviceId: Optional[str] = Query(None),
    device_id: str = Depends(current_device),
):
    try:
        device_svc.check_device_param(deviceId, device_id)
        data = telemetry_svc.dashboard(device_id)
    except ValueError as e:
        raise HTTPException(status_code=getattr(e, "status_code", 400), detail=str(e))
    except Exception as e:
        logger.exception("dashboard_failed", device_id=device_id)
        raise HTTPException(status_code=500, detail=f"Dashboard failed: {e}")

    return {
        "ok": True,
        "latest": _dump(data["latest"]),
        "history": [_dump(a) for a in data["history"]],
        "summary": _dump(data["summary"]),
        "latestImage": _dump(data["latestImage"]),
    }


@app.post("/device/upload-image")
def upload_image(
    image: Optional[UploadFile] = File(None),
    commandId: Optional[str] = Form(None),
    device_id: str = Depends(current_device),
):
    image_bytes = image.file.read() if image is not None else None
    mimetype = image.content_type if image is not None else None
    try:
        out = environment_svc.record(device_id, image_bytes, mimetype, commandId)
    except ValueError as e:
        raise HTTPException(status_code=getattr(e, "status_code", 400), detail=str(e))
    except Exception as e:
        logger.exception("upload_failed", device_id=device_id)
        raise HTTPException(status_code=500, detail=f"Upload/analyze failed: {e}")

    return {
        "ok": True,
        "analysisId": out["analysisId"],
        "imageUrl": out["imageUrl"],
        "commandId": out["commandId"],
        "result": out["result"].model_dump(),
    }


@app.post("/device/telemetry/heart-rate")
def heart_rate(
    payload: Any = Body(None),
    device_id: str = Depends(current_device),
):
    body = payload if isinstance(payload, dict) else {}
    try:
        analysis = telemetry_svc.record(device_id, body.get("bpm"), body.get("spo2"))
    except ValueError as e:
        raise HTTPException(status_code=getattr(e, "status_code", 400), detail=str(e))
    except Exception as e:
        logger.exception("telemetry_failed", device_id=device_id)
        raise HTTPException(status_code=500, detail=f"Telemetry failed: {e}")

    return {"ok": True, "id": analysis.id, "analysis": _dump(analysis)}
