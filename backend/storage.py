"""
Image blob storage on the local filesystem.

Images land under `MEDIA_ROOT/environment/<device_id>/<ms>-<rand>.jpg` and
are served by the app under `MEDIA_URL`. Swapping this for an object store
only needs another class with the same `save()` signature.
"""

import re
import time
import uuid
from pathlib import Path
from typing import Tuple

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")


def _safe_segment(value: str) -> str:
    cleaned = _UNSAFE.sub("_", value).strip(".")
    return cleaned or "_"


class LocalImageStore:
    def __init__(self, media_root: str, media_url: str, public_base_url: str):
        self.root = Path(media_root)
        self.media_url = "/" + media_url.strip("/")
        self.public_base_url = public_base_url.rstrip("/")

    def save(self, device_id: str, image_bytes: bytes) -> Tuple[str, str]:
        """Write the JPEG and return `(image_path, image_url)`.

        `image_path` is relative to the media root.
        """

        name = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}.jpg"
        image_path = f"environment/{_safe_segment(device_id)}/{name}"

        target = self.root / image_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(image_bytes)

        return image_path, f"{self.public_base_url}{self.media_url}/{image_path}"
