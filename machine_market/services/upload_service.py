from __future__ import annotations

import os
import uuid
from pathlib import Path
from typing import Protocol

from machine_market.services.errors import InvalidInputError


MAX_UPLOAD_BYTES = 5 * 1024 * 1024
ALLOWED_IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png"}
UPLOAD_URL_PREFIX = "/uploads"


class BlobStore(Protocol):
    def save(self, name: str, data: bytes) -> str:
        ...


class LocalBlobStore:
    """Writes blobs under a directory that the app serves at ``/uploads``."""

    def __init__(self, root: Path, url_prefix: str = UPLOAD_URL_PREFIX) -> None:
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")

    def save(self, name: str, data: bytes) -> str:
        self.root.mkdir(parents=True, exist_ok=True)
        target = self.root / name
        with target.open("wb") as output:
            output.write(data)
        return f"{self.url_prefix}/{name}"


def default_upload_dir() -> Path:
    return Path(os.environ.get("UPLOAD_DIR") or "./uploads").resolve()


def validate_image(filename: str | None, size: int) -> str:
    if size > MAX_UPLOAD_BYTES:
        raise InvalidInputError("File too large (Max 5MB)")
    ext = os.path.splitext(filename or "")[1].lower()
    if ext not in ALLOWED_IMAGE_EXTENSIONS:
        raise InvalidInputError("Only JPG, JPEG, and PNG allowed")
    return ext


def store_image(store: BlobStore, filename: str | None, data: bytes) -> str:
    ext = validate_image(filename, len(data))
    return store.save(f"upload-{uuid.uuid4()}{ext}", data)
