"""
Binary object storage for listing images.

`ObjectStore.put(path, data)` returns the public URL of the stored object and
raises `StorageFailure` on any backend error. Cloudinary is used when
configured; otherwise files land under `UPLOADS_DIR` and are served by the API
at `/uploads/...`.
"""
from __future__ import annotations

import logging
import os
from io import BytesIO
from typing import Protocol

from PIL import Image, ImageOps, UnidentifiedImageError

from rentcircle import config
from rentcircle.errors import StorageFailure
from rentcircle.utils import cloudinary_storage


logger = logging.getLogger(__name__)

MAX_IMAGE_SIZE = 1600   # px
JPEG_QUALITY = 82       # balance between size & quality


class ObjectStore(Protocol):
    def put(self, path: str, data: bytes) -> str: ...

    def delete(self, path: str) -> None: ...


def looks_like_image(raw: bytes) -> bool:
    if not raw or len(raw) < 16:
        return False

    sig = raw[:16]

    return (
        sig.startswith(b"\xFF\xD8\xFF") or          # JPEG
        sig.startswith(b"\x89PNG\r\n\x1a\n") or     # PNG
        (sig.startswith(b"RIFF") and sig[8:12] == b"WEBP")
    )


def optimize_image(raw: bytes) -> bytes:
    """
    Normalise an upload to a bounded-size progressive JPEG.

    Falls back to the original bytes when Pillow cannot decode them (the
    signature check has already passed, so the object is still an image).
    """
    try:
        img = Image.open(BytesIO(raw))
        img = ImageOps.exif_transpose(img)
        img = img.convert("RGB")
        img.thumbnail((MAX_IMAGE_SIZE, MAX_IMAGE_SIZE), Image.LANCZOS)

        out = BytesIO()
        img.save(out, format="JPEG", quality=JPEG_QUALITY, optimize=True, progressive=True)
        return out.getvalue()
    except (UnidentifiedImageError, OSError, ValueError):
        return raw


class LocalDiskStore:
    def __init__(self, base_dir: str | None = None, public_base: str | None = None) -> None:
        self.base_dir = base_dir or config.uploads_dir()
        self.public_base = config.public_base_url() if public_base is None else public_base

    def _disk_path(self, path: str) -> str:
        rel = (path or "").lstrip("/").replace("\\", "/")
        if not rel or ".." in rel.split("/"):
            raise StorageFailure("Invalid storage path")
        return os.path.join(self.base_dir, rel)

    def put(self, path: str, data: bytes) -> str:
        disk_path = self._disk_path(path)
        try:
            os.makedirs(os.path.dirname(disk_path), exist_ok=True)
            with open(disk_path, "wb") as out:
                out.write(data)
        except OSError as e:
            raise StorageFailure("Failed to save upload") from e
        return f"{self.public_base}/uploads/{path.lstrip('/')}"

    def delete(self, path: str) -> None:
        disk_path = self._disk_path(path)
        try:
            if os.path.exists(disk_path):
                os.remove(disk_path)
        except OSError as e:
            raise StorageFailure("Failed to delete upload") from e


class CloudinaryStore:
    def __init__(self) -> None:
        cloudinary_storage.configure()

    @staticmethod
    def _public_id(path: str) -> str:
        return os.path.splitext(path.lstrip("/"))[0]

    def put(self, path: str, data: bytes) -> str:
        try:
            url, _pid = cloudinary_storage.upload_image_bytes(raw=data, public_id=self._public_id(path))
        except Exception as e:
            msg = str(e) or "Cloudinary upload failed"
            raise StorageFailure(f"Failed to upload to Cloudinary: {msg[:200]}") from e
        return url

    def delete(self, path: str) -> None:
        try:
            cloudinary_storage.destroy(public_id=f"{config.cloudinary_folder()}/{self._public_id(path)}")
        except Exception as e:
            raise StorageFailure("Failed to delete from Cloudinary") from e


_store: ObjectStore | None = None


def get_object_store() -> ObjectStore:
    global _store
    if _store is None:
        _store = CloudinaryStore() if cloudinary_storage.is_configured() else LocalDiskStore()
        logger.info("Object store: %s", type(_store).__name__)
    return _store
