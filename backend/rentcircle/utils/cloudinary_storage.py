from __future__ import annotations

import os
import tempfile

import cloudinary
import cloudinary.uploader

from rentcircle.config import cloudinary_folder


def is_configured() -> bool:
    return all(
        (os.getenv(k) or "").strip()
        for k in ("CLOUDINARY_CLOUD_NAME", "CLOUDINARY_API_KEY", "CLOUDINARY_API_SECRET")
    )


def configure() -> None:
    cloudinary.config(
        cloud_name=os.getenv("CLOUDINARY_CLOUD_NAME"),
        api_key=os.getenv("CLOUDINARY_API_KEY"),
        api_secret=os.getenv("CLOUDINARY_API_SECRET"),
        secure=True,
    )


def upload_image_bytes(*, raw: bytes, public_id: str) -> tuple[str, str]:
    """
    Upload an already-normalised JPEG and return (secure_url, public_id).

    Errors from the SDK propagate; callers decide how to report them.
    """
    tmp = tempfile.NamedTemporaryFile(delete=False, suffix=".jpg")
    try:
        tmp.write(raw)
        tmp.flush()
        tmp.close()

        res = cloudinary.uploader.upload(
            tmp.name,
            resource_type="image",
            folder=cloudinary_folder(),
            public_id=public_id,
            overwrite=False,
            type="upload",
            invalidate=False,
        )
    finally:
        try:
            os.unlink(tmp.name)
        except OSError:
            pass

    url = str(res.get("secure_url") or "").strip()
    pid = str(res.get("public_id") or "").strip()
    if not url or not pid:
        raise RuntimeError("Cloudinary response missing secure_url/public_id")
    return url, pid


def destroy(*, public_id: str) -> None:
    pid = (public_id or "").strip()
    if not pid:
        return
    cloudinary.uploader.destroy(pid, resource_type="image", invalidate=False)
