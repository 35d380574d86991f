"""
Thumbnail storage: validates an uploaded image and writes it under
``settings.UPLOAD_DIR``. The stored file is referenced by URL only; serving
it is left to whatever fronts the upload directory.
"""
import logging
import secrets
import time
from pathlib import Path

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from quickblog.config import settings
from quickblog.exceptions import ValidationError

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = frozenset({".jpeg", ".jpg", ".png", ".gif"})
ALLOWED_CONTENT_TYPES = frozenset({"image/jpeg", "image/jpg", "image/png", "image/gif"})


def _validate(upload: UploadFile) -> str:
    extension = Path(upload.filename or "").suffix.lower()
    if extension not in ALLOWED_EXTENSIONS or upload.content_type not in ALLOWED_CONTENT_TYPES:
        raise ValidationError("Only image files (JPEG, PNG, GIF) are allowed.")
    return extension


def _write(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


async def save_thumbnail(upload: UploadFile | None) -> str:
    """Persist *upload* and return the URL it will be served from."""
    if upload is None or not upload.filename:
        raise ValidationError("Thumbnail image is required.")

    extension = _validate(upload)
    data = await upload.read(settings.MAX_UPLOAD_BYTES + 1)
    if not data:
        raise ValidationError("Thumbnail image is empty.")
    if len(data) > settings.MAX_UPLOAD_BYTES:
        raise ValidationError(
            f"Thumbnail image exceeds the {settings.MAX_UPLOAD_BYTES} byte limit."
        )

    filename = f"thumbnail-{int(time.time() * 1000)}-{secrets.token_hex(4)}{extension}"
    await run_in_threadpool(_write, Path(settings.UPLOAD_DIR) / filename, data)
    logger.info("Stored thumbnail %s (%d bytes)", filename, len(data))
    return f"{settings.UPLOAD_URL_PREFIX.rstrip('/')}/{filename}"
