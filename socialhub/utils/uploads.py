import logging
import os
import time
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os
from fastapi import UploadFile

from ..config import settings
from ..exceptions import ValidationError

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".jpeg", ".jpg", ".png", ".gif"}
ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/gif"}
URL_PREFIX = "/uploads"
CHUNK_SIZE = 64 * 1024


def validate_image(file: UploadFile) -> str:
    """Check extension and content type; returns the normalized extension."""
    ext = os.path.splitext(file.filename or "")[1].lower()
    if ext not in ALLOWED_EXTENSIONS or file.content_type not in ALLOWED_CONTENT_TYPES:
        raise ValidationError("Images only (jpeg, jpg, png, gif)", field="image")
    return ext


async def read_limited(file: UploadFile, limit: int) -> bytes:
    """Read the upload in chunks, stopping as soon as it exceeds `limit` bytes."""
    chunks = []
    size = 0
    while True:
        chunk = await file.read(min(CHUNK_SIZE, limit + 1 - size))
        if not chunk:
            break
        size += len(chunk)
        if size > limit:
            raise ValidationError(f"Image exceeds the {limit} byte limit", field="image")
        chunks.append(chunk)
    return b"".join(chunks)


async def save_image(file: Optional[UploadFile]) -> Optional[str]:
    """
    Store an uploaded image under the upload directory.

    Returns the public path (/uploads/<name>), or None when no file was sent.
    """
    if file is None or not file.filename:
        return None
    ext = validate_image(file)
    content = await read_limited(file, settings.max_upload_size)

    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    stamp = int(time.time() * 1000)
    while await aiofiles.os.path.exists(upload_dir / f"{stamp}{ext}"):
        stamp += 1
    name = f"{stamp}{ext}"
    async with aiofiles.open(upload_dir / name, "wb") as f:
        await f.write(content)
    logger.info("Stored upload %s (%d bytes)", name, len(content))
    return f"{URL_PREFIX}/{name}"


async def remove_image(public_path: Optional[str]) -> None:
    if not public_path or not public_path.startswith(URL_PREFIX + "/"):
        return
    target = Path(settings.upload_dir) / public_path[len(URL_PREFIX) + 1:]
    try:
        await aiofiles.os.remove(target)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Could not remove upload %s: %s", target, e)
