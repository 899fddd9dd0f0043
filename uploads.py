"""
Product image uploads: stored on disk, served statically under /uploads.
"""

import logging
import os
import time

from fastapi import UploadFile

import config
from errors import ValidationError

logger = logging.getLogger(__name__)

UPLOAD_DIR = config.UPLOAD_DIR
os.makedirs(UPLOAD_DIR, exist_ok=True)


def build_filename(original: str) -> str:
    base, ext = os.path.splitext(os.path.basename(original or "image"))
    return f"{base or 'image'}-{int(time.time() * 1000)}{ext}"


async def save_image(upload: UploadFile) -> str:
    """Validate and store an uploaded image; returns the stored filename."""
    if not (upload.content_type or "").startswith("image/"):
        raise ValidationError("Only image files are allowed")

    data = await upload.read(config.MAX_UPLOAD_BYTES + 1)
    if len(data) > config.MAX_UPLOAD_BYTES:
        raise ValidationError("Image exceeds the 5MB limit")

    filename = build_filename(upload.filename)
    os.makedirs(UPLOAD_DIR, exist_ok=True)
    with open(os.path.join(UPLOAD_DIR, filename), "wb") as fh:
        fh.write(data)
    logger.info("stored upload %s (%d bytes)", filename, len(data))
    return filename
