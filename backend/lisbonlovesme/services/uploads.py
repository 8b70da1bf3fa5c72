"""
Local-disk storage for uploaded images and documents.

Upload directory priority:
  1. UPLOAD_DIR setting
  2. /data/uploads on Render (persistent disk)
  3. ./public/uploads
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional
import logging
import os
import secrets

from fastapi import UploadFile

from lisbonlovesme.core.config import settings
from lisbonlovesme.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

_CHUNK = 1024 * 1024

DOCUMENT_MIME_TYPES = {
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "text/plain",
    "application/zip",
    "application/x-zip-compressed",
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/gif",
}


@dataclass
class StoredFile:
    stored_filename: str
    original_filename: str
    mime_type: str
    size: int

    @property
    def url(self) -> str:
        return uploaded_file_url(self.stored_filename)


def resolve_upload_dir() -> Path:
    configured = (settings.upload_dir or "").strip()
    if configured:
        chosen = Path(configured)
    elif os.environ.get("RENDER") or os.environ.get("RENDER_EXTERNAL_URL"):
        chosen = Path("/data/uploads")
    else:
        chosen = Path.cwd() / "public" / "uploads"
    chosen = chosen.resolve()
    chosen.mkdir(parents=True, exist_ok=True)
    return chosen


def uploaded_file_url(stored_filename: str) -> str:
    return f"/uploads/{stored_filename}"


def stored_file_path(stored_filename: str) -> Path:
    return resolve_upload_dir() / Path(stored_filename).name


def is_image(mime_type: str) -> bool:
    return mime_type.startswith("image/")


def is_allowed_document(mime_type: str) -> bool:
    return mime_type in DOCUMENT_MIME_TYPES


async def save_upload(
    upload: UploadFile,
    max_bytes: int,
    accept: Callable[[str], bool],
    rejected_message: str,
) -> StoredFile:
    """Stream an upload to disk under a random name, enforcing type and size."""
    mime_type = upload.content_type or "application/octet-stream"
    if not accept(mime_type):
        raise ValidationError(rejected_message)

    original = upload.filename or "upload"
    extension = Path(original).suffix.lower()
    stored = f"{secrets.token_urlsafe(8)}{extension}"
    target = resolve_upload_dir() / stored

    size = 0
    with open(target, "wb") as out:
        while True:
            chunk = await upload.read(_CHUNK)
            if not chunk:
                break
            size += len(chunk)
            if size > max_bytes:
                out.close()
                target.unlink(missing_ok=True)
                raise ValidationError(f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB.")
            out.write(chunk)

    logger.info(f"Stored upload {original} as {stored} ({size} bytes)")
    return StoredFile(stored_filename=stored, original_filename=original, mime_type=mime_type, size=size)


async def save_image(upload: UploadFile) -> StoredFile:
    return await save_upload(upload, settings.max_image_bytes, is_image, "Only image files are allowed")


async def save_document(upload: UploadFile) -> StoredFile:
    return await save_upload(upload, settings.max_document_bytes, is_allowed_document, "Unsupported file type")


def delete_stored_file(stored_filename: Optional[str]) -> None:
    if not stored_filename:
        return
    try:
        stored_file_path(stored_filename).unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Could not delete stored file {stored_filename}: {e}")
