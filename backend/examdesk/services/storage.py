"""
Object storage - essay answer images and transfer screenshots in GridFS.

Callers only see ``upload bytes -> URL``; the URL is served back by the
files route.
"""

import asyncio
import io
import logging
from typing import Any, Dict, Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from gridfs.errors import NoFile
from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel

from ..config.settings import settings as default_settings
from ..errors import FileNotFound, UploadFailed, ValidationFailed
from ..utils import validate_file_size, validate_file_type

logger = logging.getLogger(__name__)

IMAGE_FORMATS = {"PNG": "image/png", "JPEG": "image/jpeg", "WEBP": "image/webp"}


class StoredObject(BaseModel):
    file_id: str
    url: str
    content_type: str
    size: int


def _sync_identify_image(data: bytes) -> str:
    """Return the image format, raising if the bytes are not a usable image."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
            fmt = img.format
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ValidationFailed(f"File is not a valid image: {e}")

    if fmt not in IMAGE_FORMATS:
        raise ValidationFailed(f"Image format '{fmt}' not allowed")
    return fmt


class GridFSObjectStorage:
    """Stores verified images in a Motor GridFS bucket."""

    def __init__(self, bucket, settings=None):
        self.bucket = bucket
        self.settings = settings or default_settings
        self.url_prefix = self.settings.FILES_URL_PREFIX.rstrip("/")

    def url_for(self, file_id: str) -> str:
        return f"{self.url_prefix}/{file_id}"

    async def verify_image(self, data: bytes, filename: str) -> str:
        """Check extension, size and content; returns the MIME type."""
        is_valid, msg = validate_file_type(filename, self.settings.ALLOWED_IMAGE_EXTENSIONS)
        if not is_valid:
            raise ValidationFailed(msg)

        is_valid, msg = validate_file_size(data, self.settings.MAX_UPLOAD_SIZE_MB)
        if not is_valid:
            raise ValidationFailed(msg)

        fmt = await asyncio.to_thread(_sync_identify_image, data)
        return IMAGE_FORMATS[fmt]

    async def upload_image(
        self,
        data: bytes,
        filename: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> StoredObject:
        """
        Verify and store an image.

        Raises:
            ValidationFailed: not an allowed image
            UploadFailed: the store rejected the write
        """
        content_type = await self.verify_image(data, filename)
        meta = dict(metadata or {})
        meta["content_type"] = content_type

        try:
            file_id = await self.bucket.upload_from_stream(filename, data, metadata=meta)
        except Exception as e:
            logger.error(f"GridFS upload failed for {filename}: {e}", exc_info=True)
            raise UploadFailed(f"Could not store {filename}") from e

        file_id = str(file_id)
        logger.info(f"Stored {filename} as {file_id} ({len(data)} bytes)")
        return StoredObject(
            file_id=file_id,
            url=self.url_for(file_id),
            content_type=content_type,
            size=len(data),
        )

    async def download(self, file_id: str) -> Tuple[bytes, str, Dict[str, Any]]:
        """Return (bytes, content type, upload metadata) for a stored file."""
        try:
            stream = await self.bucket.open_download_stream(ObjectId(file_id))
        except (InvalidId, NoFile, TypeError):
            raise FileNotFound(file_id)

        data = await stream.read()
        metadata = stream.metadata or {}
        return data, metadata.get("content_type", "application/octet-stream"), metadata

    async def delete(self, file_id: str) -> None:
        try:
            await self.bucket.delete(ObjectId(file_id))
        except (InvalidId, NoFile, TypeError):
            raise FileNotFound(file_id)
