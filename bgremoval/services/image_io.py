from __future__ import annotations

import re
from dataclasses import dataclass

from fastapi import UploadFile
from loguru import logger

from bgremoval.core.errors import BadRequest
from bgremoval.models.domain import RasterInfo
from bgremoval.services.raster import RasterCodec

SUPPORTED_IMAGE_TYPES = re.compile(r"image/(jpeg|png|webp)")


@dataclass(frozen=True)
class UploadedImage:
    data: bytes
    content_type: str
    filename: str
    info: RasterInfo


@dataclass
class ImageIOService:
    """
    Upload validation in front of the raster core.

    Checks, in order: file present, size limit, MIME type (JPEG, PNG, WebP),
    decodable header, dimension limit. Nothing is written to disk.
    """
    codec: RasterCodec
    max_file_size_bytes: int = 10 * 1024 * 1024
    max_dimension: int = 65535

    async def read_upload(self, file: UploadFile) -> UploadedImage:
        if not file.filename:
            raise BadRequest("Image file is required")

        data = await file.read()
        if not data:
            raise BadRequest("Uploaded image file is empty")

        if len(data) > self.max_file_size_bytes:
            limit_mb = self.max_file_size_bytes / (1024 * 1024)
            raise BadRequest(f"File size must be less than {limit_mb:g}MB")

        content_type = (file.content_type or "").lower()
        if not SUPPORTED_IMAGE_TYPES.search(content_type):
            raise BadRequest(
                f"Unsupported file type '{content_type or 'unknown'}'. "
                f"Supported: image/jpeg, image/png, image/webp"
            )

        info = self.codec.describe(data)
        if info.width > self.max_dimension or info.height > self.max_dimension:
            raise BadRequest(
                f"Image too large ({info.width}x{info.height} pixels). "
                f"Maximum dimension: {self.max_dimension}px"
            )

        logger.debug(
            f"Upload {file.filename}: {len(data) / 1024:.1f}KB, format={info.format}, "
            f"size={info.width}x{info.height}"
        )
        return UploadedImage(data=data, content_type=content_type, filename=file.filename, info=info)
