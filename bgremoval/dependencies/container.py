from __future__ import annotations

from dataclasses import dataclass

import httpx
from fastapi import Request

from bgremoval.core.config import Settings
from bgremoval.services.raster import RasterCodec
from bgremoval.services.color_parser import ColorParserService
from bgremoval.services.background_removal import BackgroundRemovalService
from bgremoval.services.cropping import RegionCropService
from bgremoval.services.bbox_transform import BoundingBoxTransformService
from bgremoval.services.image_io import ImageIOService
from bgremoval.services.packaging import PackagingService
from bgremoval.services.gemini import GeminiService
from bgremoval.services.replicate import ReplicateService


# ============================
# Dependency Injection Container
# ============================

@dataclass(frozen=True)
class Container:
    settings: Settings

    # Raster core
    codec: RasterCodec
    color_parser: ColorParserService
    background_removal: BackgroundRemovalService
    cropping: RegionCropService
    bbox_transform: BoundingBoxTransformService

    # Request / response plumbing
    image_io: ImageIOService
    packaging: PackagingService

    # External providers
    http: httpx.AsyncClient
    gemini: GeminiService
    replicate: ReplicateService

    # ----------------------------
    # Factory
    # ----------------------------
    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        http: httpx.AsyncClient | None = None,
    ) -> "Container":
        from loguru import logger

        # ---- Raster core ----
        codec = RasterCodec(png_compression_level=settings.png_compression_level)
        color_parser = ColorParserService()
        background_removal = BackgroundRemovalService(codec=codec)
        cropping = RegionCropService(codec=codec, max_workers=settings.crop_max_workers)
        bbox_transform = BoundingBoxTransformService()

        # ---- Upload validation & packaging ----
        image_io = ImageIOService(
            codec=codec,
            max_file_size_bytes=settings.max_file_size_bytes,
            max_dimension=settings.max_image_dimension,
        )
        packaging = PackagingService()

        # ---- External providers (one shared HTTP client) ----
        http = http or httpx.AsyncClient()

        gemini = GeminiService(
            http=http,
            codec=codec,
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            image_model=settings.gemini_image_model,
            timeout_ms=settings.gemini_timeout_ms,
            base_url=settings.gemini_base_url,
        )
        if not settings.gemini_api_key:
            logger.warning("GEMINI_API_KEY not set; detection endpoints will answer 503")

        replicate = ReplicateService(
            http=http,
            api_token=settings.replicate_api_token,
            model_version=settings.replicate_sam2_version,
            base_url=settings.replicate_base_url,
            max_retries=settings.replicate_max_retries,
            initial_backoff_seconds=settings.replicate_initial_backoff_seconds,
            max_wait_seconds=settings.replicate_max_wait_seconds,
        )
        if not settings.replicate_api_token:
            logger.warning("REPLICATE_API_TOKEN not set; segmentation endpoint will answer 503")

        return cls(
            settings=settings,
            codec=codec,
            color_parser=color_parser,
            background_removal=background_removal,
            cropping=cropping,
            bbox_transform=bbox_transform,
            image_io=image_io,
            packaging=packaging,
            http=http,
            gemini=gemini,
            replicate=replicate,
        )

    # ----------------------------
    # Lifecycle Hooks
    # ----------------------------
    async def start(self) -> None:
        """
        Called on FastAPI startup.
        """
        from loguru import logger

        logger.info(
            f"Default tolerance: {self.settings.tolerance}, "
            f"max upload: {self.settings.max_file_size_mb}MB"
        )

    async def stop(self) -> None:
        """
        Called on FastAPI shutdown.
        """
        await self.http.aclose()


# ============================
# FastAPI Dependency
# ============================

def get_container(request: Request) -> Container:
    return request.app.state.container
