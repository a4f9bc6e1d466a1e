from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Sequence

from loguru import logger

from bgremoval.core.errors import OutOfBoundsError, OutOfBoundsRegion
from bgremoval.models.domain import (
    CropMetadata,
    CroppedRegion,
    CropResult,
    ImageSize,
    Rectangle,
)
from bgremoval.services.raster import ALPHA, PixelBuffer, RasterCodec
from bgremoval.utils.timing import timed


def validate_rectangle(
    rect: Rectangle,
    index: int,
    image_width: int,
    image_height: int,
    *,
    label: str = "Region",
    error_cls: type[OutOfBoundsError] = OutOfBoundsRegion,
) -> None:
    """
    Check one rectangle against the image, in a fixed order:
    negative position -> non-positive size -> width overflow -> height overflow.
    """
    x, y = rect.position.x, rect.position.y
    w, h = rect.size.w, rect.size.h

    if x < 0 or y < 0:
        raise error_cls(
            f"{label} {index}: Position cannot be negative (x: {x}, y: {y})",
            index=index,
            bound="position",
        )
    if w <= 0 or h <= 0:
        raise error_cls(
            f"{label} {index}: Size must be positive (w: {w}, h: {h})",
            index=index,
            bound="size",
        )
    if x + w > image_width:
        raise error_cls(
            f"{label} {index}: Extends beyond image width "
            f"(x: {x}, w: {w}, image width: {image_width})",
            index=index,
            bound="width",
        )
    if y + h > image_height:
        raise error_cls(
            f"{label} {index}: Extends beyond image height "
            f"(y: {y}, h: {h}, image height: {image_height})",
            index=index,
            bound="height",
        )


def validate_regions(regions: Sequence[Rectangle], image_width: int, image_height: int) -> None:
    """Raise on the first invalid region, scanning in input order."""
    for index, region in enumerate(regions):
        validate_rectangle(region, index, image_width, image_height)


def mask_regions(buffer: PixelBuffer, regions: Sequence[Rectangle]) -> None:
    """Set alpha to 0 inside every region, in place. Windows are clipped to the raster."""
    grid = buffer.grid()
    for region in regions:
        x0 = max(0, region.position.x)
        y0 = max(0, region.position.y)
        x1 = min(buffer.width, region.position.x + region.size.w)
        y1 = min(buffer.height, region.position.y + region.size.h)
        if x1 > x0 and y1 > y0:
            grid[y0:y1, x0:x1, ALPHA] = 0


@dataclass
class RegionCropService:
    """
    Multi-region cropping with optional background masking.

    All regions are validated before any pixel work; one bad region fails
    the whole call. Crops are encoded on a bounded thread pool and written
    back into a pre-sized result list by index, so croppedImages[i] always
    belongs to regions[i]. The background (every region punched out to
    alpha 0) is built single-threaded on its own copy of the raster.
    """
    codec: RasterCodec
    max_workers: int | None = None

    def crop_regions(
        self,
        image_bytes: bytes,
        regions: Sequence[Rectangle],
        include_background: bool = True,
    ) -> CropResult:
        logger.info(f"Starting crop operation for {len(regions)} regions")

        with timed("Decode", level="DEBUG"):
            source = self.codec.decode(image_bytes)
        width, height = source.width, source.height

        validate_regions(regions, width, height)

        with timed(f"Crop {len(regions)} regions"):
            cropped_images = self._extract_all(source, regions)

        background_image: bytes | None = None
        if include_background:
            logger.info("Generating background image with transparent regions")
            with timed("Background masking"):
                background = source.copy()
                mask_regions(background, regions)
                background_image = self.codec.encode(background)

        return CropResult(
            cropped_images=cropped_images,
            background_image=background_image,
            metadata=CropMetadata(
                original_dimensions=ImageSize(width=width, height=height),
                cropped_regions=[
                    CroppedRegion(
                        index=index,
                        position=region.position,
                        size=region.size,
                        object=region.object,
                    )
                    for index, region in enumerate(regions)
                ],
            ),
        )

    def _extract_one(self, source: PixelBuffer, region: Rectangle, index: int) -> bytes:
        logger.debug(
            f"Extracting region {index}: ({region.position.x}, {region.position.y}) "
            f"{region.size.w}x{region.size.h}"
        )
        window = self.codec.window(
            source, region.position.x, region.position.y, region.size.w, region.size.h
        )
        return self.codec.encode(window)

    def _extract_all(self, source: PixelBuffer, regions: Sequence[Rectangle]) -> list[bytes]:
        if not regions:
            return []

        workers = min(len(regions), self.max_workers or os.cpu_count() or 1)
        results: list[bytes | None] = [None] * len(regions)

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="crop") as pool:
            futures = {
                pool.submit(self._extract_one, source, region, index): index
                for index, region in enumerate(regions)
            }
            for future in as_completed(futures):
                results[futures[future]] = future.result()

        return results  # type: ignore[return-value]
