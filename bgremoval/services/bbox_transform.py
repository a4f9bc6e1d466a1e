from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from loguru import logger

from bgremoval.core.errors import OutOfBoundsBox
from bgremoval.models.domain import (
    DetectedBox,
    ImageSize,
    ObjectDescription,
    Position,
    Rectangle,
    Size,
)
from bgremoval.services.cropping import validate_rectangle
from bgremoval.utils.numeric import round_half_away_from_zero

NORMALIZED_SCALE = 1000


@dataclass
class BoundingBoxTransformService:
    """
    Convert provider boxes to absolute-pixel rectangles.

    Input boxes are [y_min, x_min, y_max, x_max] on a 0-1000 scale.
    Output rectangles use the same {position, size} shape the cropper
    consumes, labelled with the requested object name they match.
    No clamping: a box whose rounded extent leaves the image is rejected.
    """

    def transform(
        self,
        boxes: Sequence[DetectedBox],
        requested_objects: Sequence[ObjectDescription],
        image_size: ImageSize,
    ) -> list[Rectangle]:
        rectangles: list[Rectangle] = []
        for index, box in enumerate(boxes):
            matched = self.find_matching_object(box.label, requested_objects)
            y_min, x_min, y_max, x_max = box.box_2d

            x = round_half_away_from_zero(x_min / NORMALIZED_SCALE * image_size.width)
            y = round_half_away_from_zero(y_min / NORMALIZED_SCALE * image_size.height)
            w = round_half_away_from_zero((x_max - x_min) / NORMALIZED_SCALE * image_size.width)
            h = round_half_away_from_zero((y_max - y_min) / NORMALIZED_SCALE * image_size.height)

            rect = Rectangle(position=Position(x=x, y=y), size=Size(w=w, h=h), object=matched)
            validate_rectangle(
                rect,
                index,
                image_size.width,
                image_size.height,
                label="Bounding box",
                error_cls=OutOfBoundsBox,
            )

            logger.debug(
                f"Transformed {box.label}: [{y_min}, {x_min}, {y_max}, {x_max}] -> "
                f"{{x: {x}, y: {y}, w: {w}, h: {h}}}"
            )
            rectangles.append(rect)
        return rectangles

    def find_matching_object(
        self,
        label: str,
        requested_objects: Sequence[ObjectDescription],
    ) -> str:
        """
        Resolve a detected label to a requested object name.

        1. case-insensitive exact match
        2. case-insensitive substring, either direction (first in request order)
        3. the detected label itself
        """
        needle = label.lower()

        for obj in requested_objects:
            if obj.name.lower() == needle:
                logger.debug(f"Exact match found: {label} -> {obj.name}")
                return obj.name

        # The provider may translate or paraphrase names
        for obj in requested_objects:
            name = obj.name.lower()
            if name in needle or needle in name:
                logger.debug(f"Partial match found: {label} -> {obj.name}")
                return obj.name

        logger.warning(f"No match found for label: {label}, using as-is")
        return label
