from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from bgremoval.models.domain import ObjectDescription, Position, Rectangle, Size


class CamelModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ResponseFormat(str, Enum):
    JSON = "json"
    ZIP = "zip"


# ---- Requests ----

class PositionIn(BaseModel):
    x: int = Field(ge=0, le=65535, description="X coordinate (left edge)")
    y: int = Field(ge=0, le=65535, description="Y coordinate (top edge)")


class SizeIn(BaseModel):
    w: int = Field(ge=1, le=65535, description="Width of crop region")
    h: int = Field(ge=1, le=65535, description="Height of crop region")


class CropRegionIn(BaseModel):
    object: str | None = None
    position: PositionIn
    size: SizeIn

    def to_domain(self) -> Rectangle:
        return Rectangle(
            position=Position(x=self.position.x, y=self.position.y),
            size=Size(w=self.size.w, h=self.size.h),
            object=self.object,
        )


class ObjectDescriptionIn(BaseModel):
    name: str = Field(min_length=1)
    description: str = Field(min_length=1)

    def to_domain(self) -> ObjectDescription:
        return ObjectDescription(name=self.name, description=self.description)


# ---- Shared response pieces ----

class PositionOut(BaseModel):
    x: int
    y: int


class DimensionsOut(BaseModel):
    width: int
    height: int


class ImageDataOut(BaseModel):
    data: str  # base64 data URL


# ---- Crop ----

class CroppedImageOut(CamelModel):
    index: int
    object: str | None = None
    data: str
    position: PositionOut
    size: DimensionsOut


class CropMetadataOut(CamelModel):
    original_dimensions: DimensionsOut
    total_regions: int
    timestamp: str


class CropRegionsResponse(CamelModel):
    cropped_images: list[CroppedImageOut] = Field(default_factory=list)
    background_image: ImageDataOut | None = None
    metadata: CropMetadataOut


# ---- Detection ----

class BoxSizeOut(BaseModel):
    w: int
    h: int


class BoundingBoxOut(BaseModel):
    object: str
    position: PositionOut
    size: BoxSizeOut


class DetectBoundingBoxesResponse(CamelModel):
    bounding_boxes: list[BoundingBoxOut] = Field(default_factory=list)
    total_detected: int
    timestamp: str


# ---- Segmentation ----

class SegmentationMaskOut(BaseModel):
    index: int
    data: str


class SegmentationMetadataOut(CamelModel):
    original_dimensions: DimensionsOut
    total_individual_masks: int
    points_per_side: int
    pred_iou_thresh: float | None = None
    stability_score_thresh: float | None = None
    # to_camel would render this as useM2M
    use_m2m: bool | None = Field(default=None, alias="useM2m")
    timestamp: str
    processing_time_ms: int


class SegmentationResponse(CamelModel):
    combined_mask: ImageDataOut
    individual_masks: list[SegmentationMaskOut] = Field(default_factory=list)
    metadata: SegmentationMetadataOut


class HealthResponse(BaseModel):
    status: str
