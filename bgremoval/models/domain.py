from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class RGBColor:
    r: int
    g: int
    b: int


@dataclass(frozen=True)
class Position:
    x: int
    y: int


@dataclass(frozen=True)
class Size:
    w: int
    h: int


@dataclass(frozen=True)
class Rectangle:
    """Axis-aligned region in absolute pixel coordinates, optionally labelled."""
    position: Position
    size: Size
    object: str | None = None


@dataclass(frozen=True)
class ImageSize:
    width: int
    height: int


@dataclass(frozen=True)
class RasterInfo:
    width: int
    height: int
    has_alpha: bool
    format: str | None


@dataclass(frozen=True)
class CroppedRegion:
    index: int
    position: Position
    size: Size
    object: str | None = None


@dataclass(frozen=True)
class CropMetadata:
    original_dimensions: ImageSize
    cropped_regions: list[CroppedRegion] = field(default_factory=list)


@dataclass(frozen=True)
class CropResult:
    # cropped_images[i] always corresponds to metadata.cropped_regions[i]
    cropped_images: list[bytes]
    background_image: bytes | None
    metadata: CropMetadata


@dataclass(frozen=True)
class ObjectDescription:
    name: str
    description: str


@dataclass(frozen=True)
class DetectedBox:
    label: str
    box_2d: tuple[int, int, int, int]  # y_min, x_min, y_max, x_max on a 0-1000 scale
    type: str = "object"  # "object" or "cover"


@dataclass(frozen=True)
class Sam2Params:
    points_per_side: int = 32
    pred_iou_thresh: float = 0.88
    stability_score_thresh: float = 0.95
    use_m2m: bool = True


@dataclass(frozen=True)
class Sam2Output:
    combined_mask: str
    individual_masks: list[str] = field(default_factory=list)
