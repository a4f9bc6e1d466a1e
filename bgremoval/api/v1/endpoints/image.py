from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import Response
from loguru import logger
from pydantic import TypeAdapter
from starlette.concurrency import run_in_threadpool

from bgremoval.api.v1.forms import (
    attachment,
    check_count,
    parse_bool_flag,
    parse_json_field,
    utc_timestamp,
)
from bgremoval.dependencies.container import Container, get_container
from bgremoval.models.domain import CropResult
from bgremoval.models.schemas import (
    CropMetadataOut,
    CroppedImageOut,
    CropRegionIn,
    CropRegionsResponse,
    DimensionsOut,
    ImageDataOut,
    PositionOut,
    ResponseFormat,
)
from bgremoval.services.packaging import buffer_to_data_url
from bgremoval.utils.timing import timed

router = APIRouter()

_REGIONS = TypeAdapter(list[CropRegionIn])

PNG_RESPONSE = {200: {"content": {"image/png": {}}, "description": "PNG image"}}


@router.post("/remove-background", response_class=Response, responses=PNG_RESPONSE)
async def remove_background(
    file: UploadFile = File(...),
    background_color: str = Form(default="#FFFFFF", alias="backgroundColor"),
    tolerance: int | None = Form(default=None, ge=0, le=255),
    container: Container = Depends(get_container),
) -> Response:
    """
    Remove every pixel matching the background color (hex, rgb(), rgba() or
    named color). Returns a PNG with transparency.
    """
    upload = await container.image_io.read_upload(file)
    color = container.color_parser.parse_color(background_color or "#FFFFFF")
    effective_tolerance = container.settings.tolerance if tolerance is None else tolerance

    logger.info(
        f"Remove-background request: {upload.filename} "
        f"({upload.info.width}x{upload.info.height}), tolerance={effective_tolerance}"
    )

    with timed("Background removal"):
        output = await run_in_threadpool(
            container.background_removal.remove_background,
            upload.data,
            color,
            effective_tolerance,
        )

    return Response(
        content=output,
        media_type="image/png",
        headers=attachment("removed-background", "png"),
    )


@router.post(
    "/crop",
    response_model=CropRegionsResponse,
    responses={200: {"content": {"application/zip": {}}}},
)
async def crop_image(
    file: UploadFile = File(...),
    regions: str = Form(..., description="JSON array of {object?, position:{x,y}, size:{w,h}}"),
    include_background: str = Form(default="true", alias="includeBackground"),
    format: ResponseFormat = Form(default=ResponseFormat.JSON),
    container: Container = Depends(get_container),
):
    """
    Crop one or more regions out of an image. Optionally returns the
    background with every cropped region made transparent.
    """
    settings = container.settings
    upload = await container.image_io.read_upload(file)

    parsed = parse_json_field(regions, _REGIONS, "regions")
    check_count(parsed, "regions", settings.min_crop_regions, settings.max_crop_regions)
    rectangles = [region.to_domain() for region in parsed]
    with_background = parse_bool_flag(include_background)

    logger.info(
        f"Crop request: {upload.filename}, {len(rectangles)} regions, "
        f"includeBackground={with_background}, format={format.value}"
    )

    with timed("Crop regions"):
        result = await run_in_threadpool(
            container.cropping.crop_regions, upload.data, rectangles, with_background
        )

    if format == ResponseFormat.ZIP:
        return await run_in_threadpool(_zip_response, container, result)
    return await run_in_threadpool(_json_response, result)


def _json_response(result: CropResult) -> CropRegionsResponse:
    dims = result.metadata.original_dimensions
    return CropRegionsResponse(
        cropped_images=[
            CroppedImageOut(
                index=region.index,
                object=region.object,
                data=buffer_to_data_url(image),
                position=PositionOut(x=region.position.x, y=region.position.y),
                size=DimensionsOut(width=region.size.w, height=region.size.h),
            )
            for image, region in zip(result.cropped_images, result.metadata.cropped_regions)
        ],
        background_image=(
            ImageDataOut(data=buffer_to_data_url(result.background_image))
            if result.background_image is not None
            else None
        ),
        metadata=CropMetadataOut(
            original_dimensions=DimensionsOut(width=dims.width, height=dims.height),
            total_regions=len(result.cropped_images),
            timestamp=utc_timestamp(),
        ),
    )


def _zip_response(container: Container, result: CropResult) -> Response:
    packaging = container.packaging
    files = [
        (packaging.crop_filename(region.index, region.object), image)
        for image, region in zip(result.cropped_images, result.metadata.cropped_regions)
    ]
    if result.background_image is not None:
        files.append(("background.png", result.background_image))

    dims = result.metadata.original_dimensions
    metadata = {
        "originalDimensions": {"width": dims.width, "height": dims.height},
        "croppedRegions": [
            {
                "index": region.index,
                **({"object": region.object} if region.object is not None else {}),
                "position": {"x": region.position.x, "y": region.position.y},
                "size": {"width": region.size.w, "height": region.size.h},
            }
            for region in result.metadata.cropped_regions
        ],
        "totalRegions": len(result.cropped_images),
        "hasBackground": result.background_image is not None,
        "timestamp": utc_timestamp(),
    }

    archive = packaging.build_zip(files, metadata)
    return Response(
        content=archive,
        media_type="application/zip",
        headers=attachment("cropped-images", "zip"),
    )
