from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import Response
from loguru import logger
from pydantic import TypeAdapter

from bgremoval.api.v1.forms import attachment, check_count, parse_json_field, utc_timestamp
from bgremoval.dependencies.container import Container, get_container
from bgremoval.models.domain import ImageSize
from bgremoval.models.schemas import (
    BoundingBoxOut,
    BoxSizeOut,
    DetectBoundingBoxesResponse,
    ObjectDescriptionIn,
    PositionOut,
)
from bgremoval.utils.timing import timed

router = APIRouter()

_OBJECTS = TypeAdapter(list[ObjectDescriptionIn])


@router.post("/detect-bounding-boxes", response_model=DetectBoundingBoxesResponse)
async def detect_bounding_boxes(
    file: UploadFile = File(...),
    objects: str = Form(..., description="JSON array of {name, description}"),
    container: Container = Depends(get_container),
) -> DetectBoundingBoxesResponse:
    """
    Locate the described objects with the vision provider and return their
    boxes in absolute pixels, labelled with the requested names.
    """
    upload = await container.image_io.read_upload(file)

    parsed = parse_json_field(objects, _OBJECTS, "objects")
    check_count(parsed, "objects", 1, container.settings.max_detect_objects)
    requested = [obj.to_domain() for obj in parsed]

    logger.info(f"Detection request for {upload.filename}: {[o.name for o in requested]}")

    with timed("Gemini detection"):
        boxes = await container.gemini.detect_bounding_boxes(
            upload.data, requested, upload.content_type
        )

    rectangles = container.bbox_transform.transform(
        boxes,
        requested,
        ImageSize(width=upload.info.width, height=upload.info.height),
    )

    return DetectBoundingBoxesResponse(
        bounding_boxes=[
            BoundingBoxOut(
                object=rect.object or "",
                position=PositionOut(x=rect.position.x, y=rect.position.y),
                size=BoxSizeOut(w=rect.size.w, h=rect.size.h),
            )
            for rect in rectangles
        ],
        total_detected=len(rectangles),
        timestamp=utc_timestamp(),
    )


@router.post(
    "/crop-object",
    response_class=Response,
    responses={200: {"content": {"image/png": {}}, "description": "PNG image"}},
)
async def crop_object(
    file: UploadFile = File(...),
    object_name: str = Form(..., alias="objectName", min_length=1),
    object_description: str | None = Form(default=None, alias="objectDescription"),
    container: Container = Depends(get_container),
) -> Response:
    """
    Ask the generation provider to isolate one object on a flat key color
    (#00FF00, #0000FF or #FF00FF). The result can be fed to remove-background.
    """
    upload = await container.image_io.read_upload(file)
    description = (object_description or "").strip() or None

    logger.info(f"Crop-object request for {upload.filename}: {object_name!r}")

    with timed("Gemini object isolation"):
        png = await container.gemini.isolate_object(
            upload.data, object_name.strip(), description, upload.content_type
        )

    return Response(
        content=png,
        media_type="image/png",
        headers=attachment("cropped-object", "png"),
    )
