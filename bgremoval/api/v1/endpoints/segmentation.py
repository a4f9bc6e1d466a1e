from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import Response
from loguru import logger
from starlette.concurrency import run_in_threadpool

from bgremoval.api.v1.forms import attachment, utc_timestamp
from bgremoval.dependencies.container import Container, get_container
from bgremoval.models.domain import Sam2Params
from bgremoval.models.schemas import (
    DimensionsOut,
    ImageDataOut,
    ResponseFormat,
    SegmentationMaskOut,
    SegmentationMetadataOut,
    SegmentationResponse,
)
from bgremoval.services.packaging import buffer_to_data_url
from bgremoval.utils.timing import timed

router = APIRouter()


@router.post(
    "/segment",
    response_model=SegmentationResponse,
    responses={200: {"content": {"application/zip": {}}}},
)
async def segment_image(
    file: UploadFile = File(...),
    points_per_side: int = Form(default=32, ge=1, le=64, alias="pointsPerSide"),
    pred_iou_thresh: float = Form(default=0.88, ge=0, le=1, alias="predIouThresh"),
    stability_score_thresh: float = Form(default=0.95, ge=0, le=1, alias="stabilityScoreThresh"),
    use_m2m: bool = Form(default=True, alias="useM2m"),
    format: ResponseFormat = Form(default=ResponseFormat.JSON),
    container: Container = Depends(get_container),
):
    """
    Automatic SAM 2 segmentation through the hosted model. Returns one
    combined mask plus one mask per detected object.
    """
    upload = await container.image_io.read_upload(file)
    params = Sam2Params(
        points_per_side=points_per_side,
        pred_iou_thresh=pred_iou_thresh,
        stability_score_thresh=stability_score_thresh,
        use_m2m=use_m2m,
    )

    logger.info(f"Segmentation request for {upload.filename} ({params})")

    with timed("SAM 2 segmentation") as timing:
        output = await container.replicate.run_sam2_segmentation(
            buffer_to_data_url(upload.data, upload.content_type), params
        )

        # gather keeps argument order, so masks[i + 1] is individual_masks[i]
        masks = await asyncio.gather(
            container.replicate.download_mask(output.combined_mask),
            *(container.replicate.download_mask(url) for url in output.individual_masks),
        )
    combined, individual = masks[0], list(masks[1:])

    metadata = SegmentationMetadataOut(
        original_dimensions=DimensionsOut(width=upload.info.width, height=upload.info.height),
        total_individual_masks=len(individual),
        points_per_side=params.points_per_side,
        pred_iou_thresh=params.pred_iou_thresh,
        stability_score_thresh=params.stability_score_thresh,
        use_m2m=params.use_m2m,
        timestamp=utc_timestamp(),
        processing_time_ms=int(timing.elapsed_ms),
    )

    if format == ResponseFormat.ZIP:
        return await run_in_threadpool(_zip_response, container, combined, individual, metadata)
    return await run_in_threadpool(_json_response, combined, individual, metadata)


def _json_response(
    combined: bytes, individual: list[bytes], metadata: SegmentationMetadataOut
) -> SegmentationResponse:
    return SegmentationResponse(
        combined_mask=ImageDataOut(data=buffer_to_data_url(combined)),
        individual_masks=[
            SegmentationMaskOut(index=i, data=buffer_to_data_url(data))
            for i, data in enumerate(individual)
        ],
        metadata=metadata,
    )


def _zip_response(
    container: Container,
    combined: bytes,
    individual: list[bytes],
    metadata: SegmentationMetadataOut,
) -> Response:
    files = [("combined_mask.png", combined)]
    files.extend((f"mask_{i}.png", data) for i, data in enumerate(individual))
    archive = container.packaging.build_zip(files, metadata.model_dump(by_alias=True))
    return Response(
        content=archive,
        media_type="application/zip",
        headers=attachment("segmentation", "zip"),
    )
