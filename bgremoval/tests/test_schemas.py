from bgremoval.models.schemas import DimensionsOut, SegmentationMetadataOut


def make_metadata(**overrides) -> SegmentationMetadataOut:
    values = dict(
        original_dimensions=DimensionsOut(width=4, height=3),
        total_individual_masks=2,
        points_per_side=32,
        pred_iou_thresh=0.88,
        stability_score_thresh=0.95,
        use_m2m=False,
        timestamp="2024-01-01T00:00:00.000Z",
        processing_time_ms=12,
    )
    values.update(overrides)
    return SegmentationMetadataOut(**values)


def test_segmentation_metadata_wire_keys():
    dumped = make_metadata().model_dump(by_alias=True)
    assert list(dumped) == [
        "originalDimensions",
        "totalIndividualMasks",
        "pointsPerSide",
        "predIouThresh",
        "stabilityScoreThresh",
        "useM2m",
        "timestamp",
        "processingTimeMs",
    ]
    assert dumped["useM2m"] is False


def test_segmentation_metadata_accepts_wire_keys():
    parsed = SegmentationMetadataOut.model_validate(make_metadata().model_dump(by_alias=True))
    assert parsed.use_m2m is False
