import asyncio
import base64
import json

import httpx
import pytest

from bgremoval.core.errors import DependencyError, UpstreamTimeout
from bgremoval.models.domain import DetectedBox, ObjectDescription
from bgremoval.services.gemini import (
    GeminiService,
    build_detection_prompt,
    nearest_aspect_ratio,
    nearest_image_size,
    parse_bounding_boxes,
)

OBJECTS = [ObjectDescription(name="boy", description="black hair, barefoot")]


def text_response(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def make_service(codec, handler, api_key="key") -> GeminiService:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GeminiService(http=http, codec=codec, api_key=api_key, timeout_ms=1000)


def test_detect_bounding_boxes_sends_image_and_parses_boxes(codec, make_image):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["key"] = request.headers.get("x-goog-api-key")
        seen["body"] = json.loads(request.content)
        boxes = [{"label": "boy", "type": "object", "box_2d": [100, 200, 600, 700]}]
        return httpx.Response(200, json=text_response(json.dumps(boxes)))

    service = make_service(codec, handler)
    image = make_image(4, 4)

    boxes = asyncio.run(service.detect_bounding_boxes(image, OBJECTS, "image/png"))

    assert boxes == [DetectedBox(label="boy", box_2d=(100, 200, 600, 700), type="object")]
    assert seen["url"].endswith("/models/gemini-2.5-flash:generateContent")
    assert seen["key"] == "key"
    parts = seen["body"]["contents"][0]["parts"]
    assert "boy" in parts[0]["text"]
    assert base64.b64decode(parts[1]["inlineData"]["data"]) == image
    assert seen["body"]["generationConfig"]["responseMimeType"] == "application/json"


def test_detect_accepts_fenced_json(codec, make_image):
    def handler(request):
        return httpx.Response(200, json=text_response('```json\n[{"label": "boy", "box_2d": [0, 0, 10, 10]}]\n```'))

    boxes = asyncio.run(make_service(codec, handler).detect_bounding_boxes(make_image(2, 2), OBJECTS, "image/png"))
    assert boxes[0].label == "boy"


def test_detect_empty_response_means_no_boxes(codec, make_image):
    def handler(request):
        return httpx.Response(200, json={"candidates": []})

    boxes = asyncio.run(make_service(codec, handler).detect_bounding_boxes(make_image(2, 2), OBJECTS, "image/png"))
    assert boxes == []


def test_detect_invalid_json(codec, make_image):
    def handler(request):
        return httpx.Response(200, json=text_response("not json"))

    with pytest.raises(DependencyError):
        asyncio.run(make_service(codec, handler).detect_bounding_boxes(make_image(2, 2), OBJECTS, "image/png"))


def test_http_error_becomes_dependency_error(codec, make_image):
    def handler(request):
        return httpx.Response(500, text="boom")

    with pytest.raises(DependencyError, match="500"):
        asyncio.run(make_service(codec, handler).detect_bounding_boxes(make_image(2, 2), OBJECTS, "image/png"))


def test_timeout_becomes_upstream_timeout(codec, make_image):
    def handler(request):
        raise httpx.ReadTimeout("too slow", request=request)

    with pytest.raises(UpstreamTimeout):
        asyncio.run(make_service(codec, handler).detect_bounding_boxes(make_image(2, 2), OBJECTS, "image/png"))


def test_missing_api_key(codec, make_image):
    def handler(request):
        raise AssertionError("no request expected")

    with pytest.raises(DependencyError, match="GEMINI_API_KEY"):
        asyncio.run(
            make_service(codec, handler, api_key=None).detect_bounding_boxes(make_image(2, 2), OBJECTS, "image/png")
        )


class TestParseBoundingBoxes:
    def test_not_a_list(self):
        with pytest.raises(DependencyError, match="expected array"):
            parse_bounding_boxes({"label": "x"})

    def test_missing_label(self):
        with pytest.raises(DependencyError, match="bounding box 0: missing or invalid label"):
            parse_bounding_boxes([{"box_2d": [0, 0, 1, 1]}])

    def test_wrong_coordinate_count(self):
        with pytest.raises(DependencyError, match="array of 4"):
            parse_bounding_boxes([{"label": "a", "box_2d": [0, 0, 1]}])

    @pytest.mark.parametrize("coords", [[0, 0, 1, 1001], [-1, 0, 1, 1], [0, "1", 2, 3], [0, True, 2, 3]])
    def test_coordinates_out_of_range(self, coords):
        with pytest.raises(DependencyError, match="bounding box 1"):
            parse_bounding_boxes([{"label": "ok", "box_2d": [0, 0, 1, 1]}, {"label": "a", "box_2d": coords}])

    def test_unknown_type_defaults_to_object(self):
        assert parse_bounding_boxes([{"label": "a", "type": "?", "box_2d": [0, 0, 1, 1]}])[0].type == "object"

    def test_cover_type_is_kept(self):
        assert parse_bounding_boxes([{"label": "a", "type": "cover", "box_2d": [0, 0, 1, 1]}])[0].type == "cover"


def test_detection_prompt_lists_every_object():
    prompt = build_detection_prompt(
        [ObjectDescription("boy", "black hair"), ObjectDescription("ball", "red")]
    )
    assert "- 1: boy. Description: black hair." in prompt
    assert "- 2: ball. Description: red." in prompt
    assert "box_2d" in prompt


@pytest.mark.parametrize(
    "size, expected",
    [((1000, 1000), "1:1"), ((1920, 1080), "16:9"), ((1080, 1920), "9:16"), ((2100, 900), "21:9"), ((1200, 900), "4:3")],
)
def test_nearest_aspect_ratio(size, expected):
    assert nearest_aspect_ratio(*size) == expected


@pytest.mark.parametrize("size, expected", [((1536, 100), "1K"), ((1537, 100), "2K"), ((3072, 3072), "2K"), ((100, 3073), "4K")])
def test_nearest_image_size(size, expected):
    assert nearest_image_size(*size) == expected


def test_isolate_object_returns_png(codec, make_image):
    generated = make_image(6, 4, (0, 255, 0), mode="RGB", fmt="JPEG")

    def handler(request):
        body = json.loads(request.content)
        assert request.url.path.endswith("/models/gemini-2.5-flash-image:generateContent")
        assert body["generationConfig"]["imageConfig"] == {"aspectRatio": "3:2", "imageSize": "1K"}
        assert "boy black hair" in body["contents"][0]["parts"][0]["text"]
        data = base64.b64encode(generated).decode()
        return httpx.Response(
            200,
            json={"candidates": [{"content": {"parts": [{"inlineData": {"mimeType": "image/jpeg", "data": data}}]}}]},
        )

    png = asyncio.run(
        make_service(codec, handler).isolate_object(make_image(6, 4), "boy", "black hair", "image/png")
    )

    info = codec.describe(png)
    assert info.format == "PNG"
    assert (info.width, info.height) == (6, 4)


def test_isolate_object_accepts_data_url_text(codec, make_image):
    generated = make_image(2, 2)

    def handler(request):
        return httpx.Response(
            200, json=text_response("data:image/png;base64," + base64.b64encode(generated).decode())
        )

    png = asyncio.run(make_service(codec, handler).isolate_object(make_image(2, 2), "boy", None, "image/png"))
    assert codec.describe(png).format == "PNG"


def test_isolate_object_without_image_data(codec, make_image):
    def handler(request):
        return httpx.Response(200, json={"candidates": [{"content": {"parts": []}}]})

    with pytest.raises(DependencyError, match="no image data"):
        asyncio.run(make_service(codec, handler).isolate_object(make_image(2, 2), "boy", None, "image/png"))


def test_isolate_object_with_undecodable_image(codec, make_image):
    def handler(request):
        return httpx.Response(200, json=text_response(base64.b64encode(b"garbage").decode()))

    with pytest.raises(DependencyError, match="unreadable image"):
        asyncio.run(make_service(codec, handler).isolate_object(make_image(2, 2), "boy", None, "image/png"))


def test_isolate_object_decodes_and_encodes_off_the_event_loop(codec, make_image, record_loop_use):
    generated = make_image(4, 4, (255, 0, 255, 255))

    def handler(request):
        data = base64.b64encode(generated).decode()
        return httpx.Response(
            200,
            json={"candidates": [{"content": {"parts": [{"inlineData": {"mimeType": "image/png", "data": data}}]}}]},
        )

    service = make_service(codec, handler)
    seen = record_loop_use(codec, "describe", "decode", "encode")

    asyncio.run(service.isolate_object(make_image(4, 4), "ball", None, "image/png"))

    assert len(seen) == 4
    assert not any(seen)
