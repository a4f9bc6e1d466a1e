from __future__ import annotations

import base64
import binascii
import json
import re
from dataclasses import dataclass
from typing import Any, Sequence

import httpx
from loguru import logger
from starlette.concurrency import run_in_threadpool

from bgremoval.core.errors import AppError, DependencyError, UpstreamTimeout
from bgremoval.models.domain import DetectedBox, ObjectDescription, RasterInfo
from bgremoval.services.raster import RasterCodec

SUPPORTED_ASPECT_RATIOS: list[tuple[str, float]] = [
    ("1:1", 1 / 1),
    ("2:3", 2 / 3),
    ("3:2", 3 / 2),
    ("3:4", 3 / 4),
    ("4:3", 4 / 3),
    ("9:16", 9 / 16),
    ("16:9", 16 / 9),
    ("21:9", 21 / 9),
]

KEY_COLORS = ("#00FF00", "#0000FF", "#FF00FF")

_DATA_URL_PREFIX = re.compile(r"^data:image/\w+;base64,")
_JSON_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


def nearest_aspect_ratio(width: int, height: int) -> str:
    ratio = width / height
    return min(SUPPORTED_ASPECT_RATIOS, key=lambda option: abs(ratio - option[1]))[0]


def nearest_image_size(width: int, height: int) -> str:
    longest = max(width, height)
    if longest <= 1536:
        return "1K"
    if longest <= 3072:
        return "2K"
    return "4K"


def build_detection_prompt(objects: Sequence[ObjectDescription]) -> str:
    listing = "\n".join(
        f"- {i + 1}: {obj.name}. Description: {obj.description}."
        for i, obj in enumerate(objects)
    )
    return f"""Analyse the attached image.
Task 1: find the bounding box of each main object:

{listing}

Each bounding box must be as tight as possible while still containing:
- the whole body of the object,
- its shadow on the ground,
- anything that both overlaps the object and is partly covered by it.

Task 2: find the bounding box of every foreground item covering any part of the objects above.
The box must contain the whole foreground item.

Return ONLY a JSON array with this structure:
[
  {{
    "label": "object name (for a main object) or the foreground item's name",
    "type": "'object' for a main object, 'cover' for a foreground item",
    "box_2d": [y_min, x_min, y_max, x_max]
  }}
]

box_2d values must be integers in [0, 1000] (normalized coordinates)."""


def build_isolation_prompt(object_name: str, object_description: str | None) -> str:
    subject = f"{object_name} {object_description}" if object_description else object_name
    return (
        f'Input: focus on the main subject: "{subject}".\n'
        f"Goal: isolate this subject on its own layer, remove everything that does not "
        f"belong to it and restore any parts hidden in the original. Set the background "
        f"to one of {', '.join(KEY_COLORS)}, whichever does not occur in the subject.\n"
        f"Output: the complete subject with no other objects. The output size must match "
        f"the input exactly."
    )


def parse_bounding_boxes(payload: Any) -> list[DetectedBox]:
    """Validate the provider's JSON array and convert it to DetectedBox values."""
    if not isinstance(payload, list):
        raise DependencyError("Invalid Gemini response: expected array of bounding boxes")

    boxes: list[DetectedBox] = []
    for index, item in enumerate(payload):
        if not isinstance(item, dict):
            raise DependencyError(f"Invalid bounding box {index}: expected object")

        label = item.get("label")
        if not isinstance(label, str) or not label:
            raise DependencyError(f"Invalid bounding box {index}: missing or invalid label")

        coords = item.get("box_2d")
        if not isinstance(coords, list) or len(coords) != 4:
            raise DependencyError(
                f"Invalid bounding box {index}: box_2d must be array of 4 numbers"
            )
        if not all(
            isinstance(c, (int, float)) and not isinstance(c, bool) and 0 <= c <= 1000
            for c in coords
        ):
            raise DependencyError(
                f"Invalid bounding box {index}: coordinates must be numbers in range [0, 1000]"
            )

        box_type = item.get("type", "object")
        boxes.append(
            DetectedBox(
                label=label,
                box_2d=(coords[0], coords[1], coords[2], coords[3]),
                type=box_type if box_type in ("object", "cover") else "object",
            )
        )
    return boxes


@dataclass
class GeminiService:
    """
    Gemini REST client for bounding-box detection and object isolation.

    No retries: timeouts raise UpstreamTimeout, everything else DependencyError.
    """
    http: httpx.AsyncClient
    codec: RasterCodec
    api_key: str | None
    model: str = "gemini-2.5-flash"
    image_model: str = "gemini-2.5-flash-image"
    timeout_ms: int = 60000
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"

    async def detect_bounding_boxes(
        self,
        image: bytes,
        objects: Sequence[ObjectDescription],
        mime_type: str,
    ) -> list[DetectedBox]:
        prompt = build_detection_prompt(objects)
        logger.debug(f"Detection prompt: {prompt}")
        logger.info(f"Calling Gemini API with model: {self.model}, timeout: {self.timeout_ms}ms")

        response = await self._generate(
            self.model,
            prompt,
            image,
            mime_type,
            {"responseMimeType": "application/json", "temperature": 0.1},
        )

        text = _JSON_FENCE.sub("", self._response_text(response).strip()) or "[]"
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            raise DependencyError(f"Failed to detect bounding boxes: invalid JSON ({e})") from e

        boxes = parse_bounding_boxes(payload)
        logger.info(f"Detected {len(boxes)} objects")
        return boxes

    async def isolate_object(
        self,
        image: bytes,
        object_name: str,
        object_description: str | None,
        mime_type: str,
    ) -> bytes:
        source = await run_in_threadpool(self.codec.describe, image)
        aspect_ratio = nearest_aspect_ratio(source.width, source.height)
        image_size = nearest_image_size(source.width, source.height)
        logger.info(
            f"Image config: {source.width}x{source.height} -> "
            f"aspectRatio={aspect_ratio}, imageSize={image_size}"
        )

        prompt = build_isolation_prompt(object_name, object_description)
        logger.debug(f"Isolation prompt: {prompt}")
        logger.info(
            f"Calling Gemini image generation with model: {self.image_model}, "
            f"timeout: {self.timeout_ms}ms"
        )

        response = await self._generate(
            self.image_model,
            prompt,
            image,
            mime_type,
            {
                "temperature": 0.7,
                "responseModalities": ["IMAGE"],
                "imageConfig": {"aspectRatio": aspect_ratio, "imageSize": image_size},
            },
        )

        raw = self._response_image(response)
        png, output = await run_in_threadpool(self._reencode_png, raw)
        if (output.width, output.height) != (source.width, source.height):
            logger.warning(
                f"Dimension mismatch: input {source.width}x{source.height}, "
                f"output {output.width}x{output.height}. Gemini may have adjusted based on "
                f"aspectRatio={aspect_ratio}, imageSize={image_size}"
            )
        logger.info(f"Generated isolated object image ({output.width}x{output.height})")
        return png

    async def _generate(
        self,
        model: str,
        prompt: str,
        image: bytes,
        mime_type: str,
        generation_config: dict[str, Any],
    ) -> dict[str, Any]:
        if not self.api_key:
            raise DependencyError("Gemini is not configured (GEMINI_API_KEY is missing)")

        payload = {
            "contents": [
                {
                    "parts": [
                        {"text": prompt},
                        {
                            "inlineData": {
                                "mimeType": mime_type,
                                "data": base64.b64encode(image).decode("utf-8"),
                            }
                        },
                    ]
                }
            ],
            "generationConfig": generation_config,
        }

        try:
            response = await self.http.post(
                f"{self.base_url.rstrip('/')}/models/{model}:generateContent",
                json=payload,
                headers={"x-goog-api-key": self.api_key},
                timeout=self.timeout_ms / 1000,
            )
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as e:
            logger.error(f"Gemini API timeout after {self.timeout_ms}ms")
            raise UpstreamTimeout(f"Gemini API request timed out after {self.timeout_ms}ms") from e
        except httpx.HTTPStatusError as e:
            logger.error(f"Gemini API error {e.response.status_code}: {e.response.text}")
            raise DependencyError(f"Gemini API error: HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Gemini API request error: {e}")
            raise DependencyError(f"Gemini API request failed: {e}") from e
        except ValueError as e:
            raise DependencyError(f"Gemini API returned invalid JSON: {e}") from e

    def _reencode_png(self, raw: bytes) -> tuple[bytes, RasterInfo]:
        try:
            png = self.codec.encode(self.codec.decode(raw))
        except AppError as e:
            raise DependencyError(f"Failed to crop object: unreadable image from Gemini ({e})") from e
        return png, self.codec.describe(png)

    @staticmethod
    def _parts(response: dict[str, Any]) -> list[dict[str, Any]]:
        candidates = response.get("candidates") or []
        if not candidates:
            return []
        content = candidates[0].get("content") or {}
        return content.get("parts") or []

    def _response_text(self, response: dict[str, Any]) -> str:
        return "".join(p["text"] for p in self._parts(response) if isinstance(p.get("text"), str))

    def _response_image(self, response: dict[str, Any]) -> bytes:
        encoded: str | None = None
        for part in self._parts(response):
            inline = part.get("inlineData") or part.get("inline_data")
            if inline and inline.get("data"):
                encoded = inline["data"]
                break

        if encoded is None:
            # Some responses carry the image as base64 text
            text = self._response_text(response).strip()
            encoded = _DATA_URL_PREFIX.sub("", text)

        if not isinstance(encoded, str) or not encoded:
            logger.error(f"Unexpected Gemini response structure: {json.dumps(response)[:2000]}")
            raise DependencyError("Invalid response format from Gemini - no image data found")

        try:
            data = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DependencyError("Invalid base64 data format from Gemini") from e
        if not data:
            raise DependencyError("Received empty image data from Gemini")
        return data
