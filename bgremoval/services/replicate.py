from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any

import httpx
from loguru import logger

from bgremoval.core.errors import DependencyError, UpstreamTimeout
from bgremoval.models.domain import Sam2Output, Sam2Params


def parse_sam2_output(output: Any) -> Sam2Output:
    if not isinstance(output, dict):
        raise ValueError("Invalid response from Replicate API: expected object")

    combined = output.get("combined_mask")
    individual = output.get("individual_masks")

    if not isinstance(combined, str) or not combined:
        raise ValueError("Invalid response: missing or invalid combined_mask")
    if not isinstance(individual, list):
        raise ValueError("Invalid response: individual_masks must be an array")
    for idx, mask in enumerate(individual):
        if not isinstance(mask, str) or not mask.startswith("http"):
            raise ValueError(f"Invalid mask URL at index {idx}: {mask}")

    return Sam2Output(combined_mask=combined, individual_masks=list(individual))


def is_retryable(error: Exception) -> bool:
    """Client errors (4xx other than 429) fail the same way on every attempt."""
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return status == 429 or not 400 <= status < 500
    return True


@dataclass
class ReplicateService:
    """
    SAM 2 automatic segmentation via the Replicate predictions API.

    A prediction is created and polled to completion. The whole
    create+poll cycle is retried with exponential backoff
    (initial_backoff_seconds * 2**attempt); the last failure is raised
    as DependencyError. Client errors (4xx except 429) and a prediction
    that outlives max_wait_seconds are not retried.
    """
    http: httpx.AsyncClient
    api_token: str | None
    model_version: str
    base_url: str = "https://api.replicate.com/v1"
    max_retries: int = 3
    initial_backoff_seconds: float = 1.0
    max_wait_seconds: float = 120
    poll_interval_seconds: float = 1.0
    request_timeout_seconds: float = 30

    async def run_sam2_segmentation(self, image: str, params: Sam2Params) -> Sam2Output:
        """``image`` is a data URL or a public URL of the source image."""
        if not self.api_token:
            raise DependencyError("Replicate is not configured (REPLICATE_API_TOKEN is missing)")

        logger.info(
            f"Starting SAM 2 automatic segmentation (points_per_side: {params.points_per_side})"
        )
        output = await self._run_with_retry(image, params)
        logger.info(
            f"SAM 2 segmentation completed: 1 combined mask, "
            f"{len(output.individual_masks)} individual masks"
        )
        return output

    async def download_mask(self, url: str) -> bytes:
        try:
            response = await self.http.get(url, timeout=self.request_timeout_seconds)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to download mask from {url}: {e}")
            raise DependencyError(f"Mask download failed: {e}") from e
        return response.content

    async def _run_with_retry(self, image: str, params: Sam2Params) -> Sam2Output:
        last_error: Exception | None = None

        for attempt in range(self.max_retries):
            try:
                return await self._predict(image, params)
            except UpstreamTimeout:
                # the poll already waited max_wait_seconds
                raise
            except (httpx.HTTPError, ValueError, RuntimeError) as e:
                if not is_retryable(e):
                    logger.error(f"SAM 2 segmentation rejected (no retry): {e}")
                    raise DependencyError(f"Replicate API error: {e}") from e
                last_error = e
                if attempt < self.max_retries - 1:
                    backoff = self.initial_backoff_seconds * (2 ** attempt)
                    logger.warning(
                        f"Attempt {attempt + 1} failed, retrying in {backoff:.2f}s: {e}"
                    )
                    await asyncio.sleep(backoff)

        logger.error(f"SAM 2 segmentation failed after {self.max_retries} attempts: {last_error}")
        if isinstance(last_error, httpx.TimeoutException):
            raise UpstreamTimeout(f"Replicate API error: {last_error}") from last_error
        raise DependencyError(f"Replicate API error: {last_error}") from last_error

    async def _predict(self, image: str, params: Sam2Params) -> Sam2Output:
        headers = {"Authorization": f"Bearer {self.api_token}"}
        payload = {
            "version": self.model_version,
            "input": {
                "image": image,
                "points_per_side": params.points_per_side,
                "pred_iou_thresh": params.pred_iou_thresh,
                "stability_score_thresh": params.stability_score_thresh,
                "use_m2m": params.use_m2m,
            },
        }

        response = await self.http.post(
            f"{self.base_url.rstrip('/')}/predictions",
            json=payload,
            headers=headers,
            timeout=self.request_timeout_seconds,
        )
        response.raise_for_status()
        prediction = response.json()

        prediction_id = prediction.get("id")
        if not prediction_id:
            raise ValueError("Invalid response from Replicate API: no prediction id")
        logger.debug(f"Replicate prediction submitted: {prediction_id}")

        poll_url = (prediction.get("urls") or {}).get("get") or (
            f"{self.base_url.rstrip('/')}/predictions/{prediction_id}"
        )
        start_time = time.monotonic()
        poll_count = 0

        while True:
            status = prediction.get("status")

            if status == "succeeded":
                elapsed = time.monotonic() - start_time
                logger.info(f"Replicate prediction completed in {elapsed:.2f}s ({poll_count} polls)")
                return parse_sam2_output(prediction.get("output"))

            if status in ("failed", "canceled"):
                raise RuntimeError(
                    f"Prediction {prediction_id} {status}: {prediction.get('error') or 'Unknown error'}"
                )

            if time.monotonic() - start_time >= self.max_wait_seconds:
                raise UpstreamTimeout(
                    f"Prediction {prediction_id} did not finish within {self.max_wait_seconds}s"
                )

            await asyncio.sleep(self.poll_interval_seconds)
            poll_count += 1
            response = await self.http.get(
                poll_url, headers=headers, timeout=self.request_timeout_seconds
            )
            response.raise_for_status()
            prediction = response.json()
