"""
Remote media generator client — image and video generation provider.

Endpoints (relative to MEDIA_API_BASE):
  POST /images/generations   synchronous text-to-image
  POST /videos/generations   asynchronous image-to-video, returns a task id
  GET  /async-result/{id}    status / result of a video task
"""

from __future__ import annotations

import logging
from typing import Any

import requests

import config
from errors import UpstreamError

logger = logging.getLogger("i2v.media_client")


class MediaGeneratorClient:
    """Bearer-token client for the image/video generation API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = config.MEDIA_API_BASE,
        *,
        image_model: str = config.IMAGE_MODEL,
        video_model: str = config.VIDEO_MODEL,
        timeout: float = config.REQUEST_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.image_model = image_model
        self.video_model = video_model
        self.timeout = timeout
        self._session = session or requests.Session()
        if not api_key:
            logger.warning("ZHIPUAI_API_KEY is not set. Generation requests will fail.")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def generate_image(self, prompt: str, image_size: str | None = None) -> dict:
        """
        Generate an image from a text prompt.

        Returns {"images": [url, ...], "created": <unix ts>}.
        """
        body = {
            "model": self.image_model,
            "prompt": prompt,
            "size": image_size or config.DEFAULT_IMAGE_SIZE,
            "quality": "standard",
        }
        logger.info("Generating image: '%.60s' (%s)", prompt, body["size"])
        data = self._request("POST", "/images/generations", json=body)
        images = [item["url"] for item in data.get("data") or [] if item.get("url")]
        return {"images": images, "created": data.get("created")}

    def generate_video(self, image_ref: str, prompt: str, *, with_audio: bool = False) -> dict:
        """
        Start an image-to-video task.

        ``image_ref`` is either a remote URL or inline base64 image data; the
        provider accepts both in the same field. Returns the provider payload
        ({"id", "request_id", "model", "task_status"}).
        """
        body = {
            "model": self.video_model,
            "prompt": prompt,
            "image_url": image_ref,
            "with_audio": with_audio,
        }
        logger.info(
            "Submitting video task: image=%s prompt='%.60s' audio=%s",
            _describe_image_ref(image_ref), prompt, with_audio,
        )
        data = self._request("POST", "/videos/generations", json=body)
        if not data.get("id"):
            raise UpstreamError("Video generation response did not include a task id")
        logger.info("Video task %s accepted (status=%s)", data["id"], data.get("task_status"))
        return data

    def get_video_result(self, task_id: str) -> dict:
        """Return the provider's view of a video task (status + results)."""
        data = self._request("GET", f"/async-result/{task_id}")
        logger.debug("Task %s status: %s", task_id, data.get("task_status"))
        return data

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _request(self, method: str, path: str, **kwargs: Any) -> dict:
        if not self.api_key:
            raise UpstreamError("ZHIPUAI_API_KEY is not set")

        headers = {"Authorization": f"Bearer {self.api_key}"}
        if "json" in kwargs:
            headers["Content-Type"] = "application/json"

        url = f"{self.base_url}{path}"
        try:
            resp = self._session.request(
                method, url, headers=headers, timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            logger.error("%s %s failed: %s", method, path, e)
            raise UpstreamError(f"Generation service unreachable: {e}") from e

        if not resp.ok:
            message = _provider_message(resp)
            logger.error("%s %s returned %d: %s", method, path, resp.status_code, message)
            raise UpstreamError(message, provider_status=resp.status_code)

        try:
            return resp.json()
        except ValueError as e:
            raise UpstreamError("Generation service returned invalid JSON") from e


def _provider_message(resp: requests.Response) -> str:
    """Extract the provider's error message from a failed response."""
    try:
        body = resp.json()
    except ValueError:
        return f"Generation service returned HTTP {resp.status_code}"
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str):
        return error
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"Generation service returned HTTP {resp.status_code}"


def _describe_image_ref(image_ref: str) -> str:
    # Never log inline image payloads
    if image_ref.startswith(("http://", "https://")):
        return image_ref[:50] + ("…" if len(image_ref) > 50 else "")
    return f"<inline {len(image_ref)} chars>"
