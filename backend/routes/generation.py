"""API routes for image and video generation."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Query, Request

from errors import AppError, ValidationError
from models import (
    ArtifactKind,
    GenerateImageRequest,
    GenerateImageResponse,
    GenerateVideoRequest,
    GenerateVideoResponse,
    TaskStatus,
    VideoStatusResponse,
)
from services.orchestrator import ImageInput, JobOrchestrator
from services.payment_gate import PaymentGate, client_ip
from services.storage import timestamp_ms

router = APIRouter()
logger = logging.getLogger("i2v.routes.generation")


def _orchestrator(request: Request) -> JobOrchestrator:
    return request.app.state.orchestrator


def _gate(request: Request) -> PaymentGate:
    return request.app.state.payment_gate


# ---------------------------------------------------------------------------
# POST /api/generate-image
# ---------------------------------------------------------------------------
@router.post("/generate-image", response_model=GenerateImageResponse)
def generate_image(body: GenerateImageRequest, request: Request):
    """Generate an image from a prompt and cache it locally."""
    if not body.prompt.strip():
        raise ValidationError("Prompt is required")

    orchestrator = _orchestrator(request)
    result = orchestrator.client.generate_image(body.prompt, body.image_size)
    if not result["images"]:
        raise AppError("No images generated")

    original_url = result["images"][0]
    local_path = orchestrator.store.save_image(original_url, f"image_{timestamp_ms()}.png")
    orchestrator.manager.record_artifact(local_path, original_url, ArtifactKind.IMAGE)

    return GenerateImageResponse(
        image_url=local_path,
        original_url=original_url,
        created=result.get("created"),
    )


# ---------------------------------------------------------------------------
# POST /api/generate-video
# ---------------------------------------------------------------------------
@router.post("/generate-video", response_model=GenerateVideoResponse)
def generate_video(body: GenerateVideoRequest, request: Request):
    """Start a paid image-to-video job."""
    orchestrator = _orchestrator(request)
    gate = _gate(request)
    image = ImageInput(
        image_url=body.image_url,
        original_url=body.original_url,
        is_base64=body.is_base64,
    )
    orchestrator.validate(image, body.prompt)

    order_id = gate.reserve(body.order_id, client_ip(request))
    try:
        job = orchestrator.submit(
            image,
            body.prompt,
            with_audio=body.with_audio,
            order_id=order_id,
        )
    except Exception:
        gate.release(order_id)
        raise
    gate.bind(order_id, job["task_id"])

    return GenerateVideoResponse(
        task_id=job["task_id"],
        request_id=job["request_id"],
        model=job["model"],
        task_status=job["task_status"],
    )


# ---------------------------------------------------------------------------
# GET /api/generate-video?taskId=
# ---------------------------------------------------------------------------
@router.get(
    "/generate-video",
    response_model=VideoStatusResponse,
    response_model_exclude_none=True,
)
def get_video_status(request: Request, task_id: Optional[str] = Query(None, alias="taskId")):
    """Check a video job; on success the cached local paths are returned."""
    if not task_id:
        raise ValidationError("Task ID is required")

    outcome = _orchestrator(request).poll_once(task_id)

    if outcome.status is TaskStatus.PROCESSING:
        return VideoStatusResponse(
            success=True,
            task_status=outcome.status,
            message="Video is still being generated",
        )
    if outcome.status is TaskStatus.SUCCESS:
        return VideoStatusResponse(
            success=True,
            task_status=outcome.status,
            video_url=outcome.video_path,
            cover_image_url=outcome.cover_path,
            original_video_url=outcome.video_url,
            original_cover_url=outcome.cover_url,
        )
    return VideoStatusResponse(
        success=False,
        task_status=outcome.status,
        error=outcome.error or "Video generation failed",
    )
