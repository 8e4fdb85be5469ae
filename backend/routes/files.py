"""API routes for uploaded and generated files."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, File, Query, Request, UploadFile

import config
from errors import ValidationError
from models import ArtifactKind, ArtifactResponse, UploadResponse
from services.storage import ArtifactStore

router = APIRouter()


def _store(request: Request) -> ArtifactStore:
    return request.app.state.orchestrator.store


# ---------------------------------------------------------------------------
# POST /api/upload
# ---------------------------------------------------------------------------
@router.post("/upload", response_model=UploadResponse)
async def upload_image(request: Request, image: Optional[UploadFile] = File(None)):
    """Upload an image to animate."""
    if image is None or not image.filename:
        raise ValidationError("No file uploaded")

    content_type = image.content_type or ""
    if not content_type.startswith("image/"):
        raise ValidationError("File must be an image")

    content = await image.read()
    if len(content) > config.MAX_UPLOAD_BYTES:
        raise ValidationError(
            f"File size must be less than {config.MAX_UPLOAD_BYTES // (1024 * 1024)}MB"
        )

    store = _store(request)
    public_path = store.save_upload(content, image.filename)
    request.app.state.orchestrator.manager.record_artifact(public_path, None, ArtifactKind.IMAGE)

    return UploadResponse(
        image_url=public_path,
        original_filename=image.filename,
        size=len(content),
        type=content_type,
    )


# ---------------------------------------------------------------------------
# GET /api/list-images
# ---------------------------------------------------------------------------
@router.get("/list-images", response_model=list[str])
async def list_images(request: Request, directory: Optional[str] = Query(None, alias="dir")):
    """List cached image filenames."""
    if directory not in (None, "", "generated"):
        raise ValidationError(f"Unknown directory '{directory}'")
    return _store(request).list_images()


# ---------------------------------------------------------------------------
# GET /api/artifacts
# ---------------------------------------------------------------------------
@router.get("/artifacts", response_model=list[ArtifactResponse])
async def list_artifacts(request: Request):
    """List every cached artifact (most recent first)."""
    return [
        ArtifactResponse(
            filename=a["filename"],
            path=a["path"],
            type=a["type"],
            size=a["size"],
            created_at=a["created_at"],
        )
        for a in _store(request).list_artifacts()
    ]
