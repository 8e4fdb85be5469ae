"""Pydantic models for API request/response schemas."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TaskStatus(str, Enum):
    PROCESSING = "PROCESSING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"

    @classmethod
    def from_remote(cls, value: Optional[str]) -> "TaskStatus":
        """Map a provider status string; anything unknown is a failure."""
        if value == cls.PROCESSING.value:
            return cls.PROCESSING
        if value == cls.SUCCESS.value:
            return cls.SUCCESS
        return cls.FAILED

    @property
    def is_terminal(self) -> bool:
        return self is not TaskStatus.PROCESSING


class OrderStatus(str, Enum):
    CREATED = "CREATED"
    APPROVED = "APPROVED"
    CAPTURED = "CAPTURED"
    FAILED = "FAILED"


class ArtifactKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------
class GenerateImageRequest(_CamelModel):
    prompt: str = ""
    image_size: Optional[str] = Field(default=None, alias="imageSize")


class GenerateVideoRequest(_CamelModel):
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    original_url: Optional[str] = Field(default=None, alias="originalUrl")
    is_base64: bool = Field(default=False, alias="isBase64")
    prompt: str = ""
    with_audio: bool = Field(default=False, alias="withAudio")
    order_id: Optional[str] = Field(default=None, alias="orderId")


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------
class GenerateImageResponse(_CamelModel):
    success: bool = True
    image_url: str = Field(alias="imageUrl")
    original_url: str = Field(alias="originalUrl")
    created: Optional[int] = None


class GenerateVideoResponse(_CamelModel):
    success: bool = True
    task_id: str = Field(alias="taskId")
    request_id: Optional[str] = Field(default=None, alias="requestId")
    model: Optional[str] = None
    task_status: TaskStatus = Field(alias="taskStatus")


class VideoStatusResponse(_CamelModel):
    success: bool
    task_status: TaskStatus = Field(alias="taskStatus")
    message: Optional[str] = None
    error: Optional[str] = None
    video_url: Optional[str] = Field(default=None, alias="videoUrl")
    cover_image_url: Optional[str] = Field(default=None, alias="coverImageUrl")
    original_video_url: Optional[str] = Field(default=None, alias="originalVideoUrl")
    original_cover_url: Optional[str] = Field(default=None, alias="originalCoverUrl")


class UploadResponse(_CamelModel):
    success: bool = True
    image_url: str = Field(alias="imageUrl")
    original_filename: str = Field(alias="originalFilename")
    size: int
    type: str


class CreateOrderResponse(_CamelModel):
    success: bool = True
    order_id: str = Field(alias="orderId")
    approval_url: str = Field(alias="approvalUrl")


class ArtifactResponse(_CamelModel):
    filename: str
    path: str
    type: ArtifactKind
    size: int
    created_at: str = Field(alias="createdAt")
