"""Job orchestrator – submits image-to-video jobs and polls them to completion."""

from __future__ import annotations

import base64
import logging
import mimetypes
import threading
from dataclasses import dataclass
from typing import Optional

import config
from errors import UpstreamError, ValidationError
from models import ArtifactKind, TaskStatus
from services.job_manager import JobManager
from services.media_client import MediaGeneratorClient
from services.storage import ArtifactStore, timestamp_ms

logger = logging.getLogger("i2v.orchestrator")


class PollCancelled(Exception):
    """Raised when a poll loop is stopped through its cancellation token."""


@dataclass(frozen=True)
class OrchestratorConfig:
    poll_interval: float = config.POLL_INTERVAL
    max_attempts: int = config.POLL_MAX_ATTEMPTS


@dataclass
class ImageInput:
    """Where the source image comes from: remote URL, local artifact or inline data."""

    image_url: Optional[str]
    original_url: Optional[str] = None
    is_base64: bool = False


@dataclass
class PollOutcome:
    task_id: str
    status: TaskStatus
    video_path: Optional[str] = None
    cover_path: Optional[str] = None
    video_url: Optional[str] = None
    cover_url: Optional[str] = None
    error: Optional[str] = None
    retry_after: Optional[float] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


class JobOrchestrator:
    """
    Drives one generation job at a time through submit -> poll -> download.

    Status transitions come from the remote API. A SUCCESS result is
    downloaded exactly once; afterwards the ledger answers every poll.
    """

    def __init__(
        self,
        client: MediaGeneratorClient,
        store: ArtifactStore,
        manager: JobManager,
        settings: OrchestratorConfig | None = None,
    ) -> None:
        self.client = client
        self.store = store
        self.manager = manager
        self.settings = settings or OrchestratorConfig()
        self._download_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------
    def validate(self, image: ImageInput, prompt: str) -> None:
        if not image.image_url or not (prompt or "").strip():
            raise ValidationError("Image URL and prompt are required")

    def submit(
        self,
        image: ImageInput,
        prompt: str,
        *,
        with_audio: bool = False,
        order_id: str | None = None,
    ) -> dict:
        """
        Start a video job for ``image`` animated according to ``prompt``.

        Returns {"task_id", "request_id", "model", "task_status"}.
        """
        self.validate(image, prompt)
        image_ref = self._package_image(image)

        result = self.client.generate_video(image_ref, prompt, with_audio=with_audio)
        task_id = str(result["id"])
        status = TaskStatus.from_remote(result.get("task_status"))

        self.manager.create_job(
            task_id,
            prompt,
            status=status,
            order_id=order_id,
            request_id=result.get("request_id"),
            model=result.get("model"),
        )
        logger.info("Job %s submitted (status=%s, order=%s)", task_id, status.value, order_id)
        return {
            "task_id": task_id,
            "request_id": result.get("request_id"),
            "model": result.get("model"),
            "task_status": status,
        }

    def _package_image(self, image: ImageInput) -> str:
        """Turn the caller's image reference into something the provider accepts."""
        if image.is_base64:
            logger.info("Using inline base64 image data")
            return image.image_url
        if image.original_url:
            logger.info("Using provided original image URL")
            return image.original_url

        ref = image.image_url
        if self.store.is_public_path(ref):
            artifact = self.manager.get_artifact(ref)
            if artifact and artifact.get("source_url"):
                logger.info("Resolved %s to its source URL", ref)
                return artifact["source_url"]
            # Uploaded files have no remote source, send them inline
            path = self.store.resolve(ref)
            mime = mimetypes.guess_type(path.name)[0] or "image/png"
            encoded = base64.b64encode(path.read_bytes()).decode("ascii")
            logger.info("Sending local artifact %s inline (%d bytes)", path.name, path.stat().st_size)
            return f"data:{mime};base64,{encoded}"

        if not ref.startswith(("http://", "https://")):
            raise ValidationError(
                "Could not process the image URL. For local images, please provide the original URL."
            )
        return ref

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------
    def poll_once(self, task_id: str) -> PollOutcome:
        """
        Check a job once.

        PROCESSING: no download, ``retry_after`` is set.
        SUCCESS: result media downloaded (first time only) and local paths returned.
        Anything else: terminal failure.
        """
        job = self.manager.get_job(task_id)
        if job and TaskStatus(job["status"]).is_terminal:
            return _outcome_from_job(job)

        result = self.client.get_video_result(task_id)
        status = TaskStatus.from_remote(result.get("task_status"))
        if job is None:
            # Tasks submitted elsewhere are tracked once the provider knows them
            self.manager.create_job(task_id, "")

        if status is TaskStatus.PROCESSING:
            return PollOutcome(task_id, status, retry_after=self.settings.poll_interval)

        entries = result.get("video_result") or []
        if status is TaskStatus.SUCCESS and entries and entries[0].get("url"):
            return self._finalize(task_id, entries[0])

        error = "Video generation failed"
        logger.error("Job %s ended with remote status %s", task_id, result.get("task_status"))
        self.manager.update_job(task_id, TaskStatus.FAILED, error=error)
        return PollOutcome(task_id, TaskStatus.FAILED, error=error)

    def poll(self, task_id: str, cancel: threading.Event | None = None) -> PollOutcome:
        """
        Poll until the job is terminal.

        Waits ``poll_interval`` between checks on ``cancel``; setting it
        aborts the loop with PollCancelled. A failed status request counts
        as an attempt like a PROCESSING answer; only ``max_attempts`` ends
        the loop early, with a FAILED outcome. Attempts are counted here
        only, so client polls through ``poll_once`` never shorten the limit.
        """
        cancel = cancel or threading.Event()
        job = self.manager.get_job(task_id)
        attempts = job["attempts"] if job else 0
        while True:
            if cancel.is_set():
                raise PollCancelled(task_id)
            try:
                outcome = self.poll_once(task_id)
            except UpstreamError as e:
                logger.warning("Job %s: status check failed (%s), will retry", task_id, e)
            else:
                if outcome.is_terminal:
                    return outcome
                logger.info("Job %s still processing, polling again in %.0fs", task_id, outcome.retry_after)

            attempts += 1
            self.manager.increment_attempts(task_id)
            if attempts >= self.settings.max_attempts:
                error = f"Timed out after {attempts} status checks"
                logger.warning("Job %s: %s", task_id, error)
                self.manager.update_job(task_id, TaskStatus.FAILED, error=error)
                return PollOutcome(task_id, TaskStatus.FAILED, error=error)
            if cancel.wait(timeout=self.settings.poll_interval):
                raise PollCancelled(task_id)

    def _finalize(self, task_id: str, entry: dict) -> PollOutcome:
        with self._download_lock:
            job = self.manager.get_job(task_id)
            if job and job["status"] == TaskStatus.SUCCESS.value:
                return _outcome_from_job(job)

            video_url = entry["url"]
            cover_url = entry.get("cover_image_url")
            ts = timestamp_ms()

            logger.info("Job %s succeeded, saving video and cover image…", task_id)
            video_path = self.store.save_video(video_url, f"video_{ts}.mp4")
            self.manager.record_artifact(video_path, video_url, ArtifactKind.VIDEO)
            cover_path = None
            if cover_url:
                cover_path = self.store.save_image(cover_url, f"cover_{ts}.png")
                self.manager.record_artifact(cover_path, cover_url, ArtifactKind.IMAGE)

            self.manager.update_job(
                task_id,
                TaskStatus.SUCCESS,
                video_url=video_url,
                cover_url=cover_url,
                video_path=video_path,
                cover_path=cover_path,
            )
            logger.info("Job %s complete: %s", task_id, video_path)
            return PollOutcome(
                task_id,
                TaskStatus.SUCCESS,
                video_path=video_path,
                cover_path=cover_path,
                video_url=video_url,
                cover_url=cover_url,
            )


def _outcome_from_job(job: dict) -> PollOutcome:
    return PollOutcome(
        task_id=job["task_id"],
        status=TaskStatus(job["status"]),
        video_path=job.get("video_path"),
        cover_path=job.get("cover_path"),
        video_url=job.get("video_url"),
        cover_url=job.get("cover_url"),
        error=job.get("error"),
    )
