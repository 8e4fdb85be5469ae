"""Local artifact store – caches remote media under the public directory."""

from __future__ import annotations

import logging
import re
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path

import requests

import config
from errors import StorageError, ValidationError
from models import ArtifactKind

logger = logging.getLogger("i2v.storage")

VIDEO_EXTENSIONS = {".mp4", ".webm", ".mov"}
IMAGE_PATTERN = re.compile(r"\.(png|jpe?g|gif|webp)$", re.IGNORECASE)
CHUNK_SIZE = 64 * 1024


def timestamp_ms() -> int:
    return int(time.time() * 1000)


class ArtifactStore:
    """
    Writes downloaded and uploaded media into a single flat directory.

    Every stored file gets a unique name, so two saves of the same URL with
    the same requested filename never overwrite each other.
    """

    def __init__(
        self,
        directory: Path,
        public_prefix: str = config.PUBLIC_PREFIX,
        *,
        timeout: float = config.DOWNLOAD_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        self.directory = Path(directory).resolve()
        self.public_prefix = "/" + public_prefix.strip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        if not self.directory.exists():
            logger.info("Creating storage directory: %s", self.directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Saving
    # ------------------------------------------------------------------
    def save_image(self, remote_url: str, filename: str) -> str:
        """Download an image and return its public path."""
        return self._download(remote_url, filename, ArtifactKind.IMAGE)

    def save_video(self, remote_url: str, filename: str) -> str:
        """Download a video and return its public path."""
        return self._download(remote_url, filename, ArtifactKind.VIDEO)

    def save_upload(self, data: bytes, original_filename: str) -> str:
        """Persist uploaded image bytes as ``uploaded_<ts>.<ext>``."""
        ext = Path(original_filename or "").suffix.lower() or ".png"
        target = self._unique_target(f"uploaded_{timestamp_ms()}{ext}")
        try:
            self._write_atomic(target, [data])
        except OSError as e:
            logger.error("Failed to save upload %s: %s", original_filename, e)
            raise StorageError("Failed to save uploaded file") from e
        logger.info("Upload saved: %s (%d bytes)", target.name, len(data))
        return self.public_path(target.name)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------
    def public_path(self, filename: str) -> str:
        return f"{self.public_prefix}/{filename}"

    def is_public_path(self, value: str) -> bool:
        return value.startswith(self.public_prefix + "/")

    def resolve(self, public_path: str) -> Path:
        """Map ``/generated/<name>`` back to a file inside the directory."""
        if not self.is_public_path(public_path):
            raise ValidationError(f"Not a local artifact path: {public_path}")
        name = public_path[len(self.public_prefix) + 1:]
        candidate = (self.directory / name).resolve()
        if candidate.parent != self.directory:
            raise ValidationError("Forbidden: path escapes the storage directory")
        if not candidate.is_file():
            raise ValidationError(f"Local artifact not found: {public_path}")
        return candidate

    def list_artifacts(self) -> list[dict]:
        """List stored files (most recent first), classified by extension."""
        results = []
        for path in self.directory.iterdir():
            if not path.is_file() or path.name.endswith(".part"):
                continue
            stat = path.stat()
            kind = ArtifactKind.VIDEO if path.suffix.lower() in VIDEO_EXTENSIONS else ArtifactKind.IMAGE
            results.append({
                "filename": path.name,
                "path": self.public_path(path.name),
                "type": kind,
                "size": stat.st_size,
                "created_at": datetime.fromtimestamp(stat.st_mtime, timezone.utc).isoformat(),
            })
        results.sort(key=lambda a: a["created_at"], reverse=True)
        return results

    def list_images(self) -> list[str]:
        return sorted(
            p.name for p in self.directory.iterdir()
            if p.is_file() and IMAGE_PATTERN.search(p.name)
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _download(self, remote_url: str, filename: str, kind: ArtifactKind) -> str:
        target = self._unique_target(filename)
        logger.info("Downloading %s from: %.50s…", kind.value, remote_url)
        try:
            with self._session.get(remote_url, stream=True, timeout=self.timeout) as resp:
                resp.raise_for_status()
                size = self._write_atomic(target, resp.iter_content(chunk_size=CHUNK_SIZE))
        except (requests.RequestException, OSError) as e:
            logger.error("Failed to save %s %s: %s", kind.value, target.name, e)
            raise StorageError(f"Failed to save {kind.value}: {e}") from e

        public = self.public_path(target.name)
        logger.info("%s saved (%d bytes), public path: %s", kind.value.capitalize(), size, public)
        return public

    def _unique_target(self, filename: str) -> Path:
        # Only the final path component is honoured
        name = Path(filename).name
        stem, suffix = Path(name).stem or "artifact", Path(name).suffix
        while True:
            target = self.directory / f"{stem}_{uuid.uuid4().hex[:8]}{suffix}"
            if not target.exists():
                return target

    @staticmethod
    def _write_atomic(target: Path, chunks) -> int:
        tmp = target.with_name(target.name + ".part")
        size = 0
        try:
            with tmp.open("wb") as fh:
                for chunk in chunks:
                    if chunk:
                        fh.write(chunk)
                        size += len(chunk)
            tmp.replace(target)
        finally:
            tmp.unlink(missing_ok=True)
        return size
