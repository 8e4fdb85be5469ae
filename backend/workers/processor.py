"""Background worker – follows submitted video jobs until they finish."""

from __future__ import annotations

import logging
import threading

import config
from models import TaskStatus
from services.job_manager import JobManager
from services.orchestrator import JobOrchestrator, PollCancelled

logger = logging.getLogger("i2v.worker")


class PollWorker:
    """
    Background worker that runs in a daemon thread.
    Claims in-flight jobs one at a time and polls each to a terminal state,
    so results are cached even if the client stops polling.
    """

    def __init__(
        self,
        orchestrator: JobOrchestrator,
        manager: JobManager,
        idle_interval: float = config.WORKER_IDLE_INTERVAL,
    ) -> None:
        self.orchestrator = orchestrator
        self.manager = manager
        self.idle_interval = idle_interval
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name="poll-worker")
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5)

    def _run(self) -> None:
        logger.info("Worker thread started (idle interval=%ss)", self.idle_interval)
        while not self._stop_event.is_set():
            try:
                job = self.manager.next_unclaimed_job()
                if job:
                    self.follow(job["task_id"])
                else:
                    # No work – sleep before checking again
                    self._stop_event.wait(timeout=self.idle_interval)
            except Exception as e:
                logger.error("Worker loop error: %s", e, exc_info=True)
                self._stop_event.wait(timeout=self.idle_interval)

    def follow(self, task_id: str) -> None:
        """Poll one job to completion, recording failures in the ledger."""
        logger.info("Following job: %s", task_id)
        try:
            outcome = self.orchestrator.poll(task_id, cancel=self._stop_event)
            logger.info("Job %s finished: %s", task_id, outcome.status.value)
        except PollCancelled:
            # Let the next worker pick it up again
            self.manager.release_job(task_id)
            logger.info("Stopped following job %s", task_id)
        except Exception as e:
            logger.error("Job %s failed while polling: %s", task_id, e, exc_info=True)
            self.manager.update_job(task_id, TaskStatus.FAILED, error=str(e))
