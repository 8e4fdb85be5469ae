# backend/tests/test_orchestrator.py

import base64
import threading

import pytest

from conftest import MEDIA_API, FakeResponse
from errors import UpstreamError, ValidationError
from models import ArtifactKind, TaskStatus
from services.orchestrator import ImageInput, PollCancelled

RESULT_URL = f"{MEDIA_API}/async-result/abc123"
SUBMIT_URL = f"{MEDIA_API}/videos/generations"
VIDEO_URL = "https://cdn.test/out.mp4"
COVER_URL = "https://cdn.test/out.png"

PROCESSING = FakeResponse(json_data={"task_status": "PROCESSING"})
SUCCESS = FakeResponse(json_data={
    "task_status": "SUCCESS",
    "video_result": [{"url": VIDEO_URL, "cover_image_url": COVER_URL}],
})


class RecordingEvent(threading.Event):
    """Cancellation token that records waits instead of sleeping."""

    def __init__(self):
        super().__init__()
        self.waits = []

    def wait(self, timeout=None):
        self.waits.append(timeout)
        return False


def _accept(session, task_id="abc123"):
    session.add(
        "POST",
        SUBMIT_URL,
        FakeResponse(json_data={"id": task_id, "request_id": "req-1", "model": "cogvideox-flash",
                                "task_status": "PROCESSING"}),
    )


def _serve_media(session):
    session.add("GET", VIDEO_URL, FakeResponse(content=b"mp4-bytes"))
    session.add("GET", COVER_URL, FakeResponse(content=b"png-bytes"))


# ---------------------------------------------------------------------------
# submit
# ---------------------------------------------------------------------------
@pytest.mark.parametrize("prompt", ["", "   "])
def test_submit_without_prompt_makes_no_network_call(orchestrator, session, prompt):
    with pytest.raises(ValidationError):
        orchestrator.submit(ImageInput("https://cdn.test/a.png"), prompt)

    assert session.calls == []


def test_submit_without_image_makes_no_network_call(orchestrator, session):
    with pytest.raises(ValidationError):
        orchestrator.submit(ImageInput(None), "zoom in")

    assert session.calls == []


def test_submit_records_job(orchestrator, session, manager):
    _accept(session)

    job = orchestrator.submit(ImageInput("https://cdn.test/a.png"), "zoom in", order_id="ORDER-1")

    assert job == {
        "task_id": "abc123",
        "request_id": "req-1",
        "model": "cogvideox-flash",
        "task_status": TaskStatus.PROCESSING,
    }
    stored = manager.get_job("abc123")
    assert stored["status"] == "PROCESSING"
    assert stored["order_id"] == "ORDER-1"
    assert session.calls[0][2]["json"]["image_url"] == "https://cdn.test/a.png"


def test_submit_prefers_inline_then_original_url(orchestrator, session):
    _accept(session, "task-1")
    _accept(session, "task-2")

    orchestrator.submit(ImageInput("data:image/png;base64,AAAA", is_base64=True), "zoom in")
    orchestrator.submit(
        ImageInput("/generated/image_1.png", original_url="https://cdn.test/orig.png"), "zoom in"
    )

    assert session.calls[0][2]["json"]["image_url"] == "data:image/png;base64,AAAA"
    assert session.calls[1][2]["json"]["image_url"] == "https://cdn.test/orig.png"


def test_submit_resolves_generated_image_to_source_url(orchestrator, session, manager):
    manager.record_artifact("/generated/image_1.png", "https://cdn.test/source.png", ArtifactKind.IMAGE)
    _accept(session)

    orchestrator.submit(ImageInput("/generated/image_1.png"), "zoom in")

    assert session.calls[0][2]["json"]["image_url"] == "https://cdn.test/source.png"


def test_submit_sends_uploaded_file_inline(orchestrator, session, store):
    public = store.save_upload(b"\x89PNG-upload", "cat.png")
    _accept(session)

    orchestrator.submit(ImageInput(public), "zoom in")

    sent = session.calls[0][2]["json"]["image_url"]
    assert sent == "data:image/png;base64," + base64.b64encode(b"\x89PNG-upload").decode()


def test_submit_rejects_unusable_reference(orchestrator, session):
    with pytest.raises(ValidationError):
        orchestrator.submit(ImageInput("ftp://elsewhere/a.png"), "zoom in")

    assert session.calls == []


# ---------------------------------------------------------------------------
# poll_once / poll
# ---------------------------------------------------------------------------
def test_processing_poll_does_not_download(orchestrator, session, store):
    session.add("GET", RESULT_URL, PROCESSING)

    outcome = orchestrator.poll_once("abc123")

    assert outcome.status is TaskStatus.PROCESSING
    assert outcome.retry_after == 0.01
    assert [c[1] for c in session.calls] == [RESULT_URL]
    assert list(store.directory.iterdir()) == []


def test_poll_schedules_exactly_one_retry_per_processing_check(orchestrator, session, store):
    session.add("GET", RESULT_URL, PROCESSING, SUCCESS)
    _serve_media(session)
    cancel = RecordingEvent()

    outcome = orchestrator.poll("abc123", cancel=cancel)

    assert cancel.waits == [0.01]
    assert outcome.status is TaskStatus.SUCCESS
    assert store.resolve(outcome.video_path).read_bytes() == b"mp4-bytes"
    assert store.resolve(outcome.cover_path).read_bytes() == b"png-bytes"


def test_success_is_downloaded_exactly_once(orchestrator, session, manager):
    _accept(session)
    orchestrator.submit(ImageInput("https://cdn.test/a.png"), "zoom in")
    session.add("GET", RESULT_URL, SUCCESS)
    _serve_media(session)

    first = orchestrator.poll_once("abc123")
    second = orchestrator.poll_once("abc123")

    assert first.video_path == second.video_path
    assert len(session.calls_to("GET", VIDEO_URL)) == 1
    assert len(session.calls_to("GET", RESULT_URL)) == 1
    assert manager.get_artifact(first.video_path)["source_url"] == VIDEO_URL


def test_unknown_remote_status_is_failure(orchestrator, session, manager):
    session.add("GET", RESULT_URL, FakeResponse(json_data={"task_status": "FAIL"}))

    outcome = orchestrator.poll_once("abc123")

    assert outcome.status is TaskStatus.FAILED
    assert outcome.error == "Video generation failed"
    assert manager.get_job("abc123")["status"] == "FAILED"


def test_success_without_result_is_failure(orchestrator, session):
    session.add("GET", RESULT_URL, FakeResponse(json_data={"task_status": "SUCCESS", "video_result": []}))

    assert orchestrator.poll_once("abc123").status is TaskStatus.FAILED


def test_poll_gives_up_after_max_attempts(orchestrator, session, manager):
    session.add("GET", RESULT_URL, PROCESSING)
    cancel = RecordingEvent()

    outcome = orchestrator.poll("abc123", cancel=cancel)

    assert outcome.status is TaskStatus.FAILED
    assert "Timed out" in outcome.error
    assert len(cancel.waits) == 4
    assert manager.get_job("abc123")["attempts"] == 5


def test_poll_stops_when_cancelled(orchestrator, session):
    session.add("GET", RESULT_URL, PROCESSING)
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(PollCancelled):
        orchestrator.poll("abc123", cancel=cancel)

    assert session.calls == []


def test_submit_then_poll_reaches_terminal_state(orchestrator, session):
    _accept(session)
    session.add("GET", RESULT_URL, PROCESSING, PROCESSING, SUCCESS)
    _serve_media(session)

    job = orchestrator.submit(ImageInput("https://cdn.test/a.png"), "zoom in")
    outcome = orchestrator.poll(job["task_id"], cancel=RecordingEvent())

    assert outcome.is_terminal
    assert outcome.video_path.startswith("/generated/video_")


class StopAfterWaits(RecordingEvent):
    """Cancellation token that fires on the n-th wait."""

    def __init__(self, n):
        super().__init__()
        self.n = n

    def wait(self, timeout=None):
        super().wait(timeout)
        return len(self.waits) >= self.n


BUSY = FakeResponse(status_code=503, json_data={"error": {"message": "busy"}})


def test_failed_status_check_does_not_end_job(orchestrator, session, manager):
    manager.create_job("abc123", "zoom in")
    session.add("GET", RESULT_URL, BUSY, PROCESSING)

    with pytest.raises(PollCancelled):
        orchestrator.poll("abc123", cancel=StopAfterWaits(2))

    job = manager.get_job("abc123")
    assert job["status"] == "PROCESSING"
    assert job["attempts"] == 2


def test_poll_recovers_after_failed_status_check(orchestrator, session, manager):
    manager.create_job("abc123", "zoom in")
    session.add("GET", RESULT_URL, BUSY, PROCESSING, SUCCESS)
    _serve_media(session)
    cancel = RecordingEvent()

    outcome = orchestrator.poll("abc123", cancel=cancel)

    assert outcome.status is TaskStatus.SUCCESS
    assert cancel.waits == [0.01, 0.01]


def test_unknown_task_is_not_recorded_when_provider_rejects_it(orchestrator, session, manager):
    session.add("GET", f"{MEDIA_API}/async-result/bogus", FakeResponse(status_code=404, json_data={}))

    with pytest.raises(UpstreamError):
        orchestrator.poll_once("bogus")

    assert manager.get_job("bogus") is None
    assert manager.next_unclaimed_job() is None


def test_client_polls_do_not_use_up_attempts(orchestrator, session, manager):
    manager.create_job("abc123", "zoom in")
    session.add("GET", RESULT_URL, PROCESSING)

    for _ in range(10):
        assert orchestrator.poll_once("abc123").status is TaskStatus.PROCESSING

    assert manager.get_job("abc123")["attempts"] == 0
