import asyncio

import pytest

from resumable_upload.client.api_client import VerifyResult
from resumable_upload.client.orchestrator import UploadOrchestrator
from resumable_upload.client.state import FileUploadState, UploadStatus
from resumable_upload.core.exceptions import SessionNotFoundError, ValidationException
from resumable_upload.core.patterns import (
    ALL_UPLOAD_EVENTS,
    UPLOAD_COMPLETED,
    UPLOAD_FAILED,
    UPLOAD_PAUSED,
    UPLOAD_PROGRESS,
    UPLOAD_STARTED,
    Observer,
)
from tests.fakes import FakeUploadApi, RecordingSleep

CHUNK = 10


class RecordingObserver(Observer):
    def __init__(self):
        self.events = []

    async def update(self, event_type, data):
        self.events.append((event_type, dict(data)))

    def names(self):
        return [name for name, _ in self.events]


@pytest.fixture
def api():
    return FakeUploadApi()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def orchestrator(api, sleep):
    return UploadOrchestrator(
        api,
        chunk_size=CHUNK,
        parallel_chunks=3,
        max_retries=5,
        initial_retry_delay=1.0,
        verify_attempts=3,
        sleep=sleep
    )


def make_file(tmp_path, name, size):
    path = tmp_path / name
    path.write_bytes(bytes(i % 251 for i in range(size)))
    return path


async def wait_for(predicate, timeout=2.0):
    async def poll():
        while not predicate():
            await asyncio.sleep(0)
    await asyncio.wait_for(poll(), timeout)


async def test_upload_completes_and_sends_exact_bytes(tmp_path, api, orchestrator):
    path = make_file(tmp_path, "data.bin", 25)
    observer = RecordingObserver()
    orchestrator.attach_all(observer)

    file_id = orchestrator.add_file(path)
    snapshot = await orchestrator.upload_file(file_id)

    assert snapshot.status == UploadStatus.COMPLETED
    assert snapshot.progress_percent == 100
    assert snapshot.completed_chunks == frozenset({0, 1, 2})
    content = path.read_bytes()
    for index in range(3):
        url = f"http://storage.test/{snapshot.session_id}/data.bin.part{index}"
        assert api.objects[url] == content[index * CHUNK:(index + 1) * CHUNK]

    assert api.calls_named("init") == [("init", "data.bin")]
    assert sorted(i for _, i in api.calls_named("grant")) == [0, 1, 2]
    assert len(api.calls_named("verify")) == 1
    assert observer.names()[0] == UPLOAD_STARTED
    assert UPLOAD_PROGRESS in observer.names()
    assert observer.names()[-1] == UPLOAD_COMPLETED


async def test_windows_are_bounded_by_parallel_chunks(tmp_path, api, sleep):
    orchestrator = UploadOrchestrator(api, chunk_size=CHUNK, parallel_chunks=2, sleep=sleep)
    observer = RecordingObserver()
    orchestrator.attach(UPLOAD_PROGRESS, observer)
    file_id = orchestrator.add_file(make_file(tmp_path, "data.bin", 50))

    await orchestrator.upload_file(file_id)

    # 5 chunks in windows of 2 -> 3 progress updates: 2/5, 4/5, 5/5
    assert [data["progress"] for _, data in observer.events] == [40, 80, 100]


async def test_resume_dispatches_only_missing_chunks(tmp_path, api, orchestrator):
    path = make_file(tmp_path, "data.bin", 70)
    session_id = await api.init_upload("data.bin", 70, 7, CHUNK)
    for index in (0, 2, 5):
        await api.notify_chunk_completed(session_id, index)
    api.calls.clear()

    file_id = orchestrator.add_file(path)
    restored = await orchestrator.restore(file_id, session_id)
    assert restored.status == UploadStatus.PAUSED
    assert restored.progress_percent == 43

    snapshot = await orchestrator.resume(file_id)

    assert snapshot.status == UploadStatus.COMPLETED
    assert sorted(i for _, i in api.calls_named("grant")) == [1, 3, 4, 6]
    assert len(api.calls_named("put")) == 7 - 3
    assert api.calls_named("init") == []


async def test_chunk_is_attempted_max_retries_plus_one_times(tmp_path, api, orchestrator, sleep):
    api.put_failures[0] = -1
    observer = RecordingObserver()
    orchestrator.attach(UPLOAD_FAILED, observer)
    file_id = orchestrator.add_file(make_file(tmp_path, "data.bin", 5))

    snapshot = await orchestrator.upload_file(file_id)

    assert len(api.calls_named("put")) == 6
    assert sleep.delays == [1.0, 2.0, 4.0, 8.0, 16.0]
    assert snapshot.status == UploadStatus.ERROR
    assert snapshot.error == "Upload failed"
    assert snapshot.retry_count == 5
    assert api.calls_named("verify") == []
    assert observer.names() == [UPLOAD_FAILED]


async def test_failed_chunk_does_not_stop_the_rest(tmp_path, api, orchestrator):
    api.grant_failures[1] = -1
    file_id = orchestrator.add_file(make_file(tmp_path, "data.bin", 60))

    snapshot = await orchestrator.upload_file(file_id)

    assert snapshot.status == UploadStatus.ERROR
    assert snapshot.completed_chunks == frozenset({0, 2, 3, 4, 5})
    assert snapshot.progress_percent == 83


async def test_error_state_can_be_resumed(tmp_path, api, orchestrator):
    api.put_failures[2] = 6
    file_id = orchestrator.add_file(make_file(tmp_path, "data.bin", 30))

    assert (await orchestrator.upload_file(file_id)).status == UploadStatus.ERROR
    api.calls.clear()

    snapshot = await orchestrator.resume(file_id)

    assert snapshot.status == UploadStatus.COMPLETED
    assert [i for _, i in api.calls_named("put")] == [2]
    assert snapshot.error is None


async def test_transient_failures_recover(tmp_path, api, orchestrator, sleep):
    api.put_failures[1] = 2
    file_id = orchestrator.add_file(make_file(tmp_path, "data.bin", 30))

    snapshot = await orchestrator.upload_file(file_id)

    assert snapshot.status == UploadStatus.COMPLETED
    assert snapshot.retry_count == 2
    assert sleep.delays == [1.0, 2.0]


async def test_failed_notification_retries_without_new_transfer(tmp_path, api, orchestrator):
    api.notify_failures[0] = 1
    file_id = orchestrator.add_file(make_file(tmp_path, "data.bin", 10))

    snapshot = await orchestrator.upload_file(file_id)

    assert snapshot.status == UploadStatus.COMPLETED
    assert len(api.calls_named("grant")) == 1
    assert len(api.calls_named("put")) == 1
    assert len(api.calls_named("notify")) == 2


async def test_incomplete_verification_ends_in_error(tmp_path, api, orchestrator, sleep):
    api.verify_override = VerifyResult(completed=False, progress=0.5)
    file_id = orchestrator.add_file(make_file(tmp_path, "data.bin", 20))

    snapshot = await orchestrator.upload_file(file_id)

    assert snapshot.status == UploadStatus.ERROR
    assert len(api.calls_named("verify")) == 3
    assert sleep.delays == [1.0, 1.0]
    # Local indices are reconciled with what the ledger recorded
    assert snapshot.completed_chunks == frozenset({0, 1})


async def test_pause_stops_after_in_flight_window(tmp_path, api, orchestrator):
    api.put_gate = asyncio.Event()
    observer = RecordingObserver()
    orchestrator.attach(UPLOAD_PAUSED, observer)
    file_id = orchestrator.add_file(make_file(tmp_path, "data.bin", 60))

    task = asyncio.create_task(orchestrator.upload_file(file_id))
    await wait_for(lambda: len(api.calls_named("put")) == 3)

    orchestrator.pause(file_id)
    assert orchestrator.snapshot(file_id).status == UploadStatus.PAUSED
    api.put_gate.set()
    snapshot = await task

    assert snapshot.status == UploadStatus.PAUSED
    assert snapshot.completed_chunks == frozenset({0, 1, 2})
    assert snapshot.progress_percent == 50
    assert sorted(i for _, i in api.calls_named("grant")) == [0, 1, 2]
    assert observer.names() == [UPLOAD_PAUSED]

    api.calls.clear()
    resumed = await orchestrator.resume(file_id)

    assert resumed.status == UploadStatus.COMPLETED
    assert sorted(i for _, i in api.calls_named("grant")) == [3, 4, 5]


async def test_pause_interrupts_backoff(tmp_path, api):
    orchestrator = UploadOrchestrator(api, chunk_size=CHUNK, initial_retry_delay=30.0)
    api.put_failures[0] = -1
    file_id = orchestrator.add_file(make_file(tmp_path, "data.bin", 10))

    task = asyncio.create_task(orchestrator.upload_file(file_id))
    await wait_for(lambda: orchestrator.snapshot(file_id).retry_count == 1)
    orchestrator.pause(file_id)

    snapshot = await asyncio.wait_for(task, timeout=2.0)

    assert snapshot.status == UploadStatus.PAUSED
    assert len(api.calls_named("put")) == 1


async def test_restore_completed_session_skips_upload(tmp_path, api, orchestrator):
    path = make_file(tmp_path, "data.bin", 10)
    session_id = await api.init_upload("data.bin", 10, 1, CHUNK)
    await api.notify_chunk_completed(session_id, 0)
    await api.verify_upload(session_id)
    api.calls.clear()

    file_id = orchestrator.add_file(path)
    restored = await orchestrator.restore(file_id, session_id)
    snapshot = await orchestrator.upload_file(file_id)

    assert restored.status == UploadStatus.COMPLETED
    assert snapshot.status == UploadStatus.COMPLETED
    assert api.calls == []


async def test_restore_rejects_session_of_another_file(tmp_path, api, orchestrator):
    session_id = await api.init_upload("other.bin", 99, 10, CHUNK)
    file_id = orchestrator.add_file(make_file(tmp_path, "data.bin", 10))

    with pytest.raises(ValidationException):
        await orchestrator.restore(file_id, session_id)


async def test_restore_unknown_session(tmp_path, orchestrator):
    file_id = orchestrator.add_file(make_file(tmp_path, "data.bin", 10))

    with pytest.raises(SessionNotFoundError):
        await orchestrator.restore(file_id, "missing")


def test_add_file_validation(tmp_path, orchestrator):
    path = make_file(tmp_path, "data.bin", 10)
    orchestrator.add_file(path)

    with pytest.raises(ValidationException):
        orchestrator.add_file(path)
    with pytest.raises(ValidationException):
        orchestrator.add_file(make_file(tmp_path, "empty.bin", 0))
    with pytest.raises(ValidationException):
        orchestrator.add_file(tmp_path / "missing.bin")


def test_add_file_enforces_max_files(tmp_path, api):
    orchestrator = UploadOrchestrator(api, chunk_size=CHUNK, max_files=2)
    first = orchestrator.add_file(make_file(tmp_path, "a.bin", 10))
    orchestrator.add_file(make_file(tmp_path, "b.bin", 10))

    with pytest.raises(ValidationException):
        orchestrator.add_file(make_file(tmp_path, "c.bin", 10))

    orchestrator.remove_file(first)
    orchestrator.add_file(make_file(tmp_path, "c.bin", 10))

    assert {s.file_name for s in orchestrator.snapshots()} == {"b.bin", "c.bin"}


def test_remove_file_and_snapshots(tmp_path, orchestrator):
    first = orchestrator.add_file(make_file(tmp_path, "a.bin", 10))
    second = orchestrator.add_file(make_file(tmp_path, "b.bin", 25))

    assert {s.file_name for s in orchestrator.snapshots()} == {"a.bin", "b.bin"}
    assert orchestrator.snapshot(second).total_chunks == 3

    orchestrator.remove_file(first)

    assert [s.file_id for s in orchestrator.snapshots()] == [second]
    with pytest.raises(ValidationException):
        orchestrator.snapshot(first)


def test_pause_ignored_unless_uploading(tmp_path, orchestrator):
    file_id = orchestrator.add_file(make_file(tmp_path, "a.bin", 10))
    orchestrator.pause(file_id)
    assert orchestrator.snapshot(file_id).status == UploadStatus.PENDING


def test_snapshots_are_read_only(tmp_path, orchestrator):
    file_id = orchestrator.add_file(make_file(tmp_path, "a.bin", 10))
    snapshot = orchestrator.snapshot(file_id)

    with pytest.raises(AttributeError):
        snapshot.status = UploadStatus.COMPLETED
    assert isinstance(snapshot.completed_chunks, frozenset)


@pytest.mark.parametrize("completed,total,expected", [
    (0, 3, 0), (1, 3, 33), (2, 3, 67), (1, 8, 13), (3, 3, 100),
])
def test_progress_rounds_half_up(tmp_path, completed, total, expected):
    state = FileUploadState(
        file_id="f", path=tmp_path / "f", file_name="f", file_size=total * CHUNK, chunk_size=CHUNK,
        completed_chunks=set(range(completed))
    )
    assert state.recompute_progress() == expected


def test_events_cover_lifecycle():
    assert set(ALL_UPLOAD_EVENTS) == {UPLOAD_STARTED, UPLOAD_PROGRESS, UPLOAD_COMPLETED, UPLOAD_FAILED, UPLOAD_PAUSED}
