import asyncio
import re

import aiohttp
import pytest
from aiohttp import test_utils, web
from aioresponses import aioresponses

from resumable_upload.client.api_client import UploadApiClient
from resumable_upload.core.exceptions import AuthorizationFailure, SessionNotFoundError, TransferFailure

API = "http://broker.test"


@pytest.fixture
def mocked():
    with aioresponses() as m:
        yield m


@pytest.fixture
async def api():
    async with UploadApiClient(API + "/", request_timeout=5) as client:
        yield client


async def test_init_upload_posts_camel_case_body(api, mocked):
    mocked.post(f"{API}/init-upload", payload={"sessionId": "s1"})

    session_id = await api.init_upload("movie.mp4", 12, 3, 5)

    assert session_id == "s1"
    (request,) = next(iter(mocked.requests.values()))
    assert request.kwargs["json"] == {"fileName": "movie.mp4", "fileSize": 12, "totalChunks": 3, "chunkSize": 5}


async def test_request_grant(api, mocked):
    mocked.post(f"{API}/presigned-url", payload={"presignedUrl": "http://storage.test/s1/a.part0?sig=1"})
    assert await api.request_grant("s1", "a", 0) == "http://storage.test/s1/a.part0?sig=1"


async def test_grant_error_is_authorization_failure(api, mocked):
    mocked.post(f"{API}/presigned-url", status=500, body="boom")

    with pytest.raises(AuthorizationFailure):
        await api.request_grant("s1", "a", 0)


async def test_put_chunk(api, mocked):
    url = "http://storage.test/s1/a.part0?X-Amz-Signature=abc"
    mocked.put(re.compile(r"http://storage\.test/s1/a\.part0.*"), status=200)

    await api.put_chunk(url, b"data")


async def test_put_chunk_error_is_transfer_failure(api, mocked):
    mocked.put(re.compile(r"http://storage\.test/.*"), status=403)

    with pytest.raises(TransferFailure) as exc_info:
        await api.put_chunk("http://storage.test/s1/a.part0?sig=1", b"data")

    assert exc_info.value.details["status"] == 403


async def test_connection_error_is_transfer_failure(api, mocked):
    mocked.post(f"{API}/chunk-completed", exception=aiohttp.ClientConnectionError("refused"))

    with pytest.raises(TransferFailure):
        await api.notify_chunk_completed("s1", 0)


async def test_verify_upload(api, mocked):
    mocked.post(f"{API}/verify-upload", payload={"completed": False, "progress": 0.5})

    result = await api.verify_upload("s1")

    assert result.completed is False
    assert result.progress == 0.5


async def test_get_session(api, mocked):
    mocked.get(f"{API}/session/s1", payload={
        "session_id": "s1",
        "file_name": "a.bin",
        "file_size": 30,
        "chunk_size": 10,
        "total_chunks": 3,
        "created_at": "2024-01-01T00:00:00Z",
        "completed_at": None,
        "completedChunks": [2, 0],
    })

    session = await api.get_session("s1")

    assert session.completed_chunks == [0, 2]
    assert session.total_chunks == 3
    assert session.completed_at is None


async def test_get_unknown_session(api, mocked):
    mocked.get(f"{API}/session/nope", status=404)

    with pytest.raises(SessionNotFoundError):
        await api.get_session("nope")


async def test_client_requires_context_manager():
    client = UploadApiClient(API)
    with pytest.raises(RuntimeError):
        await client.verify_upload("s1")


@pytest.mark.parametrize("call", [
    lambda client: client.put_chunk("http://storage.test/s1/a.part0?sig=1", b"data"),
    lambda client: client.notify_chunk_completed("s1", 0),
    lambda client: client.get_session("s1"),
])
async def test_timeout_is_transfer_failure(api, mocked, call):
    mocked.put(re.compile(r"http://storage\.test/.*"), exception=asyncio.TimeoutError())
    mocked.post(f"{API}/chunk-completed", exception=asyncio.TimeoutError())
    mocked.get(f"{API}/session/s1", exception=asyncio.TimeoutError())

    with pytest.raises(TransferFailure) as exc_info:
        await call(api)

    assert isinstance(exc_info.value.original_error, asyncio.TimeoutError)


async def test_grant_timeout_is_authorization_failure(api, mocked):
    mocked.post(f"{API}/presigned-url", exception=asyncio.TimeoutError())

    with pytest.raises(AuthorizationFailure):
        await api.request_grant("s1", "a", 0)


async def test_stalled_server_times_out_as_transfer_failure():
    release = asyncio.Event()

    async def stall(request):
        await release.wait()
        return web.Response()

    app = web.Application()
    app.router.add_put("/obj", stall)
    app.router.add_get("/session/{session_id}", stall)

    server = test_utils.TestServer(app)
    await server.start_server()
    try:
        async with UploadApiClient(str(server.make_url("/")), request_timeout=1) as client:
            with pytest.raises(TransferFailure):
                await client.put_chunk(str(server.make_url("/obj")), b"data")
            with pytest.raises(TransferFailure):
                await client.get_session("s1")
    finally:
        release.set()
        await server.close()
