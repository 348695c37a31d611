"""Tests for the queued image service client using fake aiohttp sessions."""

import asyncio
import json
from pathlib import Path
from types import SimpleNamespace

import pytest

from sitebuild.config import FAL_DOWNLOAD_CHUNK_BYTES
from sitebuild.exceptions import ExternalServiceError, TimeoutExceededError
from sitebuild.pipeline.image_generator import FalClient, GenerationTask


class FakeLimiter:
    async def __aenter__(self):
        return None

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeStream:
    def __init__(self, body: bytes, chunk: int = 3, error: Exception | None = None):
        self._body = body
        self._chunk = chunk
        self._error = error
        self.chunk_sizes = []

    async def iter_chunked(self, n):
        self.chunk_sizes.append(n)
        for start in range(0, len(self._body), self._chunk):
            yield self._body[start : start + self._chunk]
        if self._error is not None:
            raise self._error


class FakeResponse:
    def __init__(self, status: int, payload=None, body: bytes = b"", error: Exception | None = None):
        self.status = status
        self._payload = payload
        self.content = FakeStream(body, error=error)

    async def text(self):
        if isinstance(self._payload, str):
            return self._payload
        return json.dumps(self._payload)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    def __init__(self, posts, gets):
        self._posts = list(posts)
        self._gets = list(gets)
        self.get_urls = []
        self.post_calls = []

    def post(self, url, **kwargs):
        self.post_calls.append((url, kwargs))
        return self._posts.pop(0)

    def get(self, url, **kwargs):
        self.get_urls.append(url)
        return self._gets.pop(0)


@pytest.fixture
def no_sleep(monkeypatch):
    slept = []

    async def fake_sleep(delay):
        slept.append(delay)

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)
    return slept


def make_client(**overrides):
    cfg = SimpleNamespace(
        api_key="test-key",
        queue_url="https://queue.example.invalid/model",
        max_polls=3,
        poll_interval=10.0,
        request_timeout=5,
        target_rpm=60,
    )
    for key, value in overrides.items():
        setattr(cfg, key, value)
    return FalClient(cfg, limiter=FakeLimiter())


def make_task(tmp_path: Path) -> GenerationTask:
    return GenerationTask(
        slot="home-hero",
        filename="src/assets/images/home-hero/home-hero.jpg",
        output=tmp_path / "src/assets/images/home-hero/home-hero.jpg",
        prompt="A bright kitchen",
        width=1920,
        height=823,
    )


def test_payload_carries_size_and_negative_prompt(tmp_path: Path):
    payload = make_client().build_payload(make_task(tmp_path))
    assert payload["image_size"] == {"width": 1920, "height": 823}
    assert payload["num_images"] == 1
    assert "watermark" in payload["negative_prompt"]


@pytest.mark.asyncio
async def test_generate_with_direct_result(tmp_path: Path, no_sleep):
    session = FakeSession(
        posts=[FakeResponse(200, {"images": [{"url": "https://cdn.example.invalid/a.jpg"}]})],
        gets=[FakeResponse(200, body=b"JPEGDATA")],
    )
    client = make_client()
    out = await client.generate(session, make_task(tmp_path))
    assert out.read_bytes() == b"JPEGDATA"
    assert session.get_urls == ["https://cdn.example.invalid/a.jpg"]
    url, kwargs = session.post_calls[0]
    assert url == "https://queue.example.invalid/model"
    assert kwargs["headers"]["Authorization"] == "Key test-key"
    assert no_sleep == []


@pytest.mark.asyncio
async def test_generate_polls_until_completed(tmp_path: Path, no_sleep):
    session = FakeSession(
        posts=[FakeResponse(200, {"request_id": "r1"})],
        gets=[
            FakeResponse(200, {"status": "IN_QUEUE"}),
            FakeResponse(200, {"status": "COMPLETED"}),
            FakeResponse(200, {"images": [{"url": "https://cdn.example.invalid/b.jpg"}]}),
            FakeResponse(200, body=b"IMG"),
        ],
    )
    out = await make_client().generate(session, make_task(tmp_path))
    assert out.read_bytes() == b"IMG"
    assert session.get_urls[:3] == [
        "https://queue.example.invalid/model/requests/r1/status",
        "https://queue.example.invalid/model/requests/r1/status",
        "https://queue.example.invalid/model/requests/r1",
    ]
    assert no_sleep == [10.0, 10.0]


@pytest.mark.asyncio
async def test_polling_exhaustion_times_out(tmp_path: Path, no_sleep):
    session = FakeSession(
        posts=[FakeResponse(200, {"request_id": "r1"})],
        gets=[FakeResponse(200, {"status": "IN_PROGRESS"}) for _ in range(2)],
    )
    with pytest.raises(TimeoutExceededError):
        await make_client(max_polls=2).generate(session, make_task(tmp_path))
    assert not (tmp_path / "src").exists()


@pytest.mark.asyncio
async def test_failed_status_raises(tmp_path: Path, no_sleep):
    session = FakeSession(
        posts=[FakeResponse(200, {"request_id": "r1"})],
        gets=[FakeResponse(200, {"status": "FAILED", "error": "nsfw"})],
    )
    with pytest.raises(ExternalServiceError, match="nsfw"):
        await make_client().generate(session, make_task(tmp_path))


@pytest.mark.asyncio
@pytest.mark.parametrize("status,transient", [(429, True), (503, True), (400, False), (401, False)])
async def test_http_errors_classified(tmp_path: Path, status, transient):
    session = FakeSession(posts=[FakeResponse(status, "nope")], gets=[])
    with pytest.raises(ExternalServiceError) as excinfo:
        await make_client().generate(session, make_task(tmp_path))
    assert excinfo.value.transient is transient


@pytest.mark.asyncio
async def test_submission_without_request_id_is_permanent(tmp_path: Path):
    session = FakeSession(posts=[FakeResponse(200, {"detail": "queued"})], gets=[])
    with pytest.raises(ExternalServiceError) as excinfo:
        await make_client().generate(session, make_task(tmp_path))
    assert excinfo.value.transient is False


@pytest.mark.asyncio
async def test_invalid_json_reported(tmp_path: Path):
    session = FakeSession(posts=[FakeResponse(200, "<html>")], gets=[])
    with pytest.raises(ExternalServiceError, match="invalid JSON"):
        await make_client().generate(session, make_task(tmp_path))


@pytest.mark.asyncio
async def test_download_streams_in_chunks(tmp_path: Path):
    response = FakeResponse(200, body=b"0123456789")
    dest = tmp_path / "images" / "a.jpg"
    session = FakeSession(posts=[], gets=[response])
    await make_client().download(session, "https://cdn.example.invalid/a.jpg", dest)
    assert dest.read_bytes() == b"0123456789"
    assert response.content.chunk_sizes == [FAL_DOWNLOAD_CHUNK_BYTES]
    assert [p.name for p in dest.parent.iterdir()] == ["a.jpg"]


@pytest.mark.asyncio
async def test_interrupted_download_keeps_previous_file(tmp_path: Path):
    dest = tmp_path / "a.jpg"
    dest.write_bytes(b"stub")
    response = FakeResponse(200, body=b"partial-body", error=ConnectionResetError("peer went away"))
    with pytest.raises(ConnectionResetError):
        await make_client().download(
            FakeSession(posts=[], gets=[response]), "https://cdn.example.invalid/a.jpg", dest
        )
    assert dest.read_bytes() == b"stub"
    assert [p.name for p in tmp_path.iterdir()] == ["a.jpg"]
