"""
Shared fixtures for the mediagate tests.

Nothing here touches the network or needs yt-dlp/ffmpeg: extraction and
process spawning go through FakeDownloader, which records every call.
"""
import asyncio

import httpx
import pytest
import pytest_asyncio

from mediagate.config.settings import Config, ConvertConfig, config
from mediagate.models.internal import ResolvedVideo
from mediagate.services.downloader import Downloader
from mediagate.services.errors import EmptyUrlError, ExtractionError

PAGE_URL = "https://media.example.com/watch?v=abc123"
DEFAULT_FORMAT = "best/bestvideo"
FALLBACK_AUDIO_FORMAT = "bestaudio/best/bestvideo"
MP3_REDIRECT_FORMAT = "mp3[protocol=https]/mp3[protocol=http]"


def make_video(**overrides) -> ResolvedVideo:
    data = dict(
        webpage_url=PAGE_URL,
        requested_format=DEFAULT_FORMAT,
        format_id="22",
        ext="mp4",
        protocol="https",
        title="Test Clip",
        id="abc123",
        urls=("https://cdn.example.com/abc123.mp4",),
        filename="Test Clip-abc123.mp4",
    )
    data.update(overrides)
    return ResolvedVideo(**data)


class FakeStream:
    """Stands in for ProcessStream/HttpStream"""

    def __init__(self, chunks):
        self._chunks = list(chunks)
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self.closed or not self._chunks:
            raise StopAsyncIteration
        return self._chunks.pop(0)

    async def aclose(self):
        self.closed = True


class FakeDownloader(Downloader):
    """
    Downloader answering from a {format: video-or-exception} table.
    A "*" key answers any format not listed.
    """

    def __init__(self, videos=None, cfg=None):
        super().__init__(cfg)
        self.videos = videos or {}
        self.calls = []
        self.spawned = []
        self.streams = []
        self.with_format_calls = []

    async def get_video(self, url, format_str=None, password=None):
        if not url:
            raise EmptyUrlError()
        format_str = format_str or self.config.ytdlp.default_format
        self.calls.append((url, format_str, password))

        result = self.videos.get(format_str, self.videos.get("*"))
        if result is None:
            raise ExtractionError(f"Requested format is not available: {format_str}")
        if isinstance(result, Exception):
            raise result
        return result.model_copy(update={"requested_format": format_str, "password": password})

    async def with_format(self, video, format_str):
        self.with_format_calls.append((video, format_str))
        return await super().with_format(video, format_str)

    @property
    def formats_requested(self):
        return [format_str for _, format_str, _ in self.calls]

    def _stream(self, kind, video, *args):
        self.spawned.append((kind, video, args))
        stream = FakeStream([f"{kind}:".encode(), b"media-bytes"])
        self.streams.append(stream)
        return stream

    async def get_audio_stream(self, video, bitrate, seek_from=None, seek_to=None):
        self.check_conversion(video)
        return self._stream("audio", video, bitrate, seek_from, seek_to)

    async def get_converted_stream(self, video, bitrate, file_format):
        self.check_conversion(video)
        return self._stream("convert", video, bitrate, file_format)

    async def get_m3u_stream(self, video):
        return self._stream("m3u", video)

    async def get_remux_stream(self, video):
        self.check_remux(video)
        return self._stream("remux", video)

    async def get_pipe_stream(self, video):
        return self._stream("pipe", video)

    async def get_http_stream(self, video):
        return self._stream("http", video)


class FakeProcess:
    """Minimal asyncio.subprocess.Process double; create inside a running loop"""

    def __init__(self, stdout=b"", stderr=b"", returncode=0, finished=True):
        self.pid = 4242
        self.stdout = asyncio.StreamReader()
        self.stdout.feed_data(stdout)
        self.stderr = asyncio.StreamReader()
        self.stderr.feed_data(stderr)
        self.stderr.feed_eof()
        self.returncode = None
        self.killed = False
        self._final = returncode
        self._done = asyncio.Event()
        if finished:
            self.stdout.feed_eof()
            self._done.set()

    def kill(self):
        self.killed = True
        self._final = -9
        self.stdout.feed_eof()
        self._done.set()

    async def wait(self):
        await self._done.wait()
        self.returncode = self._final
        return self.returncode


def make_config(**convert) -> Config:
    cfg = Config()
    cfg.convert = ConvertConfig(**convert)
    return cfg


@pytest.fixture
def media_config(monkeypatch):
    """Set global convert flags for one test: media_config(stream=True, ...)"""
    def apply(**flags):
        for name, value in flags.items():
            monkeypatch.setattr(config.convert, name, value)
        return config
    return apply


@pytest.fixture(autouse=True)
def no_ssrf_dns(monkeypatch):
    monkeypatch.setattr(config.security, "enable_ssrf_protection", False)


@pytest.fixture
def fake_downloader():
    def build(videos=None, cfg=None):
        return FakeDownloader(videos, cfg)
    return build


@pytest.fixture
def use_downloader():
    """Route /download through the given downloader for one test"""
    from mediagate.api.download import get_downloader
    from mediagate.main import app

    def install(downloader):
        app.dependency_overrides[get_downloader] = lambda: downloader
        return downloader

    yield install
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def api():
    from mediagate.main import app

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client
