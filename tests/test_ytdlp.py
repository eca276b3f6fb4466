import asyncio
import json

import pytest

from mediagate.services.downloader import Downloader
from mediagate.services.errors import (
    EmptyUrlError,
    ExtractionError,
    InvalidProtocolConversionError,
    PasswordRequiredError,
    PlaylistConversionError,
    ProcessSpawnError,
    RemuxError,
    WrongPasswordError,
    classify_ytdlp_error,
)
from mediagate.services.ytdlp import CompletedProcess, FFmpegCommandBuilder, SubprocessExecutor, YTDLPCommandBuilder

from .conftest import PAGE_URL, make_config, make_video


def test_info_command():
    cmd = YTDLPCommandBuilder(make_config()).build_info_command(PAGE_URL, "mp3", password="secret")

    assert cmd[0] == "yt-dlp"
    assert "--dump-single-json" in cmd
    assert cmd[cmd.index("-f") + 1] == "mp3"
    assert cmd[cmd.index("--video-password") + 1] == "secret"
    assert cmd[-2:] == ["--", PAGE_URL]


def test_info_command_without_password():
    cmd = YTDLPCommandBuilder(make_config()).build_info_command("-exec-looking-url", "best")

    assert "--video-password" not in cmd
    assert cmd[-2:] == ["--", "-exec-looking-url"]


def test_pipe_command_writes_to_stdout():
    cmd = YTDLPCommandBuilder(make_config()).build_pipe_command(make_video(requested_format="bestvideo+bestaudio"))

    assert cmd[cmd.index("-o") + 1] == "-"
    assert cmd[cmd.index("-f") + 1] == "bestvideo+bestaudio"
    assert cmd[-1] == PAGE_URL


def test_audio_command_seek_and_bitrate():
    video = make_video(http_headers={"User-Agent": "test-agent"})

    cmd = FFmpegCommandBuilder(make_config()).build_audio_command(video, 192, seek_from="00:00:10", seek_to="30")

    assert cmd[0] == "ffmpeg"
    assert cmd[cmd.index("-i") + 1] == "https://cdn.example.com/abc123.mp4"
    assert cmd[cmd.index("-headers") + 1] == "User-Agent: test-agent\r\n"
    assert cmd.index("-ss") > cmd.index("-i")
    assert cmd[cmd.index("-ss") + 1] == "00:00:10"
    assert cmd[cmd.index("-to") + 1] == "30"
    assert cmd[-5:] == ["-b:a", "192k", "-f", "mp3", "pipe:1"]


def test_audio_command_without_seek():
    cmd = FFmpegCommandBuilder(make_config()).build_audio_command(make_video(), 128)

    assert "-ss" not in cmd
    assert "-to" not in cmd
    assert "-headers" not in cmd


@pytest.mark.parametrize("file_format,muxer", [("ogg", "ogg"), ("mkv", "matroska"), ("webm", "webm")])
def test_convert_command_muxer(file_format, muxer):
    cmd = FFmpegCommandBuilder(make_config()).build_convert_command(make_video(), 96, file_format)

    assert cmd[-4:] == ["96k", "-f", muxer, "pipe:1"]


def test_remux_command_maps_both_inputs():
    video = make_video(urls=("https://cdn.example.com/v", "https://cdn.example.com/a"))

    cmd = FFmpegCommandBuilder(make_config()).build_remux_command(video)

    inputs = [cmd[i + 1] for i, arg in enumerate(cmd) if arg == "-i"]
    assert inputs == ["https://cdn.example.com/v", "https://cdn.example.com/a"]
    assert cmd[-3:] == ["-f", "matroska", "pipe:1"]


def test_m3u_command_copies_to_mpegts():
    cmd = FFmpegCommandBuilder(make_config()).build_m3u_command(make_video(protocol="m3u8_native"))

    assert cmd[-5:] == ["-c", "copy", "-f", "mpegts", "pipe:1"]


@pytest.mark.parametrize("stderr,error_type", [
    ("ERROR: [vimeo] 123: This video is protected by a password, use the --video-password option", PasswordRequiredError),
    ("ERROR: [vimeo] 123: Wrong password", WrongPasswordError),
    ("WARNING: something\nERROR: Requested format is not available", ExtractionError),
    ("", ExtractionError),
])
def test_classify_ytdlp_error(stderr, error_type):
    assert type(classify_ytdlp_error(stderr)) is error_type


def test_classify_keeps_last_line():
    error = classify_ytdlp_error("WARNING: slow\nERROR: Unsupported URL: https://x\n")

    assert error.message == "ERROR: Unsupported URL: https://x"
    assert "WARNING: slow" in error.stderr


def fake_run(monkeypatch, returncode=0, info=None, stderr=b""):
    calls = []

    async def run(cmd, timeout):
        calls.append(cmd)
        stdout = json.dumps(info).encode() if info is not None else b""
        return CompletedProcess(returncode=returncode, stdout=stdout, stderr=stderr)

    monkeypatch.setattr(SubprocessExecutor, "run", staticmethod(run))
    return calls


@pytest.mark.asyncio
async def test_get_video_single_format(monkeypatch):
    calls = fake_run(monkeypatch, info={
        "id": "abc123",
        "title": "Test Clip",
        "ext": "mp4",
        "protocol": "https",
        "format_id": "22",
        "url": "https://cdn.example.com/abc123.mp4",
        "webpage_url": PAGE_URL,
        "http_headers": {"User-Agent": "test-agent"},
        "_filename": "/tmp/Test Clip-abc123.mp4",
    })

    video = await Downloader(make_config()).get_video(PAGE_URL, "best", "pw")

    assert video.urls == ("https://cdn.example.com/abc123.mp4",)
    assert video.filename == "Test Clip-abc123.mp4"
    assert video.http_headers == {"User-Agent": "test-agent"}
    assert video.requested_format == "best"
    assert video.password == "pw"
    assert not video.is_playlist
    assert calls[0][-1] == PAGE_URL


@pytest.mark.asyncio
async def test_get_video_merged_formats(monkeypatch):
    fake_run(monkeypatch, info={
        "id": "abc123",
        "title": "Test Clip",
        "ext": "mkv",
        "requested_formats": [
            {"url": "https://cdn.example.com/v", "protocol": "https"},
            {"url": "https://cdn.example.com/a", "protocol": "https"},
        ],
    })

    video = await Downloader(make_config()).get_video(PAGE_URL, "bestvideo+bestaudio")

    assert video.urls == ("https://cdn.example.com/v", "https://cdn.example.com/a")
    assert video.protocol == "https+https"
    assert video.filename == "Test Clip-abc123.mkv"


@pytest.mark.asyncio
async def test_get_video_playlist(monkeypatch):
    fake_run(monkeypatch, info={"_type": "playlist", "id": "PL1", "title": "Mix", "entries": []})

    video = await Downloader(make_config()).get_video(PAGE_URL)

    assert video.is_playlist
    assert video.urls == ()


@pytest.mark.asyncio
async def test_get_video_classifies_failure(monkeypatch):
    fake_run(monkeypatch, returncode=1, stderr=b"ERROR: This video is protected by a password")

    with pytest.raises(PasswordRequiredError):
        await Downloader(make_config()).get_video(PAGE_URL)


@pytest.mark.asyncio
async def test_get_video_bad_json(monkeypatch):
    async def run(cmd, timeout):
        return CompletedProcess(returncode=0, stdout=b"not json", stderr=b"")

    monkeypatch.setattr(SubprocessExecutor, "run", staticmethod(run))

    with pytest.raises(ExtractionError):
        await Downloader(make_config()).get_video(PAGE_URL)


@pytest.mark.asyncio
@pytest.mark.parametrize("raised,expected", [
    (asyncio.TimeoutError(), ExtractionError),
    (FileNotFoundError(2, "No such file"), ProcessSpawnError),
])
async def test_get_video_process_failures(monkeypatch, raised, expected):
    async def run(cmd, timeout):
        raise raised

    monkeypatch.setattr(SubprocessExecutor, "run", staticmethod(run))

    with pytest.raises(expected):
        await Downloader(make_config()).get_video(PAGE_URL)


@pytest.mark.asyncio
async def test_get_video_empty_url():
    with pytest.raises(EmptyUrlError):
        await Downloader(make_config()).get_video("")


@pytest.mark.asyncio
async def test_with_format_leaves_original_untouched(monkeypatch):
    calls = fake_run(monkeypatch, info={"id": "abc123", "title": "Test Clip", "ext": "mp3", "url": "https://cdn/x.mp3"})
    original = make_video(password="pw")

    updated = await Downloader(make_config()).with_format(original, "mp3")

    assert updated.requested_format == "mp3"
    assert updated.password == "pw"
    assert original.requested_format == "best/bestvideo"
    assert original.ext == "mp4"
    assert "--video-password" in calls[0]


@pytest.mark.parametrize("video,error_type", [
    (make_video(is_playlist=True, protocol="m3u8"), PlaylistConversionError),
    (make_video(protocol="m3u8"), InvalidProtocolConversionError),
    (make_video(protocol="ism"), InvalidProtocolConversionError),
    (make_video(urls=("https://v", "https://a")), RemuxError),
    (make_video(urls=()), ExtractionError),
])
def test_check_conversion(video, error_type):
    with pytest.raises(error_type):
        Downloader.check_conversion(video)


def test_check_conversion_accepts_single_http_url():
    Downloader.check_conversion(make_video())


def custom_binaries_config():
    cfg = make_config(convert=True)
    cfg.ytdlp.binary = "/opt/bin/yt-dlp"
    cfg.ytdlp.ffmpeg_binary = "/opt/bin/ffmpeg"
    cfg.ytdlp.output_template = "%(id)s.%(ext)s"
    cfg.ytdlp.socket_timeout = 42
    return cfg


@pytest.mark.asyncio
async def test_downloader_config_reaches_ytdlp(monkeypatch):
    calls = fake_run(monkeypatch, info={"id": "abc123", "title": "Test Clip", "url": "https://cdn/x.mp4"})

    await Downloader(custom_binaries_config()).get_video(PAGE_URL, "best")

    cmd = calls[0]
    assert cmd[0] == "/opt/bin/yt-dlp"
    assert cmd[cmd.index("-o") + 1] == "%(id)s.%(ext)s"
    assert cmd[cmd.index("--socket-timeout") + 1] == "42"


@pytest.mark.asyncio
async def test_downloader_config_reaches_ffmpeg(monkeypatch):
    spawned = []

    async def spawn(cmd, chunk_size):
        spawned.append(cmd)
        return object()

    monkeypatch.setattr("mediagate.services.downloader.ProcessStream.spawn", spawn)

    downloader = Downloader(custom_binaries_config())
    await downloader.get_audio_stream(make_video(), 128)
    await downloader.get_pipe_stream(make_video())

    assert spawned[0][0] == "/opt/bin/ffmpeg"
    assert spawned[1][0] == "/opt/bin/yt-dlp"
