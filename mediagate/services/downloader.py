import asyncio
import json
import logging
import os
from typing import Optional

from mediagate.config.settings import Config, config
from mediagate.infra.http import get_http_client
from mediagate.models.internal import ResolvedVideo
from mediagate.services.errors import (
    EmptyUrlError,
    ExtractionError,
    InvalidProtocolConversionError,
    PlaylistConversionError,
    ProcessSpawnError,
    RemuxError,
    classify_ytdlp_error,
)
from mediagate.services.stream import HttpStream, ProcessStream
from mediagate.services.ytdlp import FFmpegCommandBuilder, SubprocessExecutor, YTDLPCommandBuilder
from mediagate.utils.filename import sanitize_filename

M3U8_PROTOCOLS = ("m3u8", "m3u8_native")
DASH_PROTOCOL = "http_dash_segments"
UNCONVERTIBLE_PROTOCOLS = M3U8_PROTOCOLS + (DASH_PROTOCOL, "f4m", "ism")

logger = logging.getLogger(__name__)


class Downloader:
    """
    yt-dlp/ffmpeg backed downloader.

    Extraction goes through `yt-dlp --dump-single-json`; every stream method
    spawns exactly one process (or opens one upstream connection) and hands it
    back unread.
    """

    def __init__(self, cfg: Optional[Config] = None):
        self.config = cfg or config
        self.ytdlp = YTDLPCommandBuilder(self.config)
        self.ffmpeg = FFmpegCommandBuilder(self.config)

    async def get_video(
        self,
        url: Optional[str],
        format_str: Optional[str] = None,
        password: Optional[str] = None
    ) -> ResolvedVideo:
        """Extract the video at `url` for the requested format"""
        if not url:
            raise EmptyUrlError()

        format_str = format_str or self.config.ytdlp.default_format
        cmd = self.ytdlp.build_info_command(url, format_str, password)

        try:
            result = await SubprocessExecutor.run(cmd, timeout=self.config.download.info_timeout)
        except asyncio.TimeoutError:
            raise ExtractionError("yt-dlp timed out")
        except OSError as e:
            raise ProcessSpawnError(f"Could not start {cmd[0]}: {e}") from e

        if result.returncode != 0:
            raise classify_ytdlp_error(result.stderr.decode(errors="ignore"))

        try:
            info = json.loads(result.stdout.decode())
        except ValueError:
            raise ExtractionError("Could not parse yt-dlp output")

        return self._video_from_info(url, format_str, password, info)

    async def with_format(self, video: ResolvedVideo, format_str: str) -> ResolvedVideo:
        """Re-extract the same page with another format; `video` is left untouched"""
        return await self.get_video(video.webpage_url, format_str, video.password)

    @staticmethod
    def _video_from_info(url: str, format_str: str, password: Optional[str], info: dict) -> ResolvedVideo:
        requested = [f for f in info.get("requested_formats") or [] if f.get("url")]

        if requested:
            urls = tuple(f["url"] for f in requested)
            http_headers = requested[0].get("http_headers") or info.get("http_headers") or {}
            protocol = info.get("protocol") or "+".join(f.get("protocol", "") for f in requested)
        else:
            urls = (info["url"],) if info.get("url") else ()
            http_headers = info.get("http_headers") or {}
            protocol = info.get("protocol") or ""

        title = info.get("title") or "video"
        ext = info.get("ext") or "mp4"
        raw_filename = info.get("_filename") or info.get("filename") or f"{title}-{info.get('id', 'video')}.{ext}"

        return ResolvedVideo(
            webpage_url=info.get("webpage_url") or url,
            requested_format=format_str,
            format_id=info.get("format_id"),
            ext=ext,
            protocol=protocol,
            title=title,
            id=info.get("id"),
            urls=urls,
            http_headers={str(k): str(v) for k, v in http_headers.items()},
            is_playlist=info.get("_type") == "playlist",
            password=password,
            filename=sanitize_filename(os.path.basename(raw_filename)) or f"video.{ext}",
        )

    @staticmethod
    def check_conversion(video: ResolvedVideo) -> None:
        """Raise if ffmpeg cannot convert this video from its direct URL"""
        if video.is_playlist:
            raise PlaylistConversionError()
        if video.protocol in UNCONVERTIBLE_PROTOCOLS:
            raise InvalidProtocolConversionError(video.protocol)
        if len(video.urls) > 1:
            raise RemuxError("Can not convert and merge video formats")
        if not video.urls:
            raise ExtractionError("No downloadable URL found")

    @staticmethod
    def check_remux(video: ResolvedVideo) -> None:
        if len(video.urls) != 2:
            raise RemuxError()

    async def get_audio_stream(
        self,
        video: ResolvedVideo,
        bitrate: int,
        seek_from: Optional[str] = None,
        seek_to: Optional[str] = None
    ) -> ProcessStream:
        self.check_conversion(video)
        cmd = self.ffmpeg.build_audio_command(video, bitrate, seek_from, seek_to)
        return await ProcessStream.spawn(cmd, chunk_size=self.config.download.chunk_size)

    async def get_converted_stream(self, video: ResolvedVideo, bitrate: int, file_format: str) -> ProcessStream:
        self.check_conversion(video)
        cmd = self.ffmpeg.build_convert_command(video, bitrate, file_format)
        return await ProcessStream.spawn(cmd, chunk_size=self.config.download.chunk_size)

    async def get_m3u_stream(self, video: ResolvedVideo) -> ProcessStream:
        if not video.urls:
            raise ExtractionError("No downloadable URL found")
        cmd = self.ffmpeg.build_m3u_command(video)
        return await ProcessStream.spawn(cmd, chunk_size=self.config.download.chunk_size)

    async def get_remux_stream(self, video: ResolvedVideo) -> ProcessStream:
        self.check_remux(video)
        cmd = self.ffmpeg.build_remux_command(video)
        return await ProcessStream.spawn(cmd, chunk_size=self.config.download.chunk_size)

    async def get_pipe_stream(self, video: ResolvedVideo) -> ProcessStream:
        """Let yt-dlp fetch the media itself (DASH and other segmented protocols)"""
        cmd = self.ytdlp.build_pipe_command(video)
        return await ProcessStream.spawn(cmd, chunk_size=self.config.download.chunk_size)

    async def get_http_stream(self, video: ResolvedVideo) -> HttpStream:
        if not video.urls:
            raise ExtractionError("No downloadable URL found")
        return await HttpStream.open(
            get_http_client(),
            video.urls[0],
            headers=video.http_headers,
            chunk_size=self.config.download.chunk_size
        )


downloader = Downloader()
