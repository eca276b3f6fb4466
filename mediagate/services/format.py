import logging
from typing import Optional

from mediagate.config.settings import Config, config
from mediagate.models.internal import MediaRequest, ResolvedPlan, ResolvedVideo, Strategy, StreamAction
from mediagate.services.downloader import M3U8_PROTOCOLS, Downloader
from mediagate.services.errors import ExtractionError

HTTP_PROTOCOLS = ("http", "https")

logger = logging.getLogger(__name__)


def add_http_to_format(format_str: str) -> str:
    """Restrict every alternative of a format string to plain HTTP(S) downloads"""
    alternatives = []
    for part in format_str.split("/"):
        alternatives.append(f"{part}[protocol=https]")
        alternatives.append(f"{part}[protocol=http]")
    return "/".join(alternatives)


def stream_transport(video: ResolvedVideo) -> StreamAction:
    """How raw bytes of a resolved video are streamed through the server"""
    if video.protocol in M3U8_PROTOCOLS:
        return StreamAction.M3U
    if len(video.urls) > 1:
        return StreamAction.REMUX
    if video.urls and video.protocol in HTTP_PROTOCOLS:
        return StreamAction.HTTP
    return StreamAction.PIPE


class FormatResolver:
    """Resolve a request to a video and a delivery action"""

    def __init__(self, downloader: Downloader, cfg: Optional[Config] = None):
        self.downloader = downloader
        self.config = cfg or config

    @property
    def fallback_audio_format(self) -> str:
        return f"bestaudio/{self.config.ytdlp.default_format}"

    async def resolve(self, request: MediaRequest, strategy: Strategy) -> ResolvedPlan:
        if strategy == Strategy.CUSTOM:
            return await self._resolve_custom(request)
        if strategy == Strategy.AUDIO:
            return await self._resolve_audio(request)
        return await self._resolve_raw(request)

    async def _resolve_raw(self, request: MediaRequest) -> ResolvedPlan:
        video = await self.downloader.get_video(request.url, self.config.ytdlp.default_format, request.password)

        if self.config.convert.stream:
            return ResolvedPlan(video=video, action=stream_transport(video))

        if len(video.urls) > 1:
            return ResolvedPlan(video=video, action=StreamAction.REMUX)
        if not video.urls:
            raise ExtractionError("No downloadable URL found")
        return ResolvedPlan(video=video, action=StreamAction.REDIRECT, location=video.urls[0])

    async def _resolve_audio(self, request: MediaRequest) -> ResolvedPlan:
        if request.seek.requested:
            # Seeking needs re-encoding, a direct mp3 can't honor it
            return await self._resolve_audio_convert(request)

        try:
            if self.config.convert.stream:
                video = await self.downloader.get_video(request.url, "mp3", request.password)
                return ResolvedPlan(video=video, action=StreamAction.AUDIO)

            video = await self.downloader.get_video(request.url, add_http_to_format("mp3"), request.password)
        except ExtractionError as e:
            logger.info(f"No direct mp3 available, converting instead: {e}")
            return await self._resolve_audio_convert(request)

        if video.urls:
            return ResolvedPlan(video=video, action=StreamAction.REDIRECT, location=video.urls[0])

        logger.info(f"mp3 format {video.format_id} has no direct URL, converting instead")
        fallback = await self.downloader.with_format(video, self.fallback_audio_format)
        return ResolvedPlan(video=fallback, action=StreamAction.AUDIO_CONVERT)

    async def _resolve_audio_convert(self, request: MediaRequest) -> ResolvedPlan:
        video = await self.downloader.get_video(request.url, self.fallback_audio_format, request.password)
        return ResolvedPlan(video=video, action=StreamAction.AUDIO_CONVERT)

    async def _resolve_custom(self, request: MediaRequest) -> ResolvedPlan:
        video = await self.downloader.get_video(request.url, self.config.ytdlp.default_format, request.password)
        return ResolvedPlan(video=video, action=StreamAction.CUSTOM_CONVERT)
