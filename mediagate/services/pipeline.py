import logging
from typing import Dict, Optional

from mediagate.config.settings import Config, config
from mediagate.models.internal import MediaRequest, ResolvedPlan, StreamAction
from mediagate.models.outcome import StreamHandle
from mediagate.services.downloader import Downloader
from mediagate.services.errors import RemuxDisabledError
from mediagate.services.format import stream_transport
from mediagate.utils.filename import content_disposition

logger = logging.getLogger(__name__)


class StreamingPipeline:
    """
    Turn a resolved plan into response headers and, when the method needs a
    body, a live byte stream. Validation always runs, so HEAD and GET fail the
    same way; only the spawn is skipped without a body.
    """

    def __init__(self, downloader: Downloader, cfg: Optional[Config] = None):
        self.downloader = downloader
        self.config = cfg or config

    def build_headers(self, plan: ResolvedPlan, request: MediaRequest) -> Dict[str, str]:
        video = plan.video
        action = plan.action

        if action in (StreamAction.AUDIO, StreamAction.AUDIO_CONVERT):
            content_type, filename = "audio/mpeg", video.filename_with_extension("mp3")
        elif action == StreamAction.CUSTOM_CONVERT:
            content_type = f"video/{request.custom_format}"
            filename = video.filename_with_extension(request.custom_format)
        elif action == StreamAction.REMUX:
            content_type, filename = "video/x-matroska", video.filename_with_extension("mkv")
        else:
            content_type, filename = f"video/{video.ext}", video.filename

        return {
            "Content-Type": content_type,
            "Content-Disposition": content_disposition(filename),
            "X-Content-Type-Options": "nosniff",
            "Cache-Control": "no-cache",
        }

    def validate(self, plan: ResolvedPlan) -> None:
        action = plan.action
        if action == StreamAction.AUDIO:
            action = stream_transport(plan.video)

        if action == StreamAction.REMUX:
            if not self.config.convert.remux:
                raise RemuxDisabledError()
            self.downloader.check_remux(plan.video)
        elif action in (StreamAction.AUDIO_CONVERT, StreamAction.CUSTOM_CONVERT):
            self.downloader.check_conversion(plan.video)

    async def open(self, plan: ResolvedPlan, request: MediaRequest, with_body: bool) -> StreamHandle:
        headers = self.build_headers(plan, request)
        self.validate(plan)

        if not with_body:
            return StreamHandle(headers=headers)

        body = await self._spawn(plan, request)
        return StreamHandle(headers=headers, body=body)

    async def _spawn(self, plan: ResolvedPlan, request: MediaRequest):
        video = plan.video
        action = plan.action
        convert = self.config.convert

        if action == StreamAction.AUDIO_CONVERT:
            seek_from, seek_to = (request.seek.start, request.seek.end) if convert.convert_seek else (None, None)
            return await self.downloader.get_audio_stream(video, convert.audio_bitrate, seek_from, seek_to)

        if action == StreamAction.CUSTOM_CONVERT:
            bitrate = request.custom_bitrate or convert.audio_bitrate
            return await self.downloader.get_converted_stream(video, bitrate, request.custom_format)

        if action == StreamAction.AUDIO:
            action = stream_transport(video)

        if action == StreamAction.REMUX:
            return await self.downloader.get_remux_stream(video)
        if action == StreamAction.M3U:
            return await self.downloader.get_m3u_stream(video)
        if action == StreamAction.HTTP:
            return await self.downloader.get_http_stream(video)
        if action == StreamAction.PIPE:
            return await self.downloader.get_pipe_stream(video)

        raise ValueError(f"{action} does not produce a stream")
