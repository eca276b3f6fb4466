import os
from enum import Enum
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict


class Strategy(str, Enum):
    """Response strategy picked for a request"""
    RAW = "raw"
    AUDIO = "audio"
    CUSTOM = "custom"


class StreamAction(str, Enum):
    """How a resolved video reaches the client"""
    REDIRECT = "redirect"
    HTTP = "http"
    PIPE = "pipe"
    M3U = "m3u"
    REMUX = "remux"
    AUDIO = "audio"
    AUDIO_CONVERT = "audio_convert"
    CUSTOM_CONVERT = "custom_convert"


class SeekRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: Optional[str] = None
    end: Optional[str] = None

    @property
    def requested(self) -> bool:
        return bool(self.start) or bool(self.end)


class MediaRequest(BaseModel):
    """Download request (separated from HTTP concerns)"""
    model_config = ConfigDict(frozen=True)

    url: Optional[str] = None
    password: Optional[str] = None
    audio: bool = False
    # customConvert is a presence switch, its value is ignored
    custom_convert: bool = False
    custom_format: Optional[str] = None
    custom_bitrate: Optional[int] = None
    seek: SeekRange = SeekRange()


class ResolvedVideo(BaseModel):
    """Result of a yt-dlp extraction for one requested format"""
    model_config = ConfigDict(frozen=True)

    webpage_url: str
    requested_format: str
    format_id: Optional[str] = None
    ext: str = "mp4"
    protocol: str = ""
    title: str = "video"
    id: Optional[str] = None
    urls: Tuple[str, ...] = ()
    http_headers: Dict[str, str] = {}
    is_playlist: bool = False
    password: Optional[str] = None
    filename: str = "video.mp4"

    def filename_with_extension(self, ext: str) -> str:
        root, _ = os.path.splitext(self.filename)
        return f"{root}.{ext}"


class ResolvedPlan(BaseModel):
    """Resolved video plus the way it should be delivered"""
    model_config = ConfigDict(frozen=True)

    video: ResolvedVideo
    action: StreamAction
    location: Optional[str] = None
