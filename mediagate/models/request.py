import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from mediagate.models.internal import MediaRequest, SeekRange

# ffmpeg duration syntax: plain seconds or [HH:]MM:SS[.ms]
SEEK_PATTERN = re.compile(r"^(\d+(\.\d+)?|(\d{1,2}:)?\d{1,2}:\d{1,2}(\.\d+)?)$")

FALSY_FLAGS = {"", "0", "false", "no", "off"}


def is_truthy_flag(value: Optional[str]) -> bool:
    """Interpret a query flag such as ?audio=1"""
    if value is None:
        return False
    return value.strip().lower() not in FALSY_FLAGS


class DownloadParams(BaseModel):
    """Raw /download parameters, named as they appear in the query string"""
    model_config = ConfigDict(populate_by_name=True)

    url: Optional[str] = Field(None, description="Media page URL")
    password: Optional[str] = Field(None, description="Video password")
    audio: Optional[str] = Field(None, description="Convert to mp3")
    custom_convert: Optional[str] = Field(None, alias="customConvert", description="Custom conversion flag")
    custom_format: Optional[str] = Field(None, alias="customFormat", description="Custom output format")
    custom_bitrate: Optional[int] = Field(None, alias="customBitrate", ge=8, le=512, description="Custom bitrate in kbps")
    seek_from: Optional[str] = Field(None, alias="from", description="Seek start")
    seek_to: Optional[str] = Field(None, alias="to", description="Seek end")

    @field_validator("url", "password", "custom_format", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v.strip() if isinstance(v, str) else v

    @field_validator("custom_bitrate", mode="before")
    @classmethod
    def blank_bitrate(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("custom_format")
    @classmethod
    def validate_custom_format(cls, v):
        if v is not None and not re.fullmatch(r"[A-Za-z0-9]{1,10}", v):
            raise ValueError("Invalid custom format")
        return v.lower() if v else v

    @field_validator("seek_from", "seek_to")
    @classmethod
    def validate_seek(cls, v):
        if v is None or v == "":
            return None
        if not SEEK_PATTERN.match(v):
            raise ValueError("Seek bounds must be seconds or [HH:]MM:SS")
        return v

    def to_request(self) -> MediaRequest:
        """Convert to immutable media request"""
        return MediaRequest(
            url=self.url,
            password=self.password,
            audio=is_truthy_flag(self.audio),
            custom_convert=self.custom_convert is not None,
            custom_format=self.custom_format,
            custom_bitrate=self.custom_bitrate,
            seek=SeekRange(start=self.seek_from, end=self.seek_to),
        )
