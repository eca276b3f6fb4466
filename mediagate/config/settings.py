import json
import logging
import os
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

CONFIG_PATH = os.getenv("CONFIG_PATH", "config.json")


class RedisConfig(BaseModel):
    url: str = Field(default="redis://redis:6379", description="Redis connection URL")
    socket_timeout: int = Field(default=5, description="Redis socket timeout in seconds")


class RateLimitConfig(BaseModel):
    enabled: bool = Field(default=True, description="Enable rate limiting")
    max_requests: int = Field(default=5, ge=1, description="Max requests per window")
    window_seconds: int = Field(default=60, ge=1, description="Rate limit window in seconds")


class DownloadConfig(BaseModel):
    max_concurrent: int = Field(default=10, ge=1, le=100, description="Max concurrent streams")
    timeout_seconds: int = Field(default=3600, ge=60, description="Stream slot lifetime in seconds")
    info_timeout: float = Field(default=30.0, gt=0, description="Timeout for yt-dlp metadata extraction")
    chunk_size: int = Field(default=64 * 1024, ge=1024, description="Bytes forwarded per chunk")


class SecurityConfig(BaseModel):
    enable_ssrf_protection: bool = Field(default=True, description="Enable SSRF protection")
    allow_private_ips: bool = Field(default=False, description="Allow private IP ranges")
    allow_localhost: bool = Field(default=False, description="Allow localhost access")


class YtDlpConfig(BaseModel):
    binary: str = Field(default="yt-dlp", description="yt-dlp executable")
    ffmpeg_binary: str = Field(default="ffmpeg", description="ffmpeg executable")
    js_runtime: Optional[str] = Field(default=None, description="JS runtime path (e.g., deno:/usr/local/bin/deno)")
    default_format: str = Field(default="best/bestvideo", description="Format used for plain downloads and as conversion fallback")
    socket_timeout: int = Field(default=10, ge=1, description="Socket timeout for yt-dlp")
    retries: int = Field(default=3, ge=0, description="Number of retries for yt-dlp")
    output_template: str = Field(default="%(title)s-%(id)s.%(ext)s", description="Template used to compute filenames")


class ConvertConfig(BaseModel):
    convert: bool = Field(default=False, description="Enable audio (mp3) conversion")
    convert_advanced: bool = Field(default=False, description="Enable custom format conversion")
    convert_advanced_formats: list = Field(
        default=["mp3", "avi", "flv", "wav", "ogg", "webm", "mkv"],
        description="Formats accepted for custom conversion",
    )
    convert_seek: bool = Field(default=False, description="Honor from/to seek bounds when converting")
    remux: bool = Field(default=False, description="Allow merging separate video and audio formats")
    stream: bool = Field(default=False, description="Stream media through the server instead of redirecting")
    audio_bitrate: int = Field(default=128, ge=8, le=512, description="Audio bitrate in kbps")


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    format: str = Field(default="%(message)s", description="Log format")
    enable_rich: bool = Field(default=True, description="Enable rich console logging")

    @field_validator("level")
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()


class I18nConfig(BaseModel):
    default_locale: str = Field(default="en", description="Default locale")
    supported_locales: list = Field(default=["en", "ja"], description="Supported locales")


class ApiConfig(BaseModel):
    title: str = Field(default="mediagate", description="API title")
    description: str = Field(default="Download, stream and convert media through yt-dlp", description="API description")
    version: str = Field(default="1.0.0", description="API version")
    cors_origins: list = Field(default=["*"], description="CORS allowed origins")
    debug: bool = Field(default=False, description="Enable debug mode")


class Config(BaseSettings):
    """Main configuration model"""
    model_config = SettingsConfigDict(env_prefix="MEDIAGATE_", env_nested_delimiter="__")

    redis: RedisConfig = Field(default_factory=RedisConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    download: DownloadConfig = Field(default_factory=DownloadConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    ytdlp: YtDlpConfig = Field(default_factory=YtDlpConfig)
    convert: ConvertConfig = Field(default_factory=ConvertConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    i18n: I18nConfig = Field(default_factory=I18nConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    @classmethod
    def load_from_file(cls, config_path: str) -> "Config":
        """Load configuration from JSON file, environment fills the gaps"""
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                config_data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load config from {config_path}: {e}")
            logger.info("Using environment/default configuration")
            return cls()

        logger.info(f"Configuration loaded from {config_path}")
        return cls(**config_data)

    def save_to_file(self, config_path: str) -> None:
        """Save configuration to JSON file"""
        try:
            with open(config_path, "w", encoding="utf-8") as f:
                json.dump(self.model_dump(exclude_none=True), f, indent=2, ensure_ascii=False)
            logger.info(f"Configuration saved to {config_path}")
        except OSError as e:
            logger.error(f"Failed to save config to {config_path}: {e}")


def load_config(config_path: str = CONFIG_PATH) -> Config:
    """Load configuration with priority: config file > env vars > defaults"""
    if os.path.exists(config_path):
        return Config.load_from_file(config_path)

    logger.info(f"Config file not found at {config_path}, using environment variables")
    return Config()


config = load_config()
