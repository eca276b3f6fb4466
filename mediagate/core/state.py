from dataclasses import dataclass
from typing import Optional
from redis.asyncio import Redis

@dataclass
class RuntimeState:
    """Centralized runtime state"""
    redis: Optional[Redis] = None
    ytdlp_version: str = "unknown"
    ffmpeg_version: str = "unknown"
    js_runtime: Optional[str] = None

state = RuntimeState()
