from fastapi import APIRouter
from redis.exceptions import RedisError

from mediagate.config.settings import config
from mediagate.core.state import state
from mediagate.i18n import i18n

router = APIRouter()


async def redis_status() -> str:
    if not state.redis:
        return i18n.get("response.redis_disabled")
    try:
        await state.redis.ping()
    except (RedisError, OSError):
        return i18n.get("response.redis_disconnected")
    return i18n.get("response.redis_connected")


@router.get("/", name="index")
async def root():
    """Landing endpoint, target of /download without url"""
    return {
        "status": i18n.get("response.status_running"),
        "service": config.api.title,
        "version": config.api.version,
        "ytdlp_version": state.ytdlp_version,
        "ffmpeg_version": state.ffmpeg_version,
        "features": {
            "convert": config.convert.convert,
            "convert_advanced": config.convert.convert_advanced,
            "convert_advanced_formats": config.convert.convert_advanced_formats,
            "convert_seek": config.convert.convert_seek,
            "remux": config.convert.remux,
            "stream": config.convert.stream,
        },
    }


@router.get("/health")
async def health_check():
    """Lightweight health check"""
    return {
        "status": i18n.get("health.status"),
        "redis": await redis_status()
    }
