from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError
from rich.console import Console

from mediagate.config.settings import config
from mediagate.core.state import state

ACTIVE_COUNTER_KEY = "active_streams_count"
ACTIVE_SLOT_PATTERN = "active_stream:*"

console = Console()


async def recover_active_counter(redis_client: aioredis.Redis) -> int:
    """Rebuild the active stream counter from surviving slot keys"""
    slots = 0
    async for _ in redis_client.scan_iter(match=ACTIVE_SLOT_PATTERN, count=100):
        slots += 1
    await redis_client.set(ACTIVE_COUNTER_KEY, slots)
    return slots


async def init_redis() -> Optional[aioredis.Redis]:
    """Connect to Redis; the service runs without it (limits disabled)"""
    try:
        redis_client = aioredis.from_url(
            config.redis.url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=config.redis.socket_timeout
        )
        await redis_client.ping()
        recovered = await recover_active_counter(redis_client)
    except (RedisError, OSError) as e:
        console.print(f"[yellow]⚠ Redis connection failed: {e}[/yellow]")
        state.redis = None
        return None

    state.redis = redis_client
    if recovered:
        console.print(f"[yellow]✓ Redis connected (recovered {recovered} active streams)[/yellow]")
    else:
        console.print("[green]✓ Redis connected[/green]")
    return redis_client


def get_redis() -> Optional[aioredis.Redis]:
    """Get Redis client from state"""
    return state.redis


async def close_redis() -> None:
    if state.redis:
        await state.redis.aclose()
        state.redis = None
        console.print("[dim]✓ Redis connection closed[/dim]")
