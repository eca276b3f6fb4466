import functools
import uuid

from fastapi import HTTPException, Request
from redis.exceptions import RedisError

from mediagate.config.settings import config
from mediagate.i18n import i18n
from mediagate.infra.redis import ACTIVE_COUNTER_KEY, get_redis
from mediagate.utils.locale import get_locale

ACQUIRE_SCRIPT = """
local counter_key = KEYS[1]
local slot_key = KEYS[2]
local limit = tonumber(ARGV[1])
local slot_ttl = tonumber(ARGV[2])
local counter_ttl = tonumber(ARGV[3])

local current = tonumber(redis.call('GET', counter_key) or "0")
if current >= limit then
    return 0
end

redis.call('INCR', counter_key)
redis.call('EXPIRE', counter_key, counter_ttl)
redis.call('SETEX', slot_key, slot_ttl, "1")

return 1
"""


class StreamSlotLimiter:
    """
    Caps the number of concurrent downloads across workers.
    The slot is stored on request.state and must be released with
    release_stream_slot() once the response is done.
    """

    async def __call__(self, request: Request) -> bool:
        redis = get_redis()
        if not redis:
            return True

        slot_key = f"active_stream:{uuid.uuid4()}"
        slot_ttl = config.download.timeout_seconds + 60

        try:
            allowed = await redis.eval(
                ACQUIRE_SCRIPT,
                2,
                ACTIVE_COUNTER_KEY,
                slot_key,
                config.download.max_concurrent,
                slot_ttl,
                slot_ttl * 2
            )
        except RedisError:
            return True

        if not allowed:
            _ = functools.partial(i18n.get, locale=get_locale(request.headers.get("accept-language")))
            raise HTTPException(
                status_code=503,
                detail=_("error.server_busy", max=config.download.max_concurrent)
            )

        request.state.stream_slot_key = slot_key
        return True


async def release_stream_slot(request: Request) -> None:
    """Release the slot taken by StreamSlotLimiter; safe to call more than once"""
    slot_key = getattr(request.state, "stream_slot_key", None)
    if not slot_key:
        return
    request.state.stream_slot_key = None

    redis = get_redis()
    if not redis:
        return

    try:
        if await redis.delete(slot_key):
            await redis.decr(ACTIVE_COUNTER_KEY)
    except RedisError:
        # slot key expires on its own
        return


stream_slot_limiter = StreamSlotLimiter()
