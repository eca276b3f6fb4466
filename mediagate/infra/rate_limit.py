import functools

from fastapi import HTTPException, Request
from redis.exceptions import RedisError

from mediagate.config.settings import config
from mediagate.i18n import i18n
from mediagate.infra.redis import get_redis
from mediagate.utils.locale import get_locale

# Fixed window counter; returns {allowed, retry_after}
RATE_LIMIT_SCRIPT = """
local key = KEYS[1]
local limit = tonumber(ARGV[1])
local window = tonumber(ARGV[2])

local current = redis.call('INCR', key)
if current == 1 then
    redis.call('EXPIRE', key, window)
end

if current > limit then
    return {0, redis.call('TTL', key)}
end

return {1, 0}
"""


class RedisRateLimiter:
    """Per client/endpoint rate limiter, a no-op without Redis"""

    async def __call__(self, request: Request) -> bool:
        if not config.rate_limit.enabled:
            return True

        redis = get_redis()
        if not redis:
            return True

        client_ip = request.client.host if request.client else "unknown"
        key = f"rate:{client_ip}:{request.url.path}"

        try:
            allowed, ttl = await redis.eval(
                RATE_LIMIT_SCRIPT,
                1,
                key,
                config.rate_limit.max_requests,
                config.rate_limit.window_seconds
            )
        except RedisError:
            # Limiter outage must not take downloads down with it
            return True

        if not allowed:
            _ = functools.partial(i18n.get, locale=get_locale(request.headers.get("accept-language")))
            raise HTTPException(
                status_code=429,
                detail=_("error.rate_limit", seconds=ttl),
                headers={"Retry-After": str(ttl)}
            )

        return True


rate_limiter = RedisRateLimiter()
