import asyncio
import hashlib
import ipaddress
import logging
import socket
from enum import Enum, auto
from typing import List, Optional
from urllib.parse import urlparse

from redis.exceptions import RedisError

from mediagate.config.settings import config
from mediagate.infra.redis import get_redis

SSRF_CACHE_TTL = 300
ALLOWED_SCHEMES = ("http", "https")

logger = logging.getLogger(__name__)


class UrlValidationResult(Enum):
    """URL validation result without throwing exceptions"""
    OK = auto()
    BLOCKED = auto()
    INVALID = auto()


def is_blocked_ip(ip_str: str) -> bool:
    """Whether an address is off-limits under the current security settings"""
    ip = ipaddress.ip_address(ip_str.split("%", 1)[0])

    if ip.is_loopback:
        return not config.security.allow_localhost
    if ip.is_link_local or ip.is_multicast or ip.is_unspecified:
        return True
    if ip.is_private:
        return not config.security.allow_private_ips
    return False


def host_cache_key(hostname: str) -> str:
    return "ssrf:" + hashlib.sha256(hostname.lower().encode()).hexdigest()[:16]

async def resolve_host(hostname: str) -> Optional[List[str]]:
    """Async DNS resolution, None when the name does not resolve"""
    try:
        addr_info = await asyncio.to_thread(socket.getaddrinfo, hostname, None)
    except socket.gaierror:
        return None
    return [info[4][0] for info in addr_info]


class SecurityValidator:
    """
    Validate the target URL before it reaches yt-dlp.
    Returns a result enum; the endpoint decides how to answer.
    """

    @staticmethod
    async def validate_url(url: str) -> UrlValidationResult:
        parsed = urlparse(url)
        if parsed.scheme not in ALLOWED_SCHEMES or not parsed.hostname:
            return UrlValidationResult.INVALID

        if not config.security.enable_ssrf_protection:
            return UrlValidationResult.OK

        hostname = parsed.hostname
        redis = get_redis()
        cache_key = host_cache_key(hostname)

        if redis:
            try:
                cached = await redis.get(cache_key)
            except RedisError as e:
                logger.warning(f"SSRF cache unavailable, resolving {hostname} directly: {e}")
                redis = None
                cached = None
            if cached == "ok":
                return UrlValidationResult.OK
            if cached == "blocked":
                return UrlValidationResult.BLOCKED

        ips = await resolve_host(hostname)
        if ips is None:
            # Unresolvable names are left to yt-dlp, which fails cleanly
            return UrlValidationResult.OK

        try:
            blocked = any(is_blocked_ip(ip) for ip in ips)
        except ValueError:
            return UrlValidationResult.INVALID

        if redis:
            try:
                await redis.setex(cache_key, SSRF_CACHE_TTL, "blocked" if blocked else "ok")
            except RedisError as e:
                logger.warning(f"Could not cache SSRF verdict for {hostname}: {e}")

        return UrlValidationResult.BLOCKED if blocked else UrlValidationResult.OK
