"""
Rate limiting backed by Redis counters.

Each (action, caller) pair gets a counter that expires after its window.
When Redis is not connected requests are let through.
"""
import logging

from fastapi import Depends, Request
from redis.exceptions import RedisError

from . import core
from .auth import require_self
from .exceptions import RateLimitExceeded

logger = logging.getLogger(__name__)

# action -> (max requests, window in seconds)
RATE_LIMITS = {
    'send_request': (20, 3600),
    'accept_request': (50, 3600),
    'rescind_request': (50, 3600),
    'deny_request': (50, 3600),
    'remove_friend': (50, 3600),
    'image_upload': (10, 3600),
    'login': (40, 60),
}


async def check_rate_limit(caller: str, action: str, limit: int = 100, window: int = 3600) -> bool:
    """Check if caller is within rate limit"""
    if core.REDIS is None:
        return True

    key = f"rate_limit:{action}:{caller}"
    try:
        current = await core.REDIS.incr(key)
        if current == 1:
            await core.REDIS.expire(key, window)
    except RedisError as e:
        logger.warning({'msg': 'rate_limit_check_failed', 'action': action, 'error': str(e)})
        return True
    return current <= limit


async def _enforce(caller: str, action: str):
    limit, window = RATE_LIMITS[action]
    if not await check_rate_limit(caller, action, limit=limit, window=window):
        logger.info({'msg': 'rate_limited', 'action': action, 'caller': caller})
        raise RateLimitExceeded(f'Rate limit exceeded. Too many {action.replace("_", " ")} calls.')


def limit_per_user(action: str):
    """Dependency limiting an authenticated user's calls to ``action``."""
    async def dependency(current_user: dict = Depends(require_self)):
        await _enforce(current_user['id'], action)
    return dependency


def limit_per_ip(action: str):
    async def dependency(request: Request):
        client_ip = request.client.host if request.client else 'unknown'
        await _enforce(client_ip, action)
    return dependency
