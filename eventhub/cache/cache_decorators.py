"""
Cache decorators for easy function result caching.
"""
from functools import wraps
from typing import Any, Awaitable, Callable, Optional
from eventhub.cache.redis_client import cache
from eventhub.core.logging import logger


def cached(
    key_prefix: str,
    expire: int = 300,
    key_func: Optional[Callable[..., Awaitable[str]]] = None,
):
    """
    Decorator to cache function results with configurable TTL.

    The key is ``<key_prefix>:<arg>:<arg>...``. ``key_func`` replaces that
    with an async builder called with the function's arguments, e.g. to put
    a version counter into the key.

    Usage:
        @cached('attendance:summary', expire=60, key_func=summary_cache_key)
        async def get_attendance_summary(db, event_id):
            return summary
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            if key_func is not None:
                key = await key_func(*args, **kwargs)
            else:
                key = cache_key(key_prefix, *args, **kwargs)

            cached_value = await cache.get(key)
            if cached_value is not None:
                logger.debug(f"Cache hit for key: {key}")
                return cached_value

            logger.debug(f"Cache miss for key: {key}")
            result = await func(*args, **kwargs)
            if result is not None:
                await cache.set(key, result, expire)
            return result
        return wrapper
    return decorator


def cache_key(key_prefix: str, *args, **kwargs) -> str:
    """
    Build the cache key for a call, skipping SQLAlchemy session arguments.
    """
    parts = [key_prefix]
    for arg in args:
        if 'Session' in str(type(arg)):
            continue
        parts.append(str(arg))
    for name in sorted(kwargs):
        parts.append(f"{name}={kwargs[name]}")
    return ":".join(parts)
