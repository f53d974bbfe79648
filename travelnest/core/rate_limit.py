"""
In-process rate limiting for the invitation endpoints.

Counters live in memory per worker, so limits are per process. That is enough
to slow down token guessing on verify and invite spam from a single account.
"""
from functools import wraps
from fastapi import HTTPException, status, Request
from typing import Callable, Deque, Dict, Optional
from datetime import datetime, timedelta
from collections import defaultdict, deque
import logging
import threading
from travelnest.core.config import settings

logger = logging.getLogger(__name__)

# identifier -> timestamps of accepted hits, oldest first
_hits: Dict[str, Deque[datetime]] = defaultdict(deque)
_lock = threading.Lock()
_last_sweep = datetime.utcnow()
_sweep_interval = timedelta(minutes=5)
# Longer than any window in use
_retention = timedelta(hours=1)


def reset_rate_limits():
    global _last_sweep
    with _lock:
        _hits.clear()
        _last_sweep = datetime.utcnow()


def _sweep_stale(now: Optional[datetime] = None, force: bool = False) -> int:
    """Drop hits older than the retention period and delete keys left empty. Returns keys deleted."""
    global _last_sweep
    now = now or datetime.utcnow()
    if not force and now - _last_sweep < _sweep_interval:
        return 0

    removed = 0
    with _lock:
        _last_sweep = now
        cutoff_time = now - _retention
        for key in list(_hits.keys()):
            hits = _hits[key]
            while hits and hits[0] <= cutoff_time:
                hits.popleft()
            if not hits:
                del _hits[key]
                removed += 1
    if removed:
        logger.debug(f"[RATE_LIMIT] Swept {removed} idle identifiers")
    return removed


def _caller_identifier(func: Callable, request: Optional[Request], user) -> str:
    """Authenticated callers are limited per user, anonymous ones per client IP."""
    if user is not None:
        return f"user_{user.id}_{func.__name__}"
    if request is not None and request.client:
        return f"ip_{request.client.host}_{func.__name__}"
    return f"anonymous_{func.__name__}"


def _register_hit(identifier: str, max_requests: int, window: timedelta, now: Optional[datetime] = None) -> bool:
    """Record a hit if the caller is under the limit. False means over the limit."""
    now = now or datetime.utcnow()
    _sweep_stale(now)
    with _lock:
        hits = _hits[identifier]
        while hits and hits[0] <= now - window:
            hits.popleft()
        if len(hits) >= max_requests:
            return False
        hits.append(now)
        return True


def rate_limit(max_requests: int = 5, window_seconds: int = 300, identifier_func: Callable = None):
    """
    Limit how often a sync FastAPI endpoint may be called.

    The endpoint must receive its arguments by keyword (FastAPI does this);
    a CurrentUser dependency or a Request parameter identifies the caller.
    identifier_func(request, user) overrides the default identifier.

    Usage:
        @router.post("/endpoint")
        @rate_limit(max_requests=10, window_seconds=900)
        def my_endpoint(current_user: CurrentUser = Depends(get_current_user)):
            ...
    """
    window = timedelta(seconds=window_seconds)

    def decorator(func: Callable):
        @wraps(func)
        def wrapper(*args, **kwargs):
            if not settings.RATE_LIMIT_ENABLED:
                return func(*args, **kwargs)

            request = next((v for v in kwargs.values() if isinstance(v, Request)), None)
            user = next(
                (v for v in kwargs.values() if hasattr(v, "id") and hasattr(v, "email_confirmed")),
                None,
            )
            if identifier_func:
                identifier = identifier_func(request, user)
            else:
                identifier = _caller_identifier(func, request, user)

            if not _register_hit(identifier, max_requests, window):
                logger.warning(f"[RATE_LIMIT] {identifier} exceeded {max_requests} per {window_seconds}s")
                raise HTTPException(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    detail=f"Rate limit exceeded: {max_requests} requests per {window_seconds} seconds. Please try again later.",
                )
            return func(*args, **kwargs)

        return wrapper
    return decorator
