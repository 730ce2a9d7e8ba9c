"""
Simple memory-based fixed-window rate limiter, keyed by caller.
Per-process only; put a shared limiter in front of multi-worker deployments.
"""
import threading
import time
from typing import Dict, Tuple

from fastapi import Request, HTTPException

# Expired windows are swept out at most this often (seconds)
SWEEP_INTERVAL = 60

# In-memory storage: {key: (window_ends_at, count)}
_rate_limit_store: Dict[str, Tuple[float, int]] = {}
_lock = threading.Lock()
_last_sweep = 0.0
_clock = time.time


def _caller_key(request: Request) -> str:
    user_id = request.headers.get("x-user-id")
    if user_id:
        return f"user:{user_id}"
    return f"ip:{request.client.host if request.client else 'unknown'}"


def _sweep_expired(now: float) -> None:
    """Drop finished windows. Caller holds the lock."""
    global _last_sweep
    if now - _last_sweep < SWEEP_INTERVAL:
        return
    for key in [k for k, (ends_at, _) in _rate_limit_store.items() if ends_at <= now]:
        del _rate_limit_store[key]
    _last_sweep = now


def rate_limit(requests: int, window: int):
    """
    Dependency for rate limiting.
    Example: Depends(rate_limit(requests=5, window=60))
    """
    def limiter(request: Request):
        key = f"{request.url.path}|{_caller_key(request)}"
        now = _clock()

        with _lock:
            _sweep_expired(now)
            ends_at, count = _rate_limit_store.get(key, (now + window, 0))
            if now >= ends_at:
                ends_at, count = now + window, 0

            if count >= requests:
                raise HTTPException(
                    status_code=429,
                    detail=f"Rate limit exceeded. Try again in {int(ends_at - now) + 1} seconds.",
                )

            _rate_limit_store[key] = (ends_at, count + 1)
        return True

    return limiter


def tracked_keys() -> int:
    with _lock:
        return len(_rate_limit_store)


def reset_rate_limits() -> None:
    global _last_sweep
    with _lock:
        _rate_limit_store.clear()
        _last_sweep = 0.0
