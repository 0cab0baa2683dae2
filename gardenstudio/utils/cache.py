"""
Simple caching utilities for performance optimization.

Provides time-based caching for the subscription row, which every gated
API call needs and which only changes on webhooks or usage increments.
"""

from __future__ import annotations
from cachetools import TTLCache
from typing import Callable, Any
from functools import wraps
import threading

# Cache configuration constants
SUBSCRIPTION_CACHE_TTL_SECONDS = 60
SUBSCRIPTION_CACHE_MAX_ENTRIES = 2000

# Thread-safe subscription cache (60-second TTL, max 2000 entries)
# Key format: "subscription:{user_id}"
_subscription_cache = TTLCache(maxsize=SUBSCRIPTION_CACHE_MAX_ENTRIES, ttl=SUBSCRIPTION_CACHE_TTL_SECONDS)
_cache_lock = threading.Lock()


def cache_subscription(func: Callable) -> Callable:
    """
    Decorator to cache a user's subscription row for 60 seconds.

    Misses (None results) are not cached, so a user who just finished
    checkout is picked up on the next request.

    Usage:
        @cache_subscription
        def get_subscription(user_id):
            # Supabase query...
            return row
    """
    @wraps(func)
    def wrapper(user_id: str) -> Any:
        cache_key = f"subscription:{user_id}"

        with _cache_lock:
            if cache_key in _subscription_cache:
                return _subscription_cache[cache_key]

        result = func(user_id)

        if result is not None:
            with _cache_lock:
                _subscription_cache[cache_key] = result

        return result

    return wrapper


def invalidate_subscription_cache(user_id: str | None) -> None:
    """
    Drop the cached subscription row for a user.

    Called when:
    - A Stripe webhook updates the row
    - A monthly usage counter is incremented or reset
    """
    if not user_id:
        return
    with _cache_lock:
        _subscription_cache.pop(f"subscription:{user_id}", None)


def clear_all_subscription_cache() -> None:
    """
    Clear the entire subscription cache.

    Used by webhooks that only know the Stripe customer id, and by tests.
    """
    with _cache_lock:
        _subscription_cache.clear()
