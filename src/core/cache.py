import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class ViewCache:
    """
    Per-path cache for read views.

    Entries expire after `ttl_seconds`; mutating handlers drop the paths they
    affect so the next read sees fresh data. A TTL of 0 turns caching off.
    """

    def __init__(self, ttl_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}

    def get(self, path: str) -> Optional[Any]:
        entry = self._entries.get(path)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[path]
            return None
        return value

    def set(self, path: str, value: Any) -> None:
        if self.ttl_seconds <= 0:
            return
        self._entries[path] = (self._clock() + self.ttl_seconds, value)

    def invalidate(self, *paths: str) -> None:
        for path in paths:
            self._entries.pop(path, None)
        logger.debug(f"Revalidated views: {', '.join(paths)}")

    def clear(self) -> None:
        self._entries.clear()


_view_cache: Optional[ViewCache] = None


def get_view_cache() -> ViewCache:
    global _view_cache
    if _view_cache is None:
        from src.config import settings

        _view_cache = ViewCache(settings.VIEW_CACHE_TTL_SECONDS)
    return _view_cache
