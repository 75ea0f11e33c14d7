"""Read-through result cache with per-entry TTL and pattern invalidation.

Entries are keyed by operation name plus a normalized argument object (see
:func:`create_cache_key`). Each CLI invocation is a separate process, so the
cache can be persisted to a JSON file; persistence is best-effort and a
failure to read or write the file never fails the operation.
"""

import json
import logging
import os
import re
import tempfile
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, Pattern, Union

logger = logging.getLogger("outlook_mcp_client.cache")

DEFAULT_CACHE_DIR = Path.home() / ".cache" / "outlook-cli"


class TTL:
    """TTL tiers in seconds."""
    FIVE_MINUTES = 5 * 60
    FIFTEEN_MINUTES = 15 * 60
    HOUR = 60 * 60


def create_cache_key(name: str, params: Optional[Dict[str, Any]] = None) -> str:
    """Build a deterministic key from an operation name and its arguments.

    ``None`` values are dropped and keys are sorted, so calls that differ only
    in option order or in unset options share an entry.
    """
    normalized = {k: v for k, v in (params or {}).items() if v is not None}
    if not normalized:
        return name
    return f"{name}:{json.dumps(normalized, sort_keys=True, separators=(',', ':'), default=str)}"


@dataclass
class CacheEntry:
    """A cached value with its creation time and TTL."""
    value: Any
    created_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return now < self.created_at + self.ttl


class ResultCache:
    """Key/value store with TTL, regex invalidation and hit/miss statistics.

    Args:
        namespace: Name of the cache, also used for the file name.
        default_ttl: TTL in seconds when none is given.
        path: JSON file to persist entries to. ``None`` keeps them in memory.
        clock: Time source, in seconds.
    """

    def __init__(
        self,
        namespace: str = "outlook-email-manager",
        default_ttl: float = TTL.FIVE_MINUTES,
        path: Optional[Path] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.namespace = namespace
        self.default_ttl = default_ttl
        self.path = path
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._enabled = True
        self._hits = 0
        self._misses = 0
        self._load()

    # =========================================================================
    # Persistence
    # =========================================================================

    def _load(self):
        if self.path is None or not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            now = self._clock()
            for key, raw in data.get("entries", {}).items():
                entry = CacheEntry(**raw)
                if entry.is_fresh(now):
                    self._entries[key] = entry
            stats = data.get("stats", {})
            self._hits = int(stats.get("hits", 0))
            self._misses = int(stats.get("misses", 0))
        except (OSError, ValueError, TypeError) as e:
            logger.warning("Ignoring unreadable cache file %s: %s", self.path, e)
            self._entries.clear()

    def _save(self):
        if self.path is None:
            return
        data = {
            "entries": {k: asdict(v) for k, v in self._entries.items()},
            "stats": {"hits": self._hits, "misses": self._misses},
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, default=str)
            os.replace(tmp, self.path)
        except (OSError, TypeError, ValueError) as e:
            logger.warning("Could not write cache file %s: %s", self.path, e)

    # =========================================================================
    # Enable / disable
    # =========================================================================

    @property
    def enabled(self) -> bool:
        return self._enabled

    def enable(self):
        self._enabled = True

    def disable(self):
        self._enabled = False

    # =========================================================================
    # Read / write
    # =========================================================================

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the fresh entry for ``key``, dropping it if expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not entry.is_fresh(self._clock()):
            del self._entries[key]
            return None
        return entry

    def set(self, key: str, value: Any, ttl: Optional[float] = None):
        self._entries[key] = CacheEntry(
            value=value,
            created_at=self._clock(),
            ttl=self.default_ttl if ttl is None else ttl,
        )
        self._save()

    async def get_or_fetch(
        self,
        key: str,
        producer: Callable[[], Awaitable[Any]],
        ttl: Optional[float] = None,
        bypass_cache: bool = False,
    ) -> Any:
        """Return the cached value for ``key`` or call ``producer`` and store it.

        With ``bypass_cache`` or a disabled cache the producer is always
        called and nothing is stored. Concurrent misses on one key are not
        coalesced; each calls the producer.
        """
        if bypass_cache or not self._enabled:
            return await producer()

        entry = self.get(key)
        if entry is not None:
            self._hits += 1
            logger.debug("Cache hit: %s", key)
            self._save()
            return entry.value

        self._misses += 1
        logger.debug("Cache miss: %s", key)
        value = await producer()
        self.set(key, value, ttl)
        return value

    # =========================================================================
    # Invalidation
    # =========================================================================

    def invalidate(self, key: str) -> bool:
        """Remove one entry. Returns True if it existed."""
        if self._entries.pop(key, None) is None:
            return False
        self._save()
        return True

    def invalidate_pattern(self, pattern: Union[str, Pattern[str]]) -> int:
        """Remove every entry whose key matches ``pattern``. Returns the count."""
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        keys = [k for k in self._entries if regex.search(k)]
        for key in keys:
            del self._entries[key]
        if keys:
            logger.debug("Invalidated %d entries matching %s", len(keys), regex.pattern)
            self._save()
        return len(keys)

    def clear(self) -> int:
        """Remove all entries and reset statistics. Returns the count removed."""
        count = len(self._entries)
        self._entries.clear()
        self._hits = 0
        self._misses = 0
        self._save()
        return count

    def keys(self) -> list:
        now = self._clock()
        return sorted(k for k, v in self._entries.items() if v.is_fresh(now))

    def get_stats(self) -> Dict[str, Any]:
        """Hit/miss counts and entry totals."""
        lookups = self._hits + self._misses
        return {
            "namespace": self.namespace,
            "enabled": self._enabled,
            "entries": len(self.keys()),
            "hits": self._hits,
            "misses": self._misses,
            "hitRate": round(self._hits / lookups, 4) if lookups else 0.0,
            "persistent": self.path is not None,
        }
