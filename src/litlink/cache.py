"""Disk cache for decoded API metadata, including lookups the API answered with "no such record"."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import diskcache

DEFAULT_TTL = 7 * 24 * 3600
MISS_TTL = 24 * 3600


class MetadataCache:
    """Persistent diskcache store for decoded API payloads.

    Entries are keyed by (api_name, key, params) and tagged with the API
    name, so one API's entries can be evicted on their own. A lookup the
    API answered with "not found" is stored as a miss and expires after
    ``miss_ttl``; found records live for ``ttls[api_name]`` or
    ``default_ttl``. Hit/miss counters are kept by diskcache itself.
    """

    def __init__(
        self,
        cache_dir: str | Path,
        default_ttl: int = DEFAULT_TTL,
        miss_ttl: int = MISS_TTL,
        ttls: dict[str, int] | None = None,
    ) -> None:
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self._cache = diskcache.Cache(str(self.cache_dir), size_limit=512 * 1024 ** 2)  # 512MB
        self._cache.stats(enable=True)
        self.default_ttl = default_ttl
        self.miss_ttl = miss_ttl
        self.ttls = dict(ttls or {})

    def __enter__(self) -> MetadataCache:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @staticmethod
    def _key(api_name: str, key: str, params: dict[str, Any] | None = None) -> str:
        raw = json.dumps([api_name, key, params or {}], sort_keys=True)
        return f"{api_name}:{hashlib.sha256(raw.encode()).hexdigest()}"

    def lookup(self, api_name: str, key: str, params: dict[str, Any] | None = None) -> tuple[bool, Any | None]:
        """Return ``(hit, value)``. A hit whose value is ``None`` is a recorded miss."""
        entry = self._cache.get(self._key(api_name, key, params))
        if entry is None:
            return False, None
        return True, entry["value"]

    def get(self, api_name: str, key: str, params: dict[str, Any] | None = None) -> Any | None:
        return self.lookup(api_name, key, params)[1]

    def set(self, api_name: str, key: str, value: Any,
            params: dict[str, Any] | None = None, ttl: int | None = None) -> None:
        expire = ttl or self.ttls.get(api_name, self.default_ttl)
        self._cache.set(self._key(api_name, key, params), {"value": value}, expire=expire, tag=api_name)

    def set_missing(self, api_name: str, key: str, params: dict[str, Any] | None = None) -> None:
        self._cache.set(self._key(api_name, key, params), {"value": None}, expire=self.miss_ttl, tag=api_name)

    def clear(self, api_name: str | None = None) -> int:
        """Remove every entry, or only ``api_name``'s. Returns the number removed."""
        if api_name:
            return self._cache.evict(api_name)
        return self._cache.clear()

    def stats(self) -> dict[str, Any]:
        hits, misses = self._cache.stats()
        return {
            "size": len(self._cache),
            "volume": self._cache.volume(),
            "hits": hits,
            "misses": misses,
            "directory": str(self.cache_dir),
        }

    def close(self) -> None:
        self._cache.close()
