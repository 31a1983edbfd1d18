from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable

DEFAULT_CACHE_TIMEOUT_S = 3600.0


@dataclass(frozen=True)
class CacheEntry:
    data: Any
    timestamp: float
    etag: str | None = None  # reserved, not used for validation yet


def tree_key(owner: str, repo: str, ref: str) -> str:
    return f"tree:{owner}/{repo}@{ref}"


def raw_key(owner: str, repo: str, ref: str, path: str) -> str:
    return f"raw:{owner}/{repo}/{path}@{ref}"


class TTLCache:
    """
    Time-boxed key/value store shared by every resolver task.

    Expiry is checked lazily on read. The timeout is passed per call because
    configuration may change between refreshes.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, key: str, timeout_s: float = DEFAULT_CACHE_TIMEOUT_S) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.timestamp > timeout_s:
            del self._entries[key]
            return None
        return entry.data

    def set(self, key: str, value: Any, *, etag: str | None = None) -> None:
        self._entries[key] = CacheEntry(data=value, timestamp=self._clock(), etag=etag)

    def clear(self) -> None:
        self._entries.clear()
