"""Per-run working memory: a time-boxed fact cache shared by every node of one tree walk."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta

from reactree.models import WorkingMemoryEntry

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


class WorkingMemoryStore:
    """In-memory key/value store with per-entry TTL.

    Expiry is checked lazily on read; there is no background sweep. Every
    individual call is serialized through one lock so concurrent parallel
    siblings never observe a partially written entry.
    """

    def __init__(self, *, clock: Clock = utc_now) -> None:
        self._entries: dict[str, WorkingMemoryEntry] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    async def put(self, key: str, value: str, ttl_s: float, *, writer_node_id: str = "") -> None:
        """Store ``value`` under ``key`` until now + ``ttl_s``. Last writer wins."""
        if ttl_s < 0:
            raise ValueError(f"ttl must be non-negative, got {ttl_s}")
        async with self._lock:
            self._entries[key] = WorkingMemoryEntry(
                key=key,
                value=value,
                writer_node_id=writer_node_id,
                expires_at=self._clock() + timedelta(seconds=ttl_s),
            )

    async def get(self, key: str) -> str | None:
        """Return the live value for ``key`` or None when absent or expired."""
        async with self._lock:
            entry = self._live_entry(key, self._clock())
            return entry.value if entry is not None else None

    async def get_many(self, keys: Iterable[str]) -> dict[str, str]:
        """Return live values for ``keys``; absent keys are omitted."""
        found: dict[str, str] = {}
        for key in sorted(set(keys)):
            value = await self.get(key)
            if value is not None:
                found[key] = value
        return found

    async def snapshot(self) -> list[WorkingMemoryEntry]:
        """All non-expired entries, sorted by key."""
        async with self._lock:
            now = self._clock()
            entries: list[WorkingMemoryEntry] = []
            for key in sorted(self._entries):
                entry = self._live_entry(key, now)
                if entry is not None:
                    entries.append(entry)
            return entries

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()

    def _live_entry(self, key: str, now: datetime) -> WorkingMemoryEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if now >= entry.expires_at:
            del self._entries[key]
            return None
        return entry
