"""
Per-owner read-through cache for hot listings.

The account list is read on nearly every screen and changes only when the
owner mutates something. Entries are keyed by (owner_id, key) and expire
after a TTL.

Mutating routes call invalidate_on_commit(db, owner_id). The owner's
entries are dropped from the session's after_commit hook, not from the
route body: the request session commits only after the route returns, and
a read served between the two would otherwise cache pre-commit balances
for a whole TTL. A rolled back request leaves the cache alone.

Each invalidation also bumps the owner's generation. get_or_load only
stores a loaded value if the generation did not move while the loader was
running, so a read that started before a commit cannot write its stale
result back afterwards.

This lives in the API layer; the services stay stateless. One instance is
shared by the process (single-process asyncio, no locking needed).
"""

import time
from typing import Any, Awaitable, Callable

import structlog
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession


logger = structlog.get_logger(__name__)


class OwnerReadCache:
    """TTL cache partitioned by owner id."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, dict[str, tuple[float, Any]]] = {}
        self._generations: dict[str, int] = {}

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    def generation(self, owner_id: str) -> int:
        return self._generations.get(owner_id, 0)

    def get(self, owner_id: str, key: str) -> Any | None:
        entry = self._entries.get(owner_id, {}).get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[owner_id][key]
            return None
        return value

    def set(self, owner_id: str, key: str, value: Any) -> None:
        if not self.enabled:
            return
        self._entries.setdefault(owner_id, {})[key] = (self._clock() + self.ttl_seconds, value)

    def invalidate(self, owner_id: str) -> None:
        self._generations[owner_id] = self.generation(owner_id) + 1
        if self._entries.pop(owner_id, None) is not None:
            logger.debug("read_cache_invalidated", owner_id=owner_id)

    def invalidate_on_commit(self, db: AsyncSession, owner_id: str) -> None:
        """Drop the owner's entries once `db` commits successfully."""

        def on_commit(session):
            self.invalidate(owner_id)

        event.listen(db.sync_session, "after_commit", on_commit, once=True)

    def clear(self) -> None:
        self._entries.clear()

    async def get_or_load(self, owner_id: str, key: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        """Return the cached value, or await loader() and cache its result."""
        value = self.get(owner_id, key)
        if value is not None:
            return value
        generation = self.generation(owner_id)
        value = await loader()
        if self.generation(owner_id) == generation:
            self.set(owner_id, key, value)
        return value
