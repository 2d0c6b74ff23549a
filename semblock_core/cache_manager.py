#!/usr/bin/env python3
"""
CacheManager - persistent analysis cache with debounced saves.

Every ``set`` marks the cache dirty and (re)starts a save timer; bursts
of writes are coalesced into one storage write issued ``save_delay``
seconds after the last of them. ``force_save`` is the shutdown hook.

Storage layout:
    llm_analysis_cache = {key: {"data": value, "last_access": ms}}
    llm_cache_meta     = {"last_saved": ms, "count": n}
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional

from .storage import Storage

logger = logging.getLogger(__name__)

CACHE_KEY = "llm_analysis_cache"
META_KEY = "llm_cache_meta"


def _now_ms() -> int:
    return int(time.time() * 1000)


class CacheManager:

    def __init__(
        self,
        storage: Storage,
        save_delay: float = 2.0,
        clock: Callable[[], int] = _now_ms,
    ):
        self.storage = storage
        self.save_delay = save_delay
        self.clock = clock
        self.cache: Dict[str, Any] = {}
        self.is_dirty = False
        self._save_task: Optional[asyncio.Task] = None

    async def load(self) -> None:
        """Load the persisted cache; unreadable data leaves an empty cache"""
        try:
            stored = await self.storage.get(CACHE_KEY)
            cache = {}
            if stored is not None:
                if not isinstance(stored, dict):
                    raise ValueError(f"expected an object, got {type(stored).__name__}")
                for key, entry in stored.items():
                    if isinstance(entry, dict) and "data" in entry:
                        cache[key] = entry["data"]
            self.cache = cache
            logger.info(f"📦 Loaded {len(cache)} cached analyses")
        except Exception as e:
            logger.error(f"Failed to load cache, starting empty: {e}")
            self.cache = {}
        self.is_dirty = False

    def get(self, key: str) -> Optional[Any]:
        return self.cache.get(key)

    def set(self, key: str, value: Any) -> None:
        self.cache[key] = value
        self.is_dirty = True
        self._schedule_save()

    def size(self) -> int:
        return len(self.cache)

    def _schedule_save(self) -> None:
        self._cancel_pending()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: the next force_save persists the entry
            return
        self._save_task = loop.create_task(self._delayed_save())

    async def _delayed_save(self) -> None:
        await asyncio.sleep(self.save_delay)
        self._save_task = None
        try:
            await self.save()
        except Exception as e:
            logger.error(f"Debounced cache save failed: {e}")

    def _cancel_pending(self) -> None:
        task = self._save_task
        self._save_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def save(self) -> None:
        if not self.is_dirty or not self.cache:
            return

        now = self.clock()
        entries = {key: {"data": value, "last_access": now} for key, value in self.cache.items()}
        # Sets landing during the write mark the cache dirty again
        self.is_dirty = False
        try:
            await self.storage.set({
                CACHE_KEY: entries,
                META_KEY: {"last_saved": now, "count": len(entries)},
            })
        except (Exception, asyncio.CancelledError):
            self.is_dirty = True
            raise
        logger.debug(f"💾 Saved {len(entries)} cache entries")

    async def clear(self) -> None:
        """Drop every entry and persist the empty cache immediately"""
        self._cancel_pending()
        self.cache = {}
        self.is_dirty = False
        await self.storage.set({
            CACHE_KEY: {},
            META_KEY: {"last_saved": self.clock(), "count": 0},
        })
        logger.info("🗑️ Cache cleared")

    async def force_save(self) -> None:
        self._cancel_pending()
        if self.is_dirty:
            await self.save()

    flush = force_save
