#!/usr/bin/env python3
"""
Key-value storage backends.

The engine only needs ``get(key)`` / ``set(values)`` / ``remove(key)``
coroutines. JsonFileStorage keeps everything in one JSON document on
disk; MemoryStorage is used by tests and short-lived CLI runs.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)


class Storage:
    """Async key-value storage interface"""

    async def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    async def set(self, values: Dict[str, Any]) -> None:
        raise NotImplementedError

    async def remove(self, key: str) -> None:
        raise NotImplementedError


class MemoryStorage(Storage):
    """Storage held in a plain dict"""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self.data: Dict[str, Any] = dict(initial or {})
        self.write_count = 0

    async def get(self, key: str) -> Optional[Any]:
        return self.data.get(key)

    async def set(self, values: Dict[str, Any]) -> None:
        self.data.update(values)
        self.write_count += 1

    async def remove(self, key: str) -> None:
        self.data.pop(key, None)


class JsonFileStorage(Storage):
    """
    Storage persisted as a single JSON file.

    File access happens in a worker thread so the event loop is never
    blocked by disk I/O. Writes are serialized by a lock.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _read_all(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Storage file {self.path} does not contain an object")
        return data

    def _write_all(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        tmp.replace(self.path)

    async def get(self, key: str) -> Optional[Any]:
        data = await asyncio.to_thread(self._read_all)
        return data.get(key)

    async def set(self, values: Dict[str, Any]) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read_all)
            data.update(values)
            await asyncio.to_thread(self._write_all, data)
        logger.debug(f"Stored keys {sorted(values)} in {self.path}")

    async def remove(self, key: str) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read_all)
            if key in data:
                del data[key]
                await asyncio.to_thread(self._write_all, data)
