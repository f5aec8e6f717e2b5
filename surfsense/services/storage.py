"""Local key/value store for serialized session collections.

The store holds opaque string blobs under plain identifiers such as
``localSessions`` and ``historicalSessions``.  Failures never propagate:
``get`` returns None for both "not found" and "store error", and ``set`` /
``remove`` report success as a boolean so callers can keep in-memory state
when a write did not land.
"""

from __future__ import annotations

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path

logger = logging.getLogger("surfsense.storage")

_KEY_RE = re.compile(r"^[A-Za-z0-9_\-]+$")


class KeyValueStore(ABC):
    """Async get/set/remove of string blobs."""

    async def get(self, key: str) -> str | None:
        try:
            return await self._get(key)
        except Exception as exc:
            logger.error("Error getting item %s: %s", key, exc)
            return None

    async def set(self, key: str, value: str) -> bool:
        try:
            await self._set(key, value)
            return True
        except Exception as exc:
            logger.error("Error setting item %s: %s", key, exc)
            return False

    async def remove(self, key: str) -> bool:
        try:
            await self._remove(key)
            return True
        except Exception as exc:
            logger.error("Error removing item %s: %s", key, exc)
            return False

    @abstractmethod
    async def _get(self, key: str) -> str | None: ...

    @abstractmethod
    async def _set(self, key: str, value: str) -> None: ...

    @abstractmethod
    async def _remove(self, key: str) -> None: ...


class MemoryKeyValueStore(KeyValueStore):
    """In-process store. Used for headless runs and tests."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(initial or {})

    async def _get(self, key: str) -> str | None:
        return self.data.get(key)

    async def _set(self, key: str, value: str) -> None:
        self.data[key] = value

    async def _remove(self, key: str) -> None:
        self.data.pop(key, None)


class FileKeyValueStore(KeyValueStore):
    """One ``<key>.json`` file per key under ``root``.

    Writes go to a temporary sibling first and are renamed into place so a
    crash mid-write never leaves a truncated collection behind.
    """

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    def _path(self, key: str) -> Path:
        if not _KEY_RE.match(key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self._root / f"{key}.json"

    async def _get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return await asyncio.to_thread(path.read_text, encoding="utf-8")

    async def _set(self, key: str, value: str) -> None:
        path = self._path(key)

        def _write() -> None:
            self._root.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".json.tmp")
            tmp.write_text(value, encoding="utf-8")
            tmp.replace(path)

        await asyncio.to_thread(_write)

    async def _remove(self, key: str) -> None:
        path = self._path(key)
        await asyncio.to_thread(path.unlink, missing_ok=True)
