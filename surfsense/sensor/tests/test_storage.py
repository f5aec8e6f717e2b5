"""Tests for the local key/value store adapters."""

from __future__ import annotations

from pathlib import Path

import pytest

from surfsense.services.storage import FileKeyValueStore, MemoryKeyValueStore


class TestMemoryStore:
    @pytest.mark.asyncio
    async def test_round_trip(self) -> None:
        store = MemoryKeyValueStore()
        assert await store.get("localSessions") is None
        assert await store.set("localSessions", "[]") is True
        assert await store.get("localSessions") == "[]"
        assert await store.remove("localSessions") is True
        assert await store.get("localSessions") is None


class TestFileStore:
    @pytest.mark.asyncio
    async def test_one_file_per_key(self, tmp_path: Path) -> None:
        store = FileKeyValueStore(tmp_path / "store")
        assert await store.set("historicalSessions", '[{"id": "1"}]')
        assert (tmp_path / "store" / "historicalSessions.json").read_text() == '[{"id": "1"}]'
        assert await store.get("historicalSessions") == '[{"id": "1"}]'

    @pytest.mark.asyncio
    async def test_missing_key_is_none(self, tmp_path: Path) -> None:
        assert await FileKeyValueStore(tmp_path).get("localSessions") is None

    @pytest.mark.asyncio
    async def test_remove_missing_key_succeeds(self, tmp_path: Path) -> None:
        assert await FileKeyValueStore(tmp_path).remove("localSessions") is True

    @pytest.mark.asyncio
    async def test_invalid_key_is_logged_not_raised(self, tmp_path: Path) -> None:
        store = FileKeyValueStore(tmp_path)
        assert await store.set("../escape", "x") is False
        assert await store.get("../escape") is None
        assert not (tmp_path.parent / "escape.json").exists()

    @pytest.mark.asyncio
    async def test_unwritable_root_reports_failure(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        store = FileKeyValueStore(blocker)
        assert await store.set("localSessions", "[]") is False
        assert await store.get("localSessions") is None
