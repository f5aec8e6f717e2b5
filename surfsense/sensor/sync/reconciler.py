"""Reconcile pending, durable and remote session history.

Three sources meet here:
    pending — sessions finalized since the last flush ("this login's")
    durable — the long-term local collection (historicalSessions)
    remote  — the signed-in user's sessions in the remote store (optional)

Merge rule everywhere: concatenate in priority order, dedup by id (first copy
wins), sort by start_time descending.  Pending sessions move into the durable
collection at flush time (logout); they are only cleared once the durable
write has landed.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from pydantic import ValidationError

from surfsense.models.sessions import Session
from surfsense.sensor.config_loader import SensorConfig
from surfsense.sensor.sync.dedup import merge_sessions
from surfsense.services.remote_sessions import RemoteSessionStore
from surfsense.services.storage import KeyValueStore

logger = logging.getLogger("surfsense.sensor.sync.reconciler")


# ---------------------------------------------------------------------------
# Collection (de)serialization
# ---------------------------------------------------------------------------


async def read_sessions(store: KeyValueStore, key: str) -> list[Session]:
    """Read a stored session collection.

    A missing key, a store error and an unparseable blob all mean "no data".
    Individual entries that fail validation are skipped.
    """
    blob = await store.get(key)
    if not blob:
        return []
    try:
        raw = json.loads(blob)
    except json.JSONDecodeError as exc:
        logger.warning("Stored collection %s is not valid JSON, ignoring: %s", key, exc)
        return []
    if not isinstance(raw, list):
        logger.warning("Stored collection %s is not a list, ignoring", key)
        return []

    sessions: list[Session] = []
    for item in raw:
        try:
            sessions.append(Session.model_validate(item))
        except ValidationError as exc:
            logger.warning("Skipping invalid stored session in %s: %s", key, exc.errors()[:1])
    return sessions


async def write_sessions(store: KeyValueStore, key: str, sessions: list[Session]) -> bool:
    """Persist a session collection. Returns False if the write did not land."""
    blob = json.dumps([s.to_json_dict() for s in sessions])
    return await store.set(key, blob)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class FlushResult:
    """Result of moving pending sessions into durable history.

    Attributes:
        status:        'success', 'partial' (durable written, pending clear
                       failed), 'error' (durable write failed, nothing
                       cleared) or 'skipped' (nothing pending).
        flushed:       Number of pending sessions merged.
        durable_total: Size of the durable collection after the merge.
        error:         Error message if status == 'error'.
    """

    status: str
    flushed: int = 0
    durable_total: int = 0
    error: str | None = None
    flushed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Reconciler
# ---------------------------------------------------------------------------


class SyncReconciler:
    """Owns the pending list, the recent-history view and the remote outbox.

    Args:
        store:  Local key/value store.
        config: Sensor config (storage keys, recent-history window).
        remote: Remote store for the signed-in user, or None when offline.
    """

    def __init__(
        self,
        store: KeyValueStore,
        config: SensorConfig,
        remote: RemoteSessionStore | None = None,
    ) -> None:
        self._store = store
        self._keys = config.storage_keys
        self._window = config.history.recent_window
        self.remote = remote
        self._recent: list[Session] = []
        self._pending: list[Session] = []
        self._outbox: list[dict[str, str]] = []
        self.last_sync_at: datetime | None = None

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def recent_history(self) -> list[Session]:
        """Most recent durable/remote sessions (display window only)."""
        return list(self._recent)

    @property
    def pending_sessions(self) -> list[Session]:
        return list(self._pending)

    @property
    def display_sessions(self) -> list[Session]:
        """Pending sessions merged in front of recent history.

        Recomputed on every access.
        """
        return merge_sessions(self._pending, self._recent)

    @property
    def outbox(self) -> list[str]:
        """Session ids waiting to be mirrored to the remote store."""
        return [entry["sessionId"] for entry in self._outbox]

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    async def load_local(self) -> None:
        """Load pending sessions and the remote outbox from the store.

        Stored pending sessions are merged behind any already in memory, so
        an in-memory session whose write failed is never dropped.
        """
        stored = await read_sessions(self._store, self._keys.local_sessions)
        self._pending = merge_sessions(self._pending, stored)

        blob = await self._store.get(self._keys.remote_outbox)
        if not blob:
            return
        try:
            entries = json.loads(blob)
        except json.JSONDecodeError as exc:
            logger.warning("Stored remote outbox is not valid JSON, ignoring: %s", exc)
            return
        for item in entries if isinstance(entries, list) else []:
            if not isinstance(item, dict):
                continue
            session_id, user_id = item.get("sessionId"), item.get("userId")
            if not (isinstance(session_id, str) and isinstance(user_id, str)):
                continue
            entry = {"sessionId": session_id, "userId": user_id}
            if entry not in self._outbox:
                self._outbox.append(entry)

    async def load_history(self) -> list[Session]:
        """Load and merge remote and durable history into the recent view.

        The local read completes, and the view is published, before the remote
        fetch result is awaited; a slow or failing remote never blocks it.

        Returns:
            The recent-history window.
        """
        remote_task = asyncio.create_task(self._fetch_remote()) if self.remote else None

        durable = await read_sessions(self._store, self._keys.historical_sessions)
        await self.load_local()
        self._recent = merge_sessions(durable)[: self._window]

        if remote_task is not None:
            remote_sessions = await remote_task
            logger.info("Loaded remote sessions: %d", len(remote_sessions))
            self._recent = merge_sessions(remote_sessions, durable)[: self._window]

        self.last_sync_at = datetime.now(timezone.utc)
        logger.info(
            "History loaded: %d durable, %d pending, showing %d",
            len(durable), len(self._pending), len(self._recent),
        )
        return self.recent_history

    async def _fetch_remote(self) -> list[Session]:
        try:
            return await self.remote.list_sessions_for_user()
        except Exception as exc:
            logger.warning("Error loading remote sessions: %s", exc)
            return []

    # ------------------------------------------------------------------
    # Pending
    # ------------------------------------------------------------------

    async def add_pending(self, session: Session) -> bool:
        """Prepend a finalized session to the pending list and persist it.

        The in-memory list keeps the session even if the write fails.

        Returns:
            True if the pending collection was persisted.
        """
        self._pending = [session, *[s for s in self._pending if s.id != session.id]]
        ok = await write_sessions(self._store, self._keys.local_sessions, self._pending)
        if ok:
            logger.info("Local sessions saved: %d", len(self._pending))
        else:
            logger.warning("Pending session %s not yet durable (store write failed)", session.id)
        return ok

    async def flush_pending_to_durable(self, sessions: list[Session] | None = None) -> FlushResult:
        """Merge pending sessions into the durable collection and clear them.

        Pending copies win over durable copies with the same id.  If the
        durable write fails nothing is cleared, so a retry sees the same
        pending sessions again.

        Args:
            sessions: Sessions to flush; defaults to the whole pending list.
        """
        to_flush = list(self._pending if sessions is None else sessions)
        if not to_flush:
            return FlushResult(status="skipped")

        durable = await read_sessions(self._store, self._keys.historical_sessions)
        merged = merge_sessions(to_flush, durable)

        if not await write_sessions(self._store, self._keys.historical_sessions, merged):
            logger.error("Error syncing sessions to durable history; %d pending kept", len(to_flush))
            return FlushResult(status="error", error="durable write failed")

        self._recent = merged[: self._window]
        flushed_ids = {s.id for s in to_flush}
        self._pending = [s for s in self._pending if s.id not in flushed_ids]

        if self._pending:
            cleared = await write_sessions(self._store, self._keys.local_sessions, self._pending)
        else:
            cleared = await self._store.remove(self._keys.local_sessions)

        self.last_sync_at = datetime.now(timezone.utc)
        logger.info("Sessions synced to durable history: %d total", len(merged))
        return FlushResult(
            status="success" if cleared else "partial",
            flushed=len(to_flush),
            durable_total=len(merged),
        )

    # ------------------------------------------------------------------
    # Remote outbox
    # ------------------------------------------------------------------

    async def _save_outbox(self) -> None:
        if self._outbox:
            await self._store.set(self._keys.remote_outbox, json.dumps(self._outbox))
        else:
            await self._store.remove(self._keys.remote_outbox)

    async def enqueue_remote_retry(self, session_id: str) -> None:
        """Remember a finalized session whose remote submission failed.

        Entries carry the owning user id; they are only retried while that
        user is signed in.
        """
        if self.remote is None:
            return
        entry = {"sessionId": session_id, "userId": self.remote.user_id}
        if entry not in self._outbox:
            self._outbox.append(entry)
        await self._save_outbox()

    async def retry_remote_outbox(self) -> int:
        """Re-submit the signed-in user's outbox sessions to the remote store.

        Returns:
            Number of sessions accepted by the remote store.
        """
        if self.remote is None or not self._outbox:
            return 0

        durable = await read_sessions(self._store, self._keys.historical_sessions)
        known = {s.id: s for s in merge_sessions(self._pending, durable)}
        accepted = 0
        remaining: list[dict[str, str]] = []

        for entry in self._outbox:
            if entry["userId"] != self.remote.user_id:
                remaining.append(entry)
                continue
            session = known.get(entry["sessionId"])
            if session is None:
                logger.warning("Outbox session %s no longer stored, dropping", entry["sessionId"])
                continue
            try:
                await self.remote.submit_finalized_session(session)
                accepted += 1
            except Exception as exc:
                logger.warning("Remote retry failed for session %s: %s", session.id, exc)
                remaining.append(entry)

        self._outbox = remaining
        await self._save_outbox()
        if accepted:
            logger.info("Remote outbox: %d sessions mirrored, %d remaining", accepted, len(remaining))
        return accepted

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    async def clear_all(self) -> None:
        """Remove every stored collection and reset the in-memory views."""
        await self._store.remove(self._keys.historical_sessions)
        await self._store.remove(self._keys.local_sessions)
        await self._store.remove(self._keys.remote_outbox)
        self._recent = []
        self._pending = []
        self._outbox = []
