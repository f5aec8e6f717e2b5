"""Sensor session manager: the one object the UI layer talks to.

Owns and wires together the connection manager, acquisition loop, session
recorder, sync reconciler, reading uploader and sync scheduler.  It is built
once (``build_session_manager``) and passed to whoever needs it; nothing here
is module-global.
"""

from __future__ import annotations

import asyncio
import logging
import random
from pathlib import Path
from typing import Awaitable, Callable

from surfsense.config import Settings, get_settings
from surfsense.models.base import now_ms
from surfsense.models.devices import ConnectionState, SensorFile
from surfsense.models.identity import RecordingStatus, UserIdentity
from surfsense.models.readings import LocationFix, Reading
from surfsense.models.sessions import Session
from surfsense.sensor.acquisition import AcquisitionLoop
from surfsense.sensor.base import DeviceTransport
from surfsense.sensor.config_loader import SensorConfig, get_sensor_config
from surfsense.sensor.connection import ConnectionManager
from surfsense.sensor.recorder import SessionRecorder
from surfsense.sensor.sync.outbound import ReadingUploader
from surfsense.sensor.sync.reconciler import FlushResult, SyncReconciler
from surfsense.sensor.sync.scheduler import SyncRunResult, SyncScheduler
from surfsense.sensor.transports import get_transport
from surfsense.services.geolocation import GeolocationProvider, HttpGeolocation, NullGeolocation
from surfsense.services.remote_sessions import RemoteSessionStore, SupabaseSessionStore
from surfsense.services.storage import FileKeyValueStore, KeyValueStore

logger = logging.getLogger("surfsense.sensor.manager")

RemoteFactory = Callable[[str], RemoteSessionStore]


class SensorSessionManager:
    """Connection, recording and history for one local user at a time.

    Args:
        config:            Sensor tuning config.
        store:             Local key/value store.
        transport:         Wireless transport, or None to always simulate.
        geolocation:       Location provider; defaults to no location.
        remote_factory:    Builds the remote store for a signed-in user id;
                           None means offline-only.
        connect_timeout_s: Upper bound on device negotiation.
        download_dir:      Where downloaded sensor files are written.
        sync_interval_s:   Periodic history sync interval while signed in.
    """

    def __init__(
        self,
        config: SensorConfig,
        store: KeyValueStore,
        transport: DeviceTransport | None = None,
        geolocation: GeolocationProvider | None = None,
        remote_factory: RemoteFactory | None = None,
        connect_timeout_s: float = 10.0,
        download_dir: Path = Path("downloads"),
        sync_interval_s: float = 300,
        clock: Callable[[], int] = now_ms,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self._geolocation = geolocation or NullGeolocation()
        self._remote_factory = remote_factory

        self.acquisition = AcquisitionLoop(config, clock=clock, rng=rng)
        self.reconciler = SyncReconciler(store, config)
        self.connection = ConnectionManager(
            transport,
            self.acquisition,
            config,
            connect_timeout_s=connect_timeout_s,
            download_dir=download_dir,
            sleep=sleep,
        )
        self.recorder = SessionRecorder(
            self.reconciler, lambda: self.connection.is_connected, clock=clock
        )
        # A dropped link finalizes an active recording like an explicit disconnect
        self.connection.link_lost_handler = self.disconnect
        self.uploader = ReadingUploader()
        self.scheduler = SyncScheduler(self.reconciler, sync_interval_s)
        self.acquisition.add_listener(self._on_reading)

        self.identity: UserIdentity | None = None
        self.location: LocationFix | None = None
        self.location_permitted = False

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def connection_state(self) -> ConnectionState:
        return self.connection.state

    @property
    def current_reading(self) -> Reading | None:
        return self.acquisition.current

    @property
    def recording_status(self) -> RecordingStatus:
        return self.recorder.status()

    @property
    def recent_history(self) -> list[Session]:
        return self.reconciler.recent_history

    @property
    def pending_sessions(self) -> list[Session]:
        return self.reconciler.pending_sessions

    @property
    def display_sessions(self) -> list[Session]:
        return self.reconciler.display_sessions

    @property
    def sensor_files(self) -> list[SensorFile]:
        return self.connection.sensor_files

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Load local history and pending sessions; ask for location access."""
        self.location_permitted = await self._geolocation.request_permission()
        if self.location_permitted:
            await self.refresh_location()
        await self.reconciler.load_history()

    async def shutdown(self) -> None:
        await self.scheduler.stop()
        try:
            await self.disconnect()
        finally:
            await self.uploader.drain()

    async def refresh_location(self) -> LocationFix | None:
        """Fetch a new fix; the previous one is kept if none is available."""
        fix = await self._geolocation.get_current_fix()
        if fix is not None:
            self.location = fix
        return fix

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    async def login(self, identity: UserIdentity) -> UserIdentity:
        """Sign in: attach the user's remote store and reload history.

        Local history is published before the remote fetch is awaited.  The
        remote profile, when found, overrides the display fields.
        """
        if self.identity is not None and self.identity.user_id != identity.user_id:
            await self.logout()

        self.identity = identity
        if self._remote_factory is not None:
            self.reconciler.remote = self._remote_factory(identity.user_id)
        logger.info("Signed in: %s", identity.user_id)

        profile_task = asyncio.create_task(self._fetch_profile())
        await self.reconciler.load_history()
        profile = await profile_task
        if profile:
            self.identity = identity.model_copy(
                update={
                    "username": profile.get("username") or identity.username,
                    "email": profile.get("email") or identity.email,
                }
            )

        await self.reconciler.retry_remote_outbox()
        self.scheduler.start()
        return self.identity

    async def _fetch_profile(self) -> dict | None:
        remote = self.reconciler.remote
        if remote is None:
            return None
        try:
            return await remote.get_user_profile()
        except Exception as exc:
            logger.warning("Error fetching user profile: %s", exc)
            return None

    async def logout(self) -> FlushResult:
        """Sign out: finalize any recording and flush pending sessions.

        If the flush fails the pending sessions stay in the store and are
        flushed at the next sync point.
        """
        await self.scheduler.stop()
        await self.stop_recording()
        await self.uploader.drain()

        result = await self.reconciler.flush_pending_to_durable()
        await self.reconciler.retry_remote_outbox()

        logger.info("Signed out: %s (flush %s)", self.identity.user_id if self.identity else "-", result.status)
        self.reconciler.remote = None
        self.identity = None
        return result

    # ------------------------------------------------------------------
    # Device
    # ------------------------------------------------------------------

    async def connect(self) -> ConnectionState:
        state = await self.connection.connect()
        if state.is_connected and self.location_permitted:
            await self.refresh_location()
        return state

    async def disconnect(self) -> ConnectionState:
        """Unlink the device, finalizing an active recording first."""
        try:
            if self.recorder.is_recording:
                await self.stop_recording()
        finally:
            await self.connection.disconnect()
        return self.connection.state

    def stop_scanning(self) -> ConnectionState:
        self.connection.stop_scanning()
        return self.connection.state

    async def read_sensor_files(self) -> list[SensorFile]:
        return await self.connection.read_sensor_files()

    async def download_sensor_file(self, file_name: str) -> Path | None:
        return await self.connection.download_sensor_file(file_name)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    async def start_recording(self) -> str | None:
        return await self.recorder.start(self.location, self.connection.device_info())

    async def stop_recording(self) -> Session | None:
        return await self.recorder.stop(self.location)

    def _on_reading(self, reading: Reading) -> None:
        point = self.recorder.append(reading, self.location)
        if point is None:
            return
        remote, session_id = self.reconciler.remote, self.recorder.session_id
        if remote is not None and session_id is not None:
            self.uploader.submit(remote, point, session_id)

    # ------------------------------------------------------------------
    # Sync / reset
    # ------------------------------------------------------------------

    async def sync_now(self) -> SyncRunResult:
        return await self.scheduler.run_once()

    async def clear_all_data(self) -> None:
        """Delete all local session data and reset the live views."""
        await self.reconciler.clear_all()
        self.recorder.clear_buffer()
        self.acquisition.current = None
        logger.info("All local session data cleared")


def build_session_manager(
    settings: Settings | None = None,
    config: SensorConfig | None = None,
) -> SensorSessionManager:
    """Build the manager from environment settings and the bundled config."""
    s = settings or get_settings()
    cfg = config or get_sensor_config()

    transport = None
    if s.ble_enabled:
        transport = get_transport("ble")(
            enabled=True,
            scan_timeout=s.ble_scan_timeout_s,
            name_filter=s.ble_device_name,
            preferred_services=cfg.ble.preferred_services,
        )

    geolocation: GeolocationProvider = NullGeolocation()
    if s.geolocation_enabled:
        geolocation = HttpGeolocation(s.geolocation_url, enabled=True)

    return SensorSessionManager(
        config=cfg,
        store=FileKeyValueStore(s.storage_dir),
        transport=transport,
        geolocation=geolocation,
        remote_factory=SupabaseSessionStore if s.remote_configured else None,
        connect_timeout_s=s.connect_timeout_s,
        download_dir=s.download_dir,
        sync_interval_s=s.sync_interval_seconds,
    )
