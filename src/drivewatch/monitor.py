"""The detect-and-notify tick."""
from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime, timedelta
from typing import Callable

from .channels import Channel, build_channels
from .config import AppConfig
from .detector import find_changes
from .dispatcher import dispatch
from .drive import DriveBackend
from .errors import BackendUnavailable, PersistenceFailure
from .folder_index import FolderIndex
from .metrics import CHANGES, TICKS
from .models import ChangeRecord, TickResult
from .run_log import log_tick
from .sender import send_with_retry
from .state import StateStore, WatermarkStore
from .util import EPOCH, format_watermark, now_iso

log = logging.getLogger(__name__)

TICK_LEASE = "checkFolderFilesUpdates"


def next_watermark(changes: list[ChangeRecord], since: datetime) -> datetime:
    """
    Newest observed modification time plus one second, in whole seconds.

    The change query is inclusive, so the extra second keeps the newest file
    from being reported again on the next tick.
    """
    latest = max([since, *(c.last_updated for c in changes)])
    return (latest + timedelta(seconds=1)).replace(microsecond=0)


class Monitor:
    """
    Ties folder discovery, change detection, the watermark and delivery
    together. One call to check_folder_files_updates() is one tick.

    Ticks are serialized through a lease in the state store, so overlapping
    invocations (two schedulers, a manual run during a scheduled one) skip
    instead of double-reporting.
    """

    def __init__(
        self,
        config: AppConfig,
        backend,
        store: StateStore,
        channels: list[Channel] | None = None,
        sender: Callable[..., bool] = send_with_retry,
    ) -> None:
        self.config = config
        self.backend = backend
        self.store = store
        self.watermarks = WatermarkStore(store)
        self.folder_index = FolderIndex(backend, store, ttl_seconds=config.folder_cache_ttl_seconds)
        self.channels = channels if channels is not None else build_channels(config)
        self.sender = sender

    @classmethod
    def from_config(cls, config: AppConfig) -> Monitor:
        backend = DriveBackend.from_credentials(config.credentials_file)
        return cls(config, backend, StateStore(config.state_db))

    def close(self) -> None:
        self.store.close()

    def check_folder_files_updates(self) -> TickResult:
        log.info("=== Starting checkFolderFilesUpdates ===")
        run_id = uuid.uuid4().hex
        started_at = now_iso()

        try:
            acquired = self.store.acquire_lease(TICK_LEASE, run_id, self.config.lease_ttl_seconds)
        except sqlite3.Error as e:
            log.error(f"Could not take tick lease: {e}")
            result = TickResult(run_id=run_id, status="persistence_failure", error=str(e))
        else:
            if not acquired:
                log.warning("Another tick is still running; skipping this one.")
                result = TickResult(run_id=run_id, status="skipped_locked")
            else:
                try:
                    result = self._tick(run_id)
                except Exception as e:
                    log.exception(f"Tick failed unexpectedly: {e}")
                    result = TickResult(run_id=run_id, status="error", error=str(e))
                finally:
                    self._release(run_id)

        TICKS.labels(status=result.status).inc()
        try:
            log_tick(self.config.run_log, result, started_at, now_iso())
        except OSError as e:
            log.warning(f"Failed to write run log: {e}")

        log.info("=== Completed checkFolderFilesUpdates ===")
        return result

    def _release(self, run_id: str) -> None:
        try:
            self.store.release_lease(TICK_LEASE, run_id)
        except sqlite3.Error as e:
            log.warning(f"Could not release tick lease (expires on its own): {e}")

    def _tick(self, run_id: str) -> TickResult:
        try:
            previous = self.watermarks.get()
        except sqlite3.Error as e:
            log.error(f"Could not read lastCheckTime: {e}")
            return TickResult(run_id=run_id, status="persistence_failure", error=str(e))

        log.info(f"Previous lastCheckTime: {format_watermark(previous) if previous else 'None'}")
        since = previous or EPOCH

        try:
            folder_ids = self.folder_index.resolve_folder_set(self.config.root_folder_id)
            changes = find_changes(self.backend, folder_ids, since)
        except BackendUnavailable as e:
            log.error(f"Change detection aborted: {e}")
            return TickResult(
                run_id=run_id,
                status="backend_unavailable",
                previous_watermark=previous,
                watermark=previous,
                error=str(e),
            )

        if not changes:
            log.info("No updated files found; no notifications sent.")
            return TickResult(
                run_id=run_id,
                status="no_changes",
                previous_watermark=previous,
                watermark=previous,
            )

        watermark = next_watermark(changes, since)
        try:
            self.watermarks.set(watermark)
        except PersistenceFailure as e:
            log.error(f"Error setting lastCheckTime: {e}")
            return TickResult(
                run_id=run_id,
                status="persistence_failure",
                previous_watermark=previous,
                watermark=previous,
                changes=changes,
                error=str(e),
            )
        log.info(f"Updated lastCheckTime to: {format_watermark(watermark)}")
        CHANGES.inc(len(changes))

        deliveries = dispatch(changes, self.channels, sender=self.sender)
        return TickResult(
            run_id=run_id,
            status="notified",
            previous_watermark=previous,
            watermark=watermark,
            changes=changes,
            deliveries=deliveries,
        )
