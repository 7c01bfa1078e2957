"""Sync orchestrator between the local store and the remote service.

The local store is authoritative for reads and writes; the remote is
reconciled in the background:

1. upload every pending local certificate,
2. download remote changes (last write wins on client timestamps),
3. re-queue any certificates tagged as conflicts.

Each record is handled in its own transaction and its own try block, so one
failure never aborts the rest of the batch or the periodic loop.
"""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from certsync.exceptions import RemoteServiceError
from certsync.remote.client import MalformedRemoteRow, RemoteClient
from certsync.schemas import Certificate, RemoteCertificate, StoredCertificate, SyncStatus
from certsync.storage.local import LocalStore
from certsync.sync.scheduler import PeriodicSync
from certsync.utils import metrics
from certsync.utils.time import to_naive_utc

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Counters for one sync cycle."""

    uploaded: int = 0
    upload_failures: int = 0
    downloaded: int = 0
    skipped: int = 0
    download_failures: int = 0
    conflicts_requeued: int = 0

    @property
    def has_failures(self) -> bool:
        return bool(self.upload_failures or self.download_failures)


SyncListener = Callable[[SyncResult], None]


class SyncService:
    """Coordinates the local store with the remote service."""

    def __init__(
        self,
        store: LocalStore,
        remote: Optional[RemoteClient] = None,
        sync_interval_seconds: float = 30.0,
        sync_backoff_max_seconds: float = 600.0,
        sync_jitter_seconds: float = 5.0,
        upcoming_window_days: int = 30,
    ):
        """Initialize sync service; call initialize() before use."""
        self.store = store
        self.remote = remote
        self.sync_interval_seconds = sync_interval_seconds
        self.sync_backoff_max_seconds = sync_backoff_max_seconds
        self.sync_jitter_seconds = sync_jitter_seconds
        self.upcoming_window_days = upcoming_window_days

        self.user_id: Optional[str] = None
        self.scheduler: Optional[PeriodicSync] = None
        self._sync_lock = threading.Lock()
        self._cursor: Optional[datetime] = None
        self._listeners: list[SyncListener] = []

    @property
    def is_online(self) -> bool:
        return self.remote is not None and self.user_id is not None

    @property
    def is_syncing(self) -> bool:
        return self._sync_lock.locked()

    def initialize(self, start_scheduler: bool = True) -> None:
        """Open the local store, establish a session and arm periodic sync."""
        self.store.init()

        if self.remote is None:
            logger.warning("Remote service not configured - running in offline mode")
            return

        try:
            user = self.remote.get_current_user()
            if user is None:
                user = self.remote.sign_in_anonymously()
        except RemoteServiceError as e:
            logger.warning(f"Could not establish remote session, running offline: {e}")
            return

        self.user_id = user.id
        logger.info(f"Sync session established for user {self.user_id}")

        if start_scheduler:
            self.scheduler = PeriodicSync(
                self.sync,
                interval_seconds=self.sync_interval_seconds,
                backoff_max_seconds=self.sync_backoff_max_seconds,
                jitter_seconds=self.sync_jitter_seconds,
            )
            self.scheduler.start()

    def shutdown(self) -> None:
        """Stop periodic sync. An in-flight sync is left to finish on its own."""
        if self.scheduler is not None:
            self.scheduler.stop()
            self.scheduler = None

    def add_sync_listener(self, listener: SyncListener) -> None:
        """Register a callback invoked with the result of every completed sync."""
        self._listeners.append(listener)

    # Sync cycle

    def sync(self) -> Optional[SyncResult]:
        """Run one sync cycle.

        Returns None without doing anything when offline or when another sync
        is already in flight.
        """
        if not self.is_online:
            return None
        if not self._sync_lock.acquire(blocking=False):
            logger.debug("Sync already in progress; skipping")
            metrics.sync_runs.labels(outcome="skipped").inc()
            return None

        started = time.monotonic()
        try:
            result = SyncResult()
            self._upload_pending(result)
            self._download_remote(result)
            self._resolve_conflicts(result)
        finally:
            self._sync_lock.release()
            metrics.sync_duration.observe(time.monotonic() - started)

        metrics.sync_runs.labels(outcome="partial" if result.has_failures else "clean").inc()
        logger.info(
            f"Sync complete: {result.uploaded} uploaded, {result.downloaded} downloaded, "
            f"{result.skipped} skipped, {result.upload_failures + result.download_failures} failed"
        )
        self._notify(result)
        return result

    def _notify(self, result: SyncResult) -> None:
        for listener in list(self._listeners):
            try:
                listener(result)
            except Exception as e:
                logger.error(f"Sync listener failed: {e}", exc_info=True)

    def _upload_pending(self, result: SyncResult) -> None:
        """Push pending certificates; failures stay pending for the next cycle."""
        for certificate_id in self.store.get_certificate_ids_by_sync_status(SyncStatus.PENDING):
            try:
                cert = self.store.get_certificate(certificate_id)
                if cert is None:
                    continue
                file_data = self.store.get_certificate_file(certificate_id)
                self.remote.insert_certificate(cert, file_data)
                self.store.update_sync_status(
                    certificate_id, SyncStatus.SYNCED, unchanged_since=cert.local_updated_at
                )
                result.uploaded += 1
                metrics.certificate_uploads.labels(result="success").inc()
            except Exception as e:
                result.upload_failures += 1
                metrics.certificate_uploads.labels(result="failure").inc()
                logger.error(f"Failed to upload certificate {certificate_id}: {e}")

    def _download_remote(self, result: SyncResult) -> None:
        """Merge remote changes since the last fully successful download."""
        try:
            remote_certs = self.remote.fetch_certificates_since(self._cursor)
        except Exception as e:
            result.download_failures += 1
            logger.error(f"Failed to download remote certificates: {e}")
            return

        batch_failed = False
        newest = self._cursor
        for remote_cert in remote_certs:
            try:
                if isinstance(remote_cert, MalformedRemoteRow):
                    raise RemoteServiceError(f"Malformed remote row: {remote_cert.error}")
                merged = self._merge_remote(remote_cert)
                if merged:
                    result.downloaded += 1
                    metrics.certificate_downloads.labels(result="merged").inc()
                else:
                    result.skipped += 1
                    metrics.certificate_downloads.labels(result="skipped").inc()
            except Exception as e:
                batch_failed = True
                result.download_failures += 1
                metrics.certificate_downloads.labels(result="failure").inc()
                logger.error(f"Failed to merge remote certificate {remote_cert.client_id}: {e}")
                continue

            if remote_cert.updated_at is not None:
                updated_at = to_naive_utc(remote_cert.updated_at)
                if newest is None or updated_at > newest:
                    newest = updated_at

        # Only advance past records that all merged, so failures are refetched
        if not batch_failed:
            self._cursor = newest

    def _merge_remote(self, remote_cert: RemoteCertificate) -> bool:
        """Apply one remote record. Returns False when the local copy wins."""
        local = self.store.get_certificate(remote_cert.client_id)
        remote_updated_at = to_naive_utc(remote_cert.client_updated_at)

        if local is not None and local.local_updated_at > remote_updated_at:
            logger.debug(f"Local copy of {local.id} is newer; keeping it")
            return False

        file_data = None
        if remote_cert.has_file_data and not self.store.has_certificate_file(remote_cert.client_id):
            file_data = self.remote.fetch_certificate_file(remote_cert.id)

        self.store.merge_remote_certificate(
            remote_cert.to_certificate(self.upcoming_window_days),
            file_data,
            remote_updated_at,
        )
        return True

    def _resolve_conflicts(self, result: SyncResult) -> None:
        """Re-queue conflicting certificates so the local copy is uploaded again."""
        for certificate_id in self.store.get_certificate_ids_by_sync_status(SyncStatus.CONFLICT):
            if self.store.update_sync_status(certificate_id, SyncStatus.PENDING):
                result.conflicts_requeued += 1
                logger.warning(f"Certificate {certificate_id} was in conflict; re-queued local copy")

    # Application write path

    def upload_certificate(
        self,
        cert: Certificate,
        file_data: Optional[bytes] = None,
        background: bool = True,
    ) -> StoredCertificate:
        """Save locally, then sync.

        The local write is visible immediately. By default the sync runs in the
        background; with background=False it runs inline (for short-lived
        processes) but its errors are still only logged.
        """
        stored = self.store.save_certificate(cert, file_data)
        if background:
            self.trigger_sync()
        else:
            self._sync_logged()
        return stored

    def trigger_sync(self) -> Optional[threading.Thread]:
        """Start a sync without waiting for it. Errors are logged, never raised."""
        if not self.is_online:
            return None
        if self.scheduler is not None and self.scheduler.is_running:
            self.scheduler.trigger()
            return None

        thread = threading.Thread(
            target=self._sync_logged, name="certsync-sync", daemon=True
        )
        thread.start()
        return thread

    def _sync_logged(self) -> None:
        try:
            self.sync()
        except Exception as e:
            logger.error(f"Background sync failed: {e}", exc_info=True)

    def delete_certificate(self, certificate_id: str) -> None:
        """Delete locally, then best-effort on the remote."""
        self.store.delete_certificate(certificate_id)

        if not self.is_online:
            return
        try:
            self.remote.delete_certificate_by_client_id(certificate_id)
        except RemoteServiceError as e:
            logger.error(f"Failed to delete certificate {certificate_id} from server: {e}")

    def get_certificates(self) -> list[StoredCertificate]:
        """All certificates from the local store."""
        return self.store.get_all_certificates()

    def get_certificate_file(self, certificate_id: str) -> Optional[bytes]:
        return self.store.get_certificate_file(certificate_id)
