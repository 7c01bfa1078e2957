"""In-memory application state for the UI layer."""

import logging
import threading
from datetime import date
from typing import Callable, Optional

from certsync.schemas import (
    Category,
    Certificate,
    CertificateStatus,
    StoredCertificate,
    derive_status,
)
from certsync.sync.service import SyncResult, SyncService

logger = logging.getLogger(__name__)

StateListener = Callable[["CertificateStateCache"], None]


class CertificateStateCache:
    """Reactive cache of certificates, selection and the viewed certificate.

    Reads come from memory; writes go through the sync service. Subscribers
    are called after every state change, including refreshes that follow a
    background sync.
    """

    def __init__(self, sync_service: SyncService, upcoming_window_days: int = 30):
        self.sync_service = sync_service
        self.upcoming_window_days = upcoming_window_days
        self.certificates: list[StoredCertificate] = []
        self.selected_ids: list[str] = []
        self.current_viewing: Optional[Certificate] = None
        self.is_initialized = False
        self._listeners: list[StateListener] = []
        self._lock = threading.RLock()

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a change listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.error(f"State listener failed: {e}", exc_info=True)

    def initialize(self, start_scheduler: bool = True) -> None:
        """Initialize the sync layer and load certificates. Repeat calls are no-ops."""
        if self.is_initialized:
            return
        self.sync_service.initialize(start_scheduler=start_scheduler)
        self.sync_service.add_sync_listener(self._on_synced)
        self.refresh()
        self.is_initialized = True
        self._notify()

    def _on_synced(self, result: SyncResult) -> None:
        if result.downloaded or result.uploaded:
            self.refresh()

    def refresh(self) -> None:
        """Reload certificates from the local store, ordered by expiry date."""
        certificates = sorted(
            self.sync_service.get_certificates(),
            key=lambda cert: (cert.expiry_date, cert.name),
        )
        with self._lock:
            self.certificates = certificates
            known = {cert.id for cert in certificates}
            self.selected_ids = [cid for cid in self.selected_ids if cid in known]
            if self.current_viewing is not None and self.current_viewing.id not in known:
                self.current_viewing = None
        self._notify()

    # Actions

    def add_certificate(
        self, cert: Certificate, file_data: Optional[bytes] = None
    ) -> StoredCertificate:
        stored = self.sync_service.upload_certificate(cert, file_data)
        with self._lock:
            self.certificates = [c for c in self.certificates if c.id != stored.id]
            self.certificates.append(stored)
        self._notify()
        return stored

    def update_certificate(self, certificate_id: str, **changes) -> StoredCertificate:
        """Apply field changes to a certificate and save it as a local edit."""
        existing = self.get_certificate(certificate_id)
        if existing is None:
            raise KeyError(certificate_id)
        if "id" in changes:
            raise ValueError("Certificate id is immutable")

        fields = {**existing.model_dump(include=set(Certificate.model_fields)), **changes}
        if "expiry_date" in changes and "status" not in changes:
            fields["status"] = derive_status(
                Certificate.model_validate(fields).expiry_date,
                upcoming_window_days=self.upcoming_window_days,
            )
        updated = Certificate.model_validate(fields)
        stored = self.sync_service.upload_certificate(updated)
        with self._lock:
            self.certificates = [
                stored if c.id == certificate_id else c for c in self.certificates
            ]
            if self.current_viewing is not None and self.current_viewing.id == certificate_id:
                self.current_viewing = stored
        self._notify()
        return stored

    def delete_certificate(self, certificate_id: str) -> None:
        self.sync_service.delete_certificate(certificate_id)
        with self._lock:
            self.certificates = [c for c in self.certificates if c.id != certificate_id]
            self.selected_ids = [cid for cid in self.selected_ids if cid != certificate_id]
            if self.current_viewing is not None and self.current_viewing.id == certificate_id:
                self.current_viewing = None
        self._notify()

    def toggle_selection(self, certificate_id: str) -> None:
        with self._lock:
            if certificate_id in self.selected_ids:
                self.selected_ids = [cid for cid in self.selected_ids if cid != certificate_id]
            else:
                self.selected_ids = [*self.selected_ids, certificate_id]
        self._notify()

    def clear_selection(self) -> None:
        with self._lock:
            self.selected_ids = []
        self._notify()

    def set_current_viewing(self, cert: Optional[Certificate]) -> None:
        with self._lock:
            self.current_viewing = cert
        self._notify()

    # Getters

    def get_certificate(self, certificate_id: str) -> Optional[StoredCertificate]:
        with self._lock:
            return next((c for c in self.certificates if c.id == certificate_id), None)

    def get_selected_certificates(self) -> list[StoredCertificate]:
        with self._lock:
            by_id = {c.id: c for c in self.certificates}
            return [by_id[cid] for cid in self.selected_ids if cid in by_id]

    def get_certificates_by_category(self, category: Category) -> list[StoredCertificate]:
        category = Category(category)
        with self._lock:
            return [c for c in self.certificates if c.category == category]

    def get_statistics(self, today: Optional[date] = None) -> dict[str, int]:
        """Counts per status, derived from expiry dates rather than cached status."""
        stats = {status.value: 0 for status in CertificateStatus}
        with self._lock:
            for cert in self.certificates:
                stats[cert.current_status(today, self.upcoming_window_days).value] += 1
        return stats
