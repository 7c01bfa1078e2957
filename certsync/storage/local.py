"""Local certificate store.

Certificate metadata and file blobs live in SQLite. Names, serial numbers and
blobs are encrypted before they are written; a certificate row and its file
row are always written and deleted in the same transaction.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from certsync.db.base import Base
from certsync.exceptions import SchemaVersionError, StoreNotInitializedError
from certsync.models import LocalCertificate, LocalFile, StoreMeta
from certsync.schemas import Certificate, StoredCertificate, SyncStatus
from certsync.security.encryption import EncryptionService
from certsync.utils.time import to_naive_utc, utcnow

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


class LocalStore:
    """Encrypted local persistence for certificates and their files."""

    def __init__(self, engine: Engine, encryption: EncryptionService):
        """Initialize store; call init() before use."""
        self.engine = engine
        self.encryption = encryption
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        self._initialized = False
        # One transaction at a time; an in-memory engine shares a single connection
        self._lock = threading.RLock()

    def init(self) -> None:
        """Create tables if missing and check the schema version. Idempotent."""
        self.encryption.get_or_create_key()
        Base.metadata.create_all(self.engine)

        db = self.SessionLocal()
        try:
            meta = db.get(StoreMeta, "schema_version")
            if meta is None:
                db.add(StoreMeta(key="schema_version", value=str(SCHEMA_VERSION)))
                db.commit()
                logger.info(f"Created local store (schema version {SCHEMA_VERSION})")
            elif meta.value != str(SCHEMA_VERSION):
                raise SchemaVersionError(meta.value, SCHEMA_VERSION)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        self._initialized = True

    @contextmanager
    def _session(self) -> Iterator[Session]:
        """Session that commits on success and rolls back on any error."""
        if not self._initialized:
            raise StoreNotInitializedError("Local store not initialized; call init() first")
        with self._lock:
            db = self.SessionLocal()
            try:
                yield db
                db.commit()
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()

    # Writes

    def save_certificate(
        self, cert: Certificate, file_data: Optional[bytes] = None
    ) -> StoredCertificate:
        """Save a local edit: encrypted, pending upload, stamped now."""
        with self._session() as db:
            row = self._write(db, cert, file_data, SyncStatus.PENDING, utcnow())
            stored = self._to_certificate(row, cert.name, cert.serial_number)
        logger.debug(f"Saved certificate {cert.id} locally")
        return stored

    def merge_remote_certificate(
        self,
        cert: Certificate,
        file_data: Optional[bytes],
        remote_updated_at: datetime,
    ) -> StoredCertificate:
        """Save a record adopted from the remote, already synced."""
        with self._session() as db:
            row = self._write(
                db, cert, file_data, SyncStatus.SYNCED, to_naive_utc(remote_updated_at)
            )
            stored = self._to_certificate(row, cert.name, cert.serial_number)
        logger.debug(f"Merged remote certificate {cert.id}")
        return stored

    def _write(
        self,
        db: Session,
        cert: Certificate,
        file_data: Optional[bytes],
        sync_status: SyncStatus,
        updated_at: datetime,
    ) -> LocalCertificate:
        # Encrypt everything up front so a failure writes nothing
        name_ciphertext = self.encryption.encrypt(cert.name)
        serial_ciphertext = self.encryption.encrypt(cert.serial_number)
        file_ciphertext = (
            self.encryption.encrypt_file(file_data) if file_data is not None else None
        )

        row = db.get(LocalCertificate, cert.id)
        if row is None:
            row = LocalCertificate(id=cert.id)
            db.add(row)
        row.name_ciphertext = name_ciphertext
        row.serial_number_ciphertext = serial_ciphertext
        row.category = cert.category.value
        row.issue_date = cert.issue_date
        row.expiry_date = cert.expiry_date
        row.status = cert.status.value
        row.file_type = cert.file_type.value
        row.file_path = cert.file_path
        row.sync_status = sync_status.value
        row.local_updated_at = updated_at

        if file_ciphertext is not None:
            file_row = db.get(LocalFile, cert.id)
            if file_row is None:
                file_row = LocalFile(certificate_id=cert.id)
                db.add(file_row)
            file_row.encrypted_data = file_ciphertext
            file_row.file_type = cert.file_type.value
            file_row.size = len(file_data)

        db.flush()
        return row

    def delete_certificate(self, certificate_id: str) -> bool:
        """Delete a certificate and its file together. Missing ids are a no-op."""
        with self._session() as db:
            deleted = (
                db.query(LocalCertificate)
                .filter(LocalCertificate.id == certificate_id)
                .delete(synchronize_session=False)
            )
            deleted_files = (
                db.query(LocalFile)
                .filter(LocalFile.certificate_id == certificate_id)
                .delete(synchronize_session=False)
            )
        if deleted or deleted_files:
            logger.debug(f"Deleted certificate {certificate_id} locally")
        return bool(deleted or deleted_files)

    def update_sync_status(
        self,
        certificate_id: str,
        status: SyncStatus,
        unchanged_since: Optional[datetime] = None,
    ) -> bool:
        """Set sync_status only.

        A vanished certificate is logged rather than raised so background sync
        keeps going. With unchanged_since, rows edited after that time are left
        alone.
        """
        with self._session() as db:
            row = db.get(LocalCertificate, certificate_id)
            if row is None:
                logger.warning(
                    f"Cannot set sync status {status.value}: certificate {certificate_id} no longer exists locally"
                )
                return False
            if unchanged_since is not None and row.local_updated_at > to_naive_utc(unchanged_since):
                logger.info(
                    f"Certificate {certificate_id} changed during sync; keeping status {row.sync_status}"
                )
                return False
            row.sync_status = status.value
        return True

    # Reads

    def get_certificate(self, certificate_id: str) -> Optional[StoredCertificate]:
        """Get a decrypted certificate, or None if it does not exist."""
        with self._session() as db:
            row = db.get(LocalCertificate, certificate_id)
            if row is None:
                return None
            return self._decrypt_row(row)

    def get_all_certificates(self) -> list[StoredCertificate]:
        """Get every certificate, decrypted, in no particular order."""
        with self._session() as db:
            return [self._decrypt_row(row) for row in db.query(LocalCertificate).all()]

    def get_pending_certificates(self) -> list[StoredCertificate]:
        """Get certificates waiting to be uploaded."""
        with self._session() as db:
            rows = (
                db.query(LocalCertificate)
                .filter(LocalCertificate.sync_status == SyncStatus.PENDING.value)
                .all()
            )
            return [self._decrypt_row(row) for row in rows]

    def get_certificate_ids_by_sync_status(self, status: SyncStatus) -> list[str]:
        """Get ids only, without decrypting anything."""
        with self._session() as db:
            rows = (
                db.query(LocalCertificate.id)
                .filter(LocalCertificate.sync_status == status.value)
                .all()
            )
            return [row.id for row in rows]

    def get_certificate_file(self, certificate_id: str) -> Optional[bytes]:
        """Get decrypted file bytes, or None if no file is stored."""
        with self._session() as db:
            file_row = db.get(LocalFile, certificate_id)
            if file_row is None:
                return None
            return self.encryption.decrypt_file(file_row.encrypted_data)

    def has_certificate_file(self, certificate_id: str) -> bool:
        """Check for a stored file without decrypting it."""
        with self._session() as db:
            return db.get(LocalFile, certificate_id) is not None

    def _decrypt_row(self, row: LocalCertificate) -> StoredCertificate:
        # DecryptionError propagates; never hand back partial plaintext
        name = self.encryption.decrypt(row.name_ciphertext)
        serial_number = self.encryption.decrypt(row.serial_number_ciphertext)
        return self._to_certificate(row, name, serial_number)

    @staticmethod
    def _to_certificate(
        row: LocalCertificate, name: str, serial_number: str
    ) -> StoredCertificate:
        return StoredCertificate(
            id=row.id,
            name=name,
            serial_number=serial_number,
            category=row.category,
            issue_date=row.issue_date,
            expiry_date=row.expiry_date,
            status=row.status,
            file_type=row.file_type,
            file_path=row.file_path,
            sync_status=row.sync_status,
            local_updated_at=row.local_updated_at,
        )
