"""Pytest configuration and fixtures."""

from datetime import date
from unittest.mock import MagicMock

import pytest

from certsync.db.session import create_local_engine
from certsync.remote.client import RemoteClient
from certsync.schemas import Category, Certificate, FileType, RemoteCertificate, RemoteUser
from certsync.security.encryption import EncryptionService
from certsync.storage.local import LocalStore
from certsync.sync.service import SyncService


@pytest.fixture
def key_path(tmp_path):
    return tmp_path / "keys" / "encryption.key"


@pytest.fixture
def encryption_service(key_path) -> EncryptionService:
    return EncryptionService(key_path)


@pytest.fixture
def engine():
    """In-memory SQLite engine shared across threads."""
    engine = create_local_engine("sqlite:///:memory:")
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine, encryption_service) -> LocalStore:
    store = LocalStore(engine, encryption_service)
    store.init()
    return store


@pytest.fixture
def make_certificate():
    """Factory for certificates with sensible defaults."""

    def _make(**overrides) -> Certificate:
        fields = {
            "name": "Basic Fire Fighting",
            "serial_number": "BFF-2023-001",
            "category": Category.STCW,
            "issue_date": date(2023, 1, 15),
            "expiry_date": date(2028, 1, 15),
            "file_type": FileType.PDF,
        }
        fields.update(overrides)
        return Certificate(**fields)

    return _make


@pytest.fixture
def make_remote_certificate():
    """Factory for rows of the remote certificates_decrypted view."""

    def _make(client_id: str, **overrides) -> RemoteCertificate:
        fields = {
            "id": "remote-" + client_id,
            "client_id": client_id,
            "name": "Remote Name",
            "serial_number": "RMT-001",
            "category": "GWO",
            "issue_date": "2023-07-20",
            "expiry_date": "2027-07-20",
            "status": "valid",
            "file_type": "pdf",
            "has_file_data": False,
            "client_updated_at": "2024-01-05T00:00:00Z",
            "updated_at": "2024-01-05T00:00:01Z",
        }
        fields.update(overrides)
        return RemoteCertificate.model_validate(fields)

    return _make


@pytest.fixture
def mock_remote():
    """Remote client double with a signed-in user and an empty remote."""
    remote = MagicMock(spec=RemoteClient)
    remote.get_current_user.return_value = RemoteUser(id="user-1", is_anonymous=True)
    remote.fetch_certificates_since.return_value = []
    remote.fetch_certificate_file.return_value = None
    return remote


@pytest.fixture
def sync_service(store, mock_remote) -> SyncService:
    """Online sync service without the periodic scheduler."""
    service = SyncService(store, mock_remote, sync_jitter_seconds=0)
    service.initialize(start_scheduler=False)
    yield service
    service.shutdown()
