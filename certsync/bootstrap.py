"""Construct the certsync object graph from settings."""

import logging
import sys
from typing import Optional

from certsync.db.session import create_local_engine
from certsync.remote.client import RemoteClient
from certsync.security.encryption import EncryptionService
from certsync.settings import Settings, get_settings
from certsync.state import CertificateStateCache
from certsync.storage.local import LocalStore
from certsync.sync.service import SyncService

JSON_LOG_FORMAT = '{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s", "module": "%(name)s"}'
TEXT_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(settings: Settings) -> None:
    """Configure root logging from settings."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format=JSON_LOG_FORMAT if settings.log_format == "json" else TEXT_LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def create_store(settings: Settings) -> LocalStore:
    engine = create_local_engine(settings.database_url_computed)
    encryption = EncryptionService(settings.encryption_key_path_computed)
    return LocalStore(engine, encryption)


def create_remote_client(settings: Settings) -> Optional[RemoteClient]:
    if not settings.remote_enabled:
        return None
    return RemoteClient(
        settings.remote_url,
        settings.remote_api_key,
        timeout=settings.remote_timeout_seconds,
        session_path=settings.session_path_computed,
    )


def create_sync_service(settings: Optional[Settings] = None) -> SyncService:
    """Build a sync service with its store and (if configured) remote client."""
    settings = settings or get_settings()
    settings.validate_production_settings()
    return SyncService(
        create_store(settings),
        create_remote_client(settings),
        sync_interval_seconds=settings.sync_interval_seconds,
        sync_backoff_max_seconds=settings.sync_backoff_max_seconds,
        sync_jitter_seconds=settings.sync_jitter_seconds,
        upcoming_window_days=settings.upcoming_window_days,
    )


def create_state_cache(settings: Optional[Settings] = None) -> CertificateStateCache:
    settings = settings or get_settings()
    return CertificateStateCache(
        create_sync_service(settings),
        upcoming_window_days=settings.upcoming_window_days,
    )
