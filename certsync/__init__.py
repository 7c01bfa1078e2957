"""certsync - local-first encrypted certificate store."""

__version__ = "0.1.0"

from certsync.schemas import Category, Certificate, CertificateStatus, FileType, SyncStatus
from certsync.sync.service import SyncResult, SyncService

__all__ = [
    "Category",
    "Certificate",
    "CertificateStatus",
    "FileType",
    "SyncStatus",
    "SyncResult",
    "SyncService",
]
