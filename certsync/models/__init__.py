"""Database models - import all models here for metadata discovery."""

from certsync.models.certificate import LocalCertificate, LocalFile, StoreMeta

__all__ = [
    "LocalCertificate",
    "LocalFile",
    "StoreMeta",
]
