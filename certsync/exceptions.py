"""Exceptions raised by certsync."""

from typing import Optional


class CertSyncError(Exception):
    """Base class for certsync errors."""


class StoreNotInitializedError(CertSyncError):
    """Local store used before init()."""


class SchemaVersionError(CertSyncError):
    """Local database was written by an incompatible schema version."""

    def __init__(self, found: str, expected: int):
        super().__init__(
            f"Local store schema version {found} does not match expected {expected}; "
            "a manual upgrade is required"
        )
        self.found = found
        self.expected = expected


class DecryptionError(CertSyncError):
    """Ciphertext could not be decrypted with the current key."""


class RemoteServiceError(CertSyncError):
    """A call to the remote backend failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
