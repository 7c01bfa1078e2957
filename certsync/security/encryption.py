"""Encryption service for certificate fields and file blobs at rest.

The key file lives beside the database it protects, so this guards against
casual inspection of exported data only. It is not a security boundary
against anyone who can read the data directory.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from certsync.exceptions import DecryptionError

logger = logging.getLogger(__name__)


class EncryptionService:
    """Fernet encryption keyed by a locally persisted random key."""

    def __init__(self, key_path: Path):
        """Initialize encryption service."""
        self.key_path = Path(key_path)
        self._fernet: Optional[Fernet] = None

    def get_or_create_key(self) -> bytes:
        """Read the persisted key, generating and storing one on first use."""
        if self.key_path.exists():
            return self.key_path.read_bytes().strip()

        key = Fernet.generate_key()
        self.key_path.parent.mkdir(parents=True, exist_ok=True)
        # Create with owner-only permissions before writing key material
        fd = os.open(self.key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with os.fdopen(fd, "wb") as fh:
            fh.write(key)
        logger.info(f"Generated new encryption key at {self.key_path}")
        return key

    @property
    def fernet(self) -> Fernet:
        if self._fernet is None:
            self._fernet = Fernet(self.get_or_create_key())
        return self._fernet

    def encrypt(self, text: str) -> str:
        """Encrypt a string."""
        return self.fernet.encrypt(text.encode("utf-8")).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a string produced by encrypt()."""
        try:
            return self._decrypt_token(ciphertext).decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError("Decrypted payload is not text") from e

    def encrypt_file(self, data: bytes) -> str:
        """Encrypt a binary payload."""
        return self.fernet.encrypt(bytes(data)).decode("ascii")

    def decrypt_file(self, ciphertext: str) -> bytes:
        """Decrypt a binary payload produced by encrypt_file()."""
        return self._decrypt_token(ciphertext)

    def _decrypt_token(self, ciphertext: str) -> bytes:
        try:
            return self.fernet.decrypt(ciphertext.encode("ascii"))
        except (InvalidToken, UnicodeEncodeError) as e:
            raise DecryptionError(
                "Ciphertext could not be decrypted with the current key"
            ) from e
