"""Tests for at-rest encryption."""

import os
import stat

import pytest

from certsync.exceptions import DecryptionError
from certsync.security.encryption import EncryptionService


@pytest.mark.parametrize("text", ["Fire Safety", "", "Überlebenstechniken – 救生", "x" * 10_000])
def test_encrypt_decrypt_roundtrip(encryption_service, text):
    """Test string encryption round trip."""
    ciphertext = encryption_service.encrypt(text)

    assert ciphertext != text or text == ""
    assert encryption_service.decrypt(ciphertext) == text


@pytest.mark.parametrize("data", [b"", b"\x00\xff" * 512, os.urandom(4096)])
def test_encrypt_file_roundtrip_is_byte_exact(encryption_service, data):
    """Test binary encryption round trip."""
    ciphertext = encryption_service.encrypt_file(data)

    assert isinstance(ciphertext, str)
    assert encryption_service.decrypt_file(ciphertext) == data


def test_key_created_once_and_reused(key_path):
    """Test key is generated on first use and persisted."""
    assert not key_path.exists()

    first = EncryptionService(key_path)
    key = first.get_or_create_key()
    assert key_path.exists()
    assert first.get_or_create_key() == key

    # A fresh instance (app restart) reads the same key
    second = EncryptionService(key_path)
    assert second.get_or_create_key() == key
    assert second.decrypt(first.encrypt("STCW-123")) == "STCW-123"


def test_key_file_is_owner_only(key_path):
    """Test key file permissions."""
    EncryptionService(key_path).get_or_create_key()

    mode = stat.S_IMODE(key_path.stat().st_mode)
    assert mode == 0o600


def test_decrypt_with_other_key_fails(tmp_path):
    """Test decrypting with a different key raises instead of returning garbage."""
    original = EncryptionService(tmp_path / "a.key")
    rotated = EncryptionService(tmp_path / "b.key")
    ciphertext = original.encrypt("Medical First Aid")

    with pytest.raises(DecryptionError):
        rotated.decrypt(ciphertext)
    with pytest.raises(DecryptionError):
        rotated.decrypt_file(original.encrypt_file(b"%PDF-1.7"))


def test_decrypt_malformed_ciphertext_fails(encryption_service):
    """Test malformed ciphertext raises DecryptionError."""
    with pytest.raises(DecryptionError):
        encryption_service.decrypt("not-a-token")
    with pytest.raises(DecryptionError):
        encryption_service.decrypt_file("ünïcode")


def test_decrypt_binary_payload_as_text_fails(encryption_service):
    """Test a file ciphertext read back as text raises DecryptionError."""
    ciphertext = encryption_service.encrypt_file(b"\xff\xfe\x00%PDF")

    with pytest.raises(DecryptionError):
        encryption_service.decrypt(ciphertext)
