"""Local certificate, file blob and store metadata models."""

from sqlalchemy import Column, Date, DateTime, Integer, String, Text

from certsync.db.base import Base
from certsync.utils.time import utcnow


class LocalCertificate(Base):
    """Certificate row with name and serial number encrypted."""

    __tablename__ = "certificates"

    id = Column(String(64), primary_key=True)
    name_ciphertext = Column(Text, nullable=False)
    serial_number_ciphertext = Column(Text, nullable=False)
    category = Column(String(20), nullable=False, index=True)  # STCW, GWO, OPITO, Contracts, Other
    issue_date = Column(Date, nullable=False)
    expiry_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, index=True)  # valid, expired, upcoming (hint)
    file_type = Column(String(10), nullable=False, default="pdf")
    file_path = Column(String(500), nullable=True)
    sync_status = Column(String(20), nullable=False, default="pending", index=True)
    local_updated_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class LocalFile(Base):
    """Encrypted file blob, at most one per certificate."""

    __tablename__ = "files"

    certificate_id = Column(String(64), primary_key=True)
    encrypted_data = Column(Text, nullable=False)
    file_type = Column(String(10), nullable=False)
    size = Column(Integer, nullable=False)  # Plaintext byte count


class StoreMeta(Base):
    """Key/value metadata about the local store itself."""

    __tablename__ = "store_meta"

    key = Column(String(64), primary_key=True)
    value = Column(Text, nullable=False)
