"""Certificate schemas shared by the local store, remote client and UI state."""

import uuid
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Category(str, Enum):
    """Certificate categories."""

    STCW = "STCW"
    GWO = "GWO"
    OPITO = "OPITO"
    CONTRACTS = "Contracts"
    OTHER = "Other"


class CertificateStatus(str, Enum):
    """Expiry classification."""

    VALID = "valid"
    EXPIRED = "expired"
    UPCOMING = "upcoming"


class FileType(str, Enum):
    """How the attached blob is rendered."""

    PDF = "pdf"
    IMAGE = "image"


class SyncStatus(str, Enum):
    """Lifecycle of a local record relative to the remote copy."""

    LOCAL = "local"
    SYNCED = "synced"
    PENDING = "pending"
    CONFLICT = "conflict"


def derive_status(
    expiry_date: date,
    today: Optional[date] = None,
    upcoming_window_days: int = 30,
) -> CertificateStatus:
    """Classify a certificate by its expiry date."""
    today = today or date.today()
    if expiry_date < today:
        return CertificateStatus.EXPIRED
    if expiry_date <= today + timedelta(days=upcoming_window_days):
        return CertificateStatus.UPCOMING
    return CertificateStatus.VALID


def new_certificate_id() -> str:
    """Generate a client-side certificate id."""
    return str(uuid.uuid4())


class Certificate(BaseModel):
    """A certificate as seen by the application."""

    id: str = Field(default_factory=new_certificate_id)
    name: str
    serial_number: str
    category: Category
    issue_date: date
    expiry_date: date
    # Cached hint only; use current_status() for the real classification
    status: CertificateStatus = CertificateStatus.VALID
    file_type: FileType = FileType.PDF
    file_path: Optional[str] = None

    # Transient view URLs, never persisted
    pdf_url: Optional[str] = None
    file_url: Optional[str] = None

    def current_status(
        self, today: Optional[date] = None, upcoming_window_days: int = 30
    ) -> CertificateStatus:
        """Status derived from the expiry date."""
        return derive_status(self.expiry_date, today, upcoming_window_days)


class StoredCertificate(Certificate):
    """Certificate plus local sync bookkeeping."""

    sync_status: SyncStatus = SyncStatus.PENDING
    local_updated_at: datetime


class RemoteUser(BaseModel):
    """Authenticated remote identity."""

    model_config = ConfigDict(extra="ignore")

    id: str
    email: Optional[str] = None
    is_anonymous: bool = False


class RemoteCertificate(BaseModel):
    """Row of the remote certificates_decrypted view."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: str
    client_id: str
    name: str
    serial_number: str
    category: Category
    issue_date: date
    expiry_date: date
    status: Optional[CertificateStatus] = None
    file_type: FileType = FileType.PDF
    file_size: Optional[int] = None
    has_file_data: bool = False
    client_updated_at: datetime
    updated_at: Optional[datetime] = None

    def to_certificate(self, upcoming_window_days: int = 30) -> Certificate:
        """Convert to the local certificate shape, keyed by client_id."""
        return Certificate(
            id=self.client_id,
            name=self.name,
            serial_number=self.serial_number,
            category=self.category,
            issue_date=self.issue_date,
            expiry_date=self.expiry_date,
            status=self.status
            or derive_status(self.expiry_date, upcoming_window_days=upcoming_window_days),
            file_type=self.file_type,
            file_path=f"/certificates/{self.client_id}",
        )
