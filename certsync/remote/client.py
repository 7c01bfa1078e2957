"""Client for the hosted certificate backend.

The backend exposes a Supabase-style surface: anonymous auth under
/auth/v1, RPC functions under /rest/v1/rpc and a certificates_decrypted view
that returns names and serial numbers in plaintext.

The auth session (access and refresh token) is persisted to an owner-only
file so a restarted process keeps the same remote identity.
"""

import base64
import binascii
import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union

import requests
from pydantic import ValidationError

from certsync.exceptions import RemoteServiceError
from certsync.schemas import RemoteCertificate, RemoteUser, StoredCertificate
from certsync.utils.time import isoformat_utc

logger = logging.getLogger(__name__)

TOKEN_PATH = "/auth/v1/token"


@dataclass
class MalformedRemoteRow:
    """A row of the certificates view that failed validation."""

    row: Any
    error: str

    @property
    def client_id(self) -> Optional[str]:
        if isinstance(self.row, dict):
            return self.row.get("client_id")
        return None


class RemoteClient:
    """Client for the remote certificate service."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10,
        session: Optional[requests.Session] = None,
        session_path: Optional[Path] = None,
    ):
        """Initialize client, restoring a persisted auth session if present."""
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"apikey": api_key})
        self.session_path = Path(session_path) if session_path else None
        self.access_token: Optional[str] = None
        self.refresh_token: Optional[str] = None
        self._load_session()

    def _headers(self) -> dict:
        if self.access_token:
            return {"Authorization": f"Bearer {self.access_token}"}
        return {}

    def _request(
        self, method: str, path: str, refresh_on_401: bool = True, **kwargs
    ) -> requests.Response:
        """Issue a request, translating every failure to RemoteServiceError.

        An expired access token is refreshed once and the request retried.
        """
        url = f"{self.base_url}{path}"
        extra_headers = kwargs.pop("headers", {})
        try:
            response = self.session.request(
                method, url, headers={**self._headers(), **extra_headers},
                timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            raise RemoteServiceError(f"{method} {path} failed: {e}") from e

        if response.status_code == 401 and refresh_on_401 and self.refresh_token:
            if self.refresh_session():
                return self._request(
                    method, path, refresh_on_401=False, headers=extra_headers, **kwargs
                )

        if response.status_code >= 400:
            raise RemoteServiceError(
                f"{method} {path} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def _json(response: requests.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise RemoteServiceError(f"Invalid JSON from {response.url}") from e

    # Session persistence

    def _load_session(self) -> None:
        if self.session_path is None or not self.session_path.exists():
            return
        try:
            data = json.loads(self.session_path.read_text())
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable session file {self.session_path}: {e}")
            return
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed session file {self.session_path}")
            return
        self.access_token = data.get("access_token")
        self.refresh_token = data.get("refresh_token")

    def _store_session(self, data: dict) -> None:
        self.access_token = data["access_token"]
        self.refresh_token = data.get("refresh_token")
        if self.session_path is None:
            return
        self.session_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.session_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as fh:
            json.dump(
                {"access_token": self.access_token, "refresh_token": self.refresh_token}, fh
            )
        os.chmod(self.session_path, 0o600)

    def _clear_session(self) -> None:
        self.access_token = None
        self.refresh_token = None
        if self.session_path is not None and self.session_path.exists():
            self.session_path.unlink()

    # Auth

    def sign_in_anonymously(self) -> RemoteUser:
        """Create an anonymous session and keep its tokens."""
        data = self._json(
            self._request("POST", "/auth/v1/signup", refresh_on_401=False, json={})
        )
        if not data or "access_token" not in data or "user" not in data:
            raise RemoteServiceError("Anonymous sign-in returned no session")
        self._store_session(data)
        user = self._parse_user(data["user"])
        logger.info(f"Signed in anonymously as {user.id}")
        return user

    def refresh_session(self) -> bool:
        """Exchange the refresh token for a new access token.

        Returns False and drops the session when the refresh is rejected.
        """
        if not self.refresh_token:
            return False
        try:
            response = self._request(
                "POST",
                TOKEN_PATH,
                refresh_on_401=False,
                params={"grant_type": "refresh_token"},
                json={"refresh_token": self.refresh_token},
            )
        except RemoteServiceError as e:
            if e.status_code is not None and 400 <= e.status_code < 500:
                logger.warning(f"Session refresh rejected, signing out: {e}")
                self._clear_session()
                return False
            raise

        data = self._json(response)
        if not data or "access_token" not in data:
            raise RemoteServiceError("Session refresh returned no access token")
        self._store_session(data)
        logger.info("Refreshed remote session")
        return True

    def get_current_user(self) -> Optional[RemoteUser]:
        """Get the signed-in user, or None without a valid session."""
        if not self.access_token:
            return None
        try:
            response = self._request("GET", "/auth/v1/user")
        except RemoteServiceError as e:
            if e.status_code in (401, 403):
                self._clear_session()
                return None
            raise
        return self._parse_user(self._json(response))

    def sign_out(self) -> None:
        """End the current session."""
        if not self.access_token:
            return
        self._request("POST", "/auth/v1/logout", refresh_on_401=False)
        self._clear_session()

    @staticmethod
    def _parse_user(data: Any) -> RemoteUser:
        try:
            return RemoteUser.model_validate(data)
        except ValidationError as e:
            raise RemoteServiceError(f"Malformed user payload: {e}") from e

    # Certificates

    def insert_certificate(
        self, record: StoredCertificate, file_data: Optional[bytes] = None
    ) -> Any:
        """Upsert a certificate (and its file, base64) keyed by client id."""
        payload = {
            "p_name": record.name,
            "p_serial_number": record.serial_number,
            "p_category": record.category.value,
            "p_issue_date": record.issue_date.isoformat(),
            "p_expiry_date": record.expiry_date.isoformat(),
            "p_file_type": record.file_type.value,
            "p_file_size": len(file_data) if file_data is not None else None,
            "p_client_id": record.id,
            "p_client_updated_at": isoformat_utc(record.local_updated_at),
            "p_file_data": (
                base64.b64encode(file_data).decode("ascii") if file_data is not None else None
            ),
        }
        response = self._request("POST", "/rest/v1/rpc/insert_certificate", json=payload)
        return self._json(response)

    def fetch_certificates_since(
        self, cursor: Optional[datetime] = None
    ) -> list[Union[RemoteCertificate, MalformedRemoteRow]]:
        """Fetch remote certificates, newest first, optionally only those updated after cursor.

        Rows that fail validation come back as MalformedRemoteRow so the
        caller can count them as failures.
        """
        params = {"select": "*", "order": "updated_at.desc"}
        if cursor is not None:
            params["updated_at"] = f"gt.{isoformat_utc(cursor)}"
        rows = self._json(
            self._request("GET", "/rest/v1/certificates_decrypted", params=params)
        ) or []
        if not isinstance(rows, list):
            raise RemoteServiceError("Expected a list of certificates")

        certificates = []
        for row in rows:
            try:
                certificates.append(RemoteCertificate.model_validate(row))
            except ValidationError as e:
                certificates.append(MalformedRemoteRow(row=row, error=str(e)))
        return certificates

    def fetch_certificate_file(self, remote_id: str) -> Optional[bytes]:
        """Fetch a certificate's file bytes, or None if it has none."""
        data = self._json(
            self._request(
                "POST",
                "/rest/v1/rpc/get_certificate_file",
                json={"p_certificate_id": remote_id},
            )
        )
        if not data:
            return None
        try:
            return base64.b64decode(data, validate=True)
        except (binascii.Error, TypeError) as e:
            raise RemoteServiceError(f"Invalid file payload for certificate {remote_id}") from e

    def delete_certificate_by_client_id(self, client_id: str) -> None:
        """Delete the remote copy of a local certificate."""
        self._request(
            "DELETE",
            "/rest/v1/certificates",
            params={"client_id": f"eq.{client_id}"},
        )
