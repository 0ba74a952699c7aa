# Vault - Remote Envelope Store (PostgREST)
#
# Concrete VaultStore for a PostgREST/Supabase-style backend.
#   - GET  {base}/rest/v1/user_vaults?user_id=eq.<id>&select=*
#   - POST {base}/rest/v1/user_vaults?on_conflict=user_id
#          Prefer: resolution=merge-duplicates,return=minimal
# and the same for user_settings, plus
#   - DELETE {base}/rest/v1/user_vaults?user_id=eq.<id>  (import rollback)
#
# One HTTP call per operation, no retries: a failure is raised as
# StoreUnavailable and the previous row stays whatever the server kept.

import logging
from dataclasses import asdict
from typing import Any, Dict, List, Optional

import httpx

from ..core.exceptions import StoreUnavailable
from .store import StoredSettings, StoredVault, VaultStore

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SEC = 15
REST_PREFIX = "/rest/v1"

VAULTS_TABLE = "user_vaults"
SETTINGS_TABLE = "user_settings"


class RestVaultStore(VaultStore):
    """Envelope store backed by PostgREST over HTTPS.

    Usage::

        store = RestVaultStore("https://project.supabase.co", api_key="...")
        row = store.fetch_vault(user_id)

    Args:
        base_url: Server root (the ``/rest/v1`` prefix is added here).
        api_key: Sent as ``apikey`` and as a bearer token.
        access_token: User JWT; overrides the bearer token when given.
        client: Pre-built ``httpx.Client`` (tests inject a MockTransport).
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        access_token: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        timeout: float = REQUEST_TIMEOUT_SEC,
    ):
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._access_token = access_token
        self._client = client or httpx.Client(timeout=timeout)

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _build_headers(self, upsert: bool = False) -> Dict[str, str]:
        headers: Dict[str, str] = {
            "Accept": "application/json",
            "User-Agent": "SecureVault/0.1",
        }
        if self._api_key:
            headers["apikey"] = self._api_key
        token = self._access_token or self._api_key
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if upsert:
            headers["Content-Type"] = "application/json"
            headers["Prefer"] = "resolution=merge-duplicates,return=minimal"
        return headers

    def _url(self, table: str) -> str:
        return f"{self._base_url}{REST_PREFIX}/{table}"

    def _select(self, table: str, user_id: str) -> Optional[Dict[str, Any]]:
        try:
            resp = self._client.get(
                self._url(table),
                params={"user_id": f"eq.{user_id}", "select": "*"},
                headers=self._build_headers(),
            )
            resp.raise_for_status()
            rows: List[Dict[str, Any]] = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Remote store read from %s failed: %s", table, exc)
            raise StoreUnavailable(f"Failed to read {table}: {exc}") from exc

        if not isinstance(rows, list):
            raise StoreUnavailable(f"Unexpected response shape from {table}")
        return rows[0] if rows else None

    def _upsert(self, table: str, payload: Dict[str, Any]) -> None:
        try:
            resp = self._client.post(
                self._url(table),
                params={"on_conflict": "user_id"},
                headers=self._build_headers(upsert=True),
                json=payload,
            )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Remote store write to %s failed: %s", table, exc)
            raise StoreUnavailable(f"Failed to save {table}: {exc}") from exc

    def _delete(self, table: str, user_id: str) -> None:
        try:
            resp = self._client.delete(
                self._url(table),
                params={"user_id": f"eq.{user_id}"},
                headers=self._build_headers(),
            )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Remote store delete from %s failed: %s", table, exc)
            raise StoreUnavailable(f"Failed to delete from {table}: {exc}") from exc

    # ------------------------------------------------------------------
    # VaultStore interface
    # ------------------------------------------------------------------

    def fetch_vault(self, user_id: str) -> Optional[StoredVault]:
        row = self._select(VAULTS_TABLE, user_id)
        if row is None:
            return None
        try:
            return StoredVault(
                user_id=row["user_id"],
                encrypted_data=row["encrypted_data"],
                iv=row["iv"],
                salt=row.get("salt") or "",
                updated_at=row.get("updated_at") or "",
            )
        except (KeyError, TypeError, AttributeError) as exc:
            raise StoreUnavailable(f"Malformed {VAULTS_TABLE} row") from exc

    def upsert_vault(self, row: StoredVault) -> None:
        self._upsert(VAULTS_TABLE, asdict(row))

    def delete_vault(self, user_id: str) -> None:
        self._delete(VAULTS_TABLE, user_id)

    def fetch_settings(self, user_id: str) -> Optional[StoredSettings]:
        row = self._select(SETTINGS_TABLE, user_id)
        if row is None:
            return None
        try:
            return StoredSettings(
                user_id=row["user_id"],
                encrypted_settings=row["encrypted_settings"],
                iv=row["iv"],
                updated_at=row.get("updated_at") or "",
            )
        except (KeyError, TypeError, AttributeError) as exc:
            raise StoreUnavailable(f"Malformed {SETTINGS_TABLE} row") from exc

    def upsert_settings(self, row: StoredSettings) -> None:
        self._upsert(SETTINGS_TABLE, asdict(row))

    def close(self) -> None:
        self._client.close()
