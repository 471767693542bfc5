"""
Licensing service client using httpx sync client.
Mints a license token for {scope, licensee, license type} at the external IP-licensing service.
Any failure raises LicensingError; the ledger decides what a failure means.
"""
import logging
import time
from dataclasses import dataclass
from typing import Protocol

import httpx


logger = logging.getLogger(__name__)


class LicensingError(Exception):
    pass


@dataclass(frozen=True)
class LicenseGrant:
    token_id: str
    license_id: str


class LicenseMinter(Protocol):
    def mint_license(self, scope_id: str, licensee: str, license_type: str) -> LicenseGrant: ...


class HttpLicensingClient:
    """POST {base_url}/licenses/mint -> {"tokenId": ..., "licenseId": ...}."""

    def __init__(self, base_url: str, api_key: str = "", timeout: float = 15.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._client: httpx.Client | None = None

    @property
    def client(self) -> httpx.Client:
        """Lazy initialization of httpx client."""
        if self._client is None:
            headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
            self._client = httpx.Client(timeout=self._timeout, headers=headers)
        return self._client

    def mint_license(self, scope_id: str, licensee: str, license_type: str) -> LicenseGrant:
        start = time.time()
        try:
            resp = self.client.post(
                f"{self._base_url}/licenses/mint",
                json={"ipId": scope_id, "licensee": licensee, "licenseType": license_type},
            )
            resp.raise_for_status()
            body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise LicensingError(f"license mint failed: {type(e).__name__}: {e}") from e

        token_id, license_id = body.get("tokenId"), body.get("licenseId")
        if token_id is None or license_id is None:
            raise LicensingError("license mint response missing tokenId/licenseId")
        logger.info(
            "license_minted",
            extra={"license_type": license_type, "latency_ms": int((time.time() - start) * 1000)},
        )
        return LicenseGrant(token_id=str(token_id), license_id=str(license_id))

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
