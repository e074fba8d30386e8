# Overview: REST clients for the external accounting platforms the sync bridge pushes to.

"""
External accounting platform client.

Both supported platforms speak JSON over HTTPS with a bearer token and
answer create/update calls with {"data": {"id": ...}}. They differ only in
the header that selects the account/company and in their base URL.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog

from ..errors import ExternalPlatformError, ExternalPlatformUnavailable

logger = structlog.get_logger(__name__)

QUICKFILE = "quickfile"
AKAUNTING = "akaunting"

ENTITY_PATHS = {
    "customer": "/api/contacts",
    "invoice": "/api/documents",
    "expense": "/api/transactions",
}


@dataclass(frozen=True)
class PlatformConfig:
    name: str
    base_url: str
    api_key: str
    account_header: str
    account_id: str
    timeout_seconds: float = 5.0
    extra_headers: dict = field(default_factory=dict)

    def headers(self) -> dict:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
            self.account_header: str(self.account_id),
        }
        headers.update(self.extra_headers)
        return headers


def platforms_from_config(config) -> list[PlatformConfig]:
    """
    Build the configured platforms from a Flask config mapping.

    A platform with incomplete credentials is not configured; that is an
    expected state, not an error.
    """
    timeout = float(config.get("SYNC_TIMEOUT_SECONDS", 5))
    platforms = []

    if config.get("QUICKFILE_API_KEY") and config.get("QUICKFILE_ACCOUNT_ID"):
        platforms.append(
            PlatformConfig(
                name=QUICKFILE,
                base_url=config.get("QUICKFILE_BASE_URL") or "https://api.quickfile.co.uk",
                api_key=config["QUICKFILE_API_KEY"],
                account_header="X-Account-ID",
                account_id=config["QUICKFILE_ACCOUNT_ID"],
                timeout_seconds=timeout,
            )
        )
    else:
        logger.info("sync.platform_not_configured", platform=QUICKFILE)

    if config.get("AKAUNTING_URL") and config.get("AKAUNTING_API_KEY") and config.get("AKAUNTING_COMPANY_ID"):
        platforms.append(
            PlatformConfig(
                name=AKAUNTING,
                base_url=config["AKAUNTING_URL"],
                api_key=config["AKAUNTING_API_KEY"],
                account_header="X-Company",
                account_id=config["AKAUNTING_COMPANY_ID"],
                timeout_seconds=timeout,
            )
        )
    else:
        logger.info("sync.platform_not_configured", platform=AKAUNTING)

    return platforms


class AccountingPlatformClient:
    """Blocking client for one platform. Use as a context manager or call close()."""

    def __init__(self, platform: PlatformConfig, transport: httpx.BaseTransport | None = None):
        self.platform = platform
        self._transport = transport
        self._client: httpx.Client | None = None
        # One client per instance even when the bridge is shared across request threads
        self._client_lock = threading.Lock()

    @property
    def name(self) -> str:
        return self.platform.name

    def _get_client(self) -> httpx.Client:
        with self._client_lock:
            if self._client is None:
                self._client = httpx.Client(
                    base_url=self.platform.base_url.rstrip("/"),
                    headers=self.platform.headers(),
                    timeout=httpx.Timeout(self.platform.timeout_seconds),
                    transport=self._transport,
                )
            return self._client

    def close(self) -> None:
        with self._client_lock:
            if self._client is not None:
                self._client.close()
                self._client = None

    def __enter__(self) -> "AccountingPlatformClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _request(self, method: str, path: str, payload: dict) -> dict[str, Any]:
        client = self._get_client()
        try:
            response = client.request(method, path, json=payload)
        except httpx.TimeoutException as exc:
            raise ExternalPlatformUnavailable(f"{self.name} timed out") from exc
        except httpx.TransportError as exc:
            raise ExternalPlatformUnavailable(f"{self.name} unreachable: {exc}") from exc

        if response.status_code >= 400:
            try:
                details = response.json()
            except ValueError:
                details = {"body": response.text[:500]}
            raise ExternalPlatformError(
                f"{self.name} returned HTTP {response.status_code}",
                status_code=response.status_code,
                details=details if isinstance(details, dict) else {"body": details},
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise ExternalPlatformError(f"{self.name} returned a non-JSON response") from exc
        if not isinstance(body, dict):
            raise ExternalPlatformError(f"{self.name} returned an unexpected response shape")
        return body

    @staticmethod
    def _external_id(body: dict) -> str:
        data = body.get("data")
        if not isinstance(data, dict) or data.get("id") is None:
            raise ExternalPlatformError("Response is missing data.id")
        return str(data["id"])

    def create(self, entity_type: str, payload: dict) -> str:
        """POST a new entity; returns the platform's id for it."""
        body = self._request("POST", ENTITY_PATHS[entity_type], payload)
        external_id = self._external_id(body)
        logger.debug("sync.platform_created", platform=self.name, entity_type=entity_type, external_id=external_id)
        return external_id

    def update(self, entity_type: str, external_id: str, payload: dict) -> str:
        """PUT onto an existing external entity."""
        body = self._request("PUT", f"{ENTITY_PATHS[entity_type]}/{external_id}", payload)
        data = body.get("data")
        if isinstance(data, dict) and data.get("id") is not None:
            return str(data["id"])
        return external_id

    def create_customer(self, payload: dict) -> str:
        return self.create("customer", payload)

    def update_customer(self, external_id: str, payload: dict) -> str:
        return self.update("customer", external_id, payload)

    def create_invoice(self, payload: dict) -> str:
        return self.create("invoice", payload)

    def update_invoice(self, external_id: str, payload: dict) -> str:
        return self.update("invoice", external_id, payload)

    def create_expense(self, payload: dict) -> str:
        return self.create("expense", payload)

    def update_expense(self, external_id: str, payload: dict) -> str:
        return self.update("expense", external_id, payload)
