"""Mapping table providers.

A provider exposes exactly one operation, ``fetch_table()``, returning the
current mapping table as a header row followed by data rows. The cache treats
the provider as opaque; it only distinguishes a successful (possibly empty)
table from a ``ProviderUnavailable`` failure.

Flow Diagram — GoogleSheetsProvider.fetch_table()
=================================================
::
    ┌──────────────┐
    │ fetch_table()│
    └──────┬───────┘
           ▼
    ┌──────────────┐   missing email / key / sheet id
    │ Check config │ ─────────────────────────────────► ProviderUnavailable
    └──────┬───────┘
           ▼
    ┌──────────────┐   token refresh runs in a worker
    │ Access token │   thread (google-auth is blocking)
    │ (google-auth)│ ─── auth failure ────────────────► ProviderUnavailable
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ GET values/  │ ─── HTTP / network failure ──────► ProviderUnavailable
    │ {range}      │
    │ (httpx)      │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ values or [] │
    └──────────────┘

How to Use
===========
**Step 1 — Build from settings**::
    provider = build_provider(get_settings())

**Step 2 — Fetch**::
    table = await provider.fetch_table()
    header, *rows = table or [[]]

Key Behaviours
===============
- Credentials are checked before any network I/O.
- A sheet range with no values is a successful empty table, not a failure.
- Cells are returned as-is; trimming and typing is the cache's job.

Classes:
    TableProvider:  Protocol every provider satisfies.
    GoogleSheetsProvider:  Sheets REST v4 reader authenticated as a service account.
    StaticTableProvider:  In-memory table (local runs, tests, degraded mode).
"""

import asyncio
import json
import logging
from typing import Any, Optional, Protocol
from urllib.parse import quote

import httpx
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import service_account

from redirector.config import Settings
from redirector.exceptions import ProviderUnavailable

__all__ = [
    "TableProvider",
    "GoogleSheetsProvider",
    "StaticTableProvider",
    "build_provider",
    "load_static_table",
]

SHEETS_READONLY_SCOPE = "https://www.googleapis.com/auth/spreadsheets.readonly"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"

logger = logging.getLogger("redirector")


class TableProvider(Protocol):
    name: str

    async def fetch_table(self) -> list[list[Any]]: ...


class GoogleSheetsProvider:
    """Read a sheet range through the Google Sheets REST API.

    Args:
        sheet_id: Spreadsheet identifier
        sheet_range: A1 range, e.g. "Redirects!A:J"
        service_account_email: Service account client email
        private_key: PEM private key with real newlines
        base_url: Sheets API root
        timeout: Per-request timeout in seconds
        credentials: Pre-built google-auth credentials (tests)
        transport: Optional httpx transport (tests)
    """

    name = "sheets"

    def __init__(
        self,
        sheet_id: str,
        sheet_range: str,
        service_account_email: str,
        private_key: str,
        base_url: str = "https://sheets.googleapis.com/v4",
        timeout: float = 10.0,
        credentials: Optional[Any] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._sheet_id = sheet_id
        self._sheet_range = sheet_range
        self._email = service_account_email
        self._private_key = private_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._credentials = credentials
        self._transport = transport

    @property
    def configured(self) -> bool:
        if not self._sheet_id:
            return False
        return self._credentials is not None or bool(self._email and self._private_key)

    async def fetch_table(self) -> list[list[Any]]:
        if not self.configured:
            raise ProviderUnavailable(self.name, "Missing Google Sheets credentials")

        token = await self._access_token()
        url = f"{self._base_url}/spreadsheets/{self._sheet_id}/values/{quote(self._sheet_range, safe='')}"

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(url, headers={"Authorization": f"Bearer {token}"})
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ProviderUnavailable(
                self.name,
                f"Sheets fetch failed: {exc}",
                details={"sheet_id": self._sheet_id, "range": self._sheet_range},
            ) from exc

        values = payload.get("values") or []
        logger.debug(f"Fetched {len(values)} sheet rows from {self._sheet_range}")
        return values

    async def _access_token(self) -> str:
        try:
            credentials = self._get_credentials()
            if not credentials.valid:
                await asyncio.to_thread(credentials.refresh, GoogleAuthRequest())
        except (GoogleAuthError, ValueError) as exc:
            raise ProviderUnavailable(self.name, f"Google auth failed: {exc}") from exc
        return credentials.token

    def _get_credentials(self) -> Any:
        if self._credentials is None:
            self._credentials = service_account.Credentials.from_service_account_info(
                {
                    "type": "service_account",
                    "client_email": self._email,
                    "private_key": self._private_key,
                    "token_uri": GOOGLE_TOKEN_URI,
                },
                scopes=[SHEETS_READONLY_SCOPE],
            )
        return self._credentials


class StaticTableProvider:
    """Serve a fixed table; an empty table yields no rows."""

    name = "static"

    def __init__(self, table: Optional[list[list[Any]]] = None):
        self._table = [list(row) for row in (table or [])]

    async def fetch_table(self) -> list[list[Any]]:
        return [list(row) for row in self._table]


def load_static_table(raw: str) -> list[list[Any]]:
    """Parse the STATIC_ROWS_JSON setting (JSON list of lists, header first)."""
    if not raw.strip():
        return []
    table = json.loads(raw)
    if not isinstance(table, list) or not all(isinstance(row, list) for row in table):
        raise ValueError("STATIC_ROWS_JSON must be a JSON list of lists")
    return table


def build_provider(settings: Settings) -> GoogleSheetsProvider:
    return GoogleSheetsProvider(
        sheet_id=settings.SHEET_ID,
        sheet_range=settings.SHEET_RANGE,
        service_account_email=settings.GOOGLE_SERVICE_ACCOUNT_EMAIL,
        private_key=settings.google_private_key,
        base_url=settings.SHEETS_API_BASE_URL,
        timeout=settings.SHEETS_TIMEOUT_SECONDS,
    )
