"""ServiceNow Table API lookups backing reference-data validation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import requests

from sheet_remedy.config import DEFAULT_REFERENCE_TIMEOUT, Settings
from sheet_remedy.errors import InputError, ReferenceLookupError

logger = logging.getLogger(__name__)

RECORD_LIMIT = 1000
RECORD_FIELDS = "name,sys_id"
CONNECTION_TEST_TABLE = "cmdb_ci"


@dataclass(frozen=True)
class Credentials:
    instance: str
    username: str
    password: str

    @classmethod
    def from_settings(cls, settings: Settings) -> "Credentials":
        if not settings.reference_configured:
            raise InputError("ServiceNow credentials are not configured (SNOW_INSTANCE, SNOW_USERNAME, SNOW_PASSWORD).")
        return cls(settings.snow_instance, settings.snow_username, settings.snow_password)


def clean_instance(instance: str) -> str:
    host = instance.strip()
    for scheme in ("https://", "http://"):
        if host.lower().startswith(scheme):
            host = host[len(scheme):]
    return host.rstrip("/")


class ReferenceClient:
    def __init__(
        self,
        credentials: Credentials,
        timeout: int = DEFAULT_REFERENCE_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        if not credentials.instance:
            raise InputError("ServiceNow instance is required.")
        self.instance = clean_instance(credentials.instance)
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.auth = (credentials.username, credentials.password)
        self.session.headers.update({"Accept": "application/json"})

    @property
    def base_url(self) -> str:
        return f"https://{self.instance}"

    def _get_table(self, table: str, params: Mapping[str, Any]) -> list[dict[str, Any]]:
        url = f"{self.base_url}/api/now/table/{table}"
        try:
            response = self.session.get(url, params=dict(params), timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as exc:
            raise ReferenceLookupError(f"ServiceNow request for {table} failed: {exc}") from exc
        except ValueError as exc:
            raise ReferenceLookupError(f"ServiceNow returned invalid JSON for {table}") from exc
        records = payload.get("result") if isinstance(payload, dict) else None
        if not isinstance(records, list):
            raise ReferenceLookupError(f"ServiceNow response for {table} has no result list")
        return records

    def fetch_records(self, table: str) -> list[dict[str, Any]]:
        if not table:
            raise InputError("No reference table configured for this column.")
        records = self._get_table(table, {"sysparm_limit": RECORD_LIMIT, "sysparm_fields": RECORD_FIELDS})
        logger.info("Fetched %d records from %s", len(records), table)
        return records

    def test_connection(self) -> bool:
        self._get_table(CONNECTION_TEST_TABLE, {"sysparm_limit": 1})
        logger.info("Connected to ServiceNow instance %s", self.instance)
        return True


def build_reference_index(records: Iterable[Mapping[str, Any]]) -> dict[str, str]:
    """Lowercase name -> canonical name; blank names are skipped."""
    index: dict[str, str] = {}
    for record in records:
        name = str(record.get("name") or "").strip()
        if name:
            index.setdefault(name.lower(), name)
    return index
