"""BigQuery backend: client construction, blocking SDK calls and error mapping.

The backend is a tagged variant.  ``create_backend`` returns
``ConnectedBackend`` when a project id and decodable credentials are
configured, otherwise ``UnavailableBackend``; services branch on the variant
once per operation.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import concurrent.futures
import datetime as dt
import json
import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Union

from google.api_core import exceptions as api_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import bigquery
from google.oauth2 import service_account

from bq_admin.config import Settings
from bq_admin.errors import (
    AdminError,
    PermissionDeniedError,
    QueryTimeoutError,
    TableNotFoundError,
    WarehouseError,
    WarehouseUnavailableError,
)
from bq_admin.services.query_builder import BuiltQuery

logger = logging.getLogger("bq_admin.warehouse")


# ---------------------------------------------------------------------------
# Backend variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UnavailableBackend:
    """No usable credentials; every read is served from fixtures."""

    reason: str
    project_id: str

    @property
    def connected(self) -> bool:
        return False


@dataclass(frozen=True)
class ConnectedBackend:
    client: Any  # bigquery.Client (or a test double with the same surface)
    project_id: str
    location: str = "US"

    @property
    def connected(self) -> bool:
        return True

    # -- queries -----------------------------------------------------------

    async def run_query(self, built: BuiltQuery, timeout: float) -> list[dict[str, Any]]:
        """Execute a SELECT and return JSON-safe row dicts."""

        def _run() -> list[dict[str, Any]]:
            job = self.client.query(
                built.sql, job_config=built.job_config(timeout), location=self.location
            )
            return [row_to_dict(row) for row in job.result(timeout=timeout)]

        return await self._call(_run, built.sql)

    async def run_dml(self, built: BuiltQuery, timeout: float) -> int:
        """Execute a DML statement and return the affected row count."""

        def _run() -> int:
            job = self.client.query(
                built.sql, job_config=built.job_config(timeout), location=self.location
            )
            job.result(timeout=timeout)
            return int(job.num_dml_affected_rows or 0)

        return await self._call(_run, built.sql)

    async def count(self, built: BuiltQuery, timeout: float) -> int:
        rows = await self.run_query(built, timeout)
        if not rows:
            return 0
        return int(rows[0].get("total") or 0)

    # -- metadata ----------------------------------------------------------

    async def list_datasets(self) -> list[Any]:
        return await self._call(lambda: list(self.client.list_datasets()), "list_datasets")

    async def list_tables(self, dataset_id: str) -> list[Any]:
        return await self._call(
            lambda: list(self.client.list_tables(f"{self.project_id}.{dataset_id}")),
            f"list_tables {dataset_id}",
        )

    async def get_table(self, dataset_id: str, table_id: str) -> Any:
        return await self._call(
            lambda: self.client.get_table(f"{self.project_id}.{dataset_id}.{table_id}"),
            f"get_table {dataset_id}.{table_id}",
        )

    async def insert_rows(self, dataset_id: str, table_id: str, rows: list[dict[str, Any]]) -> list:
        """Streaming insert; returns the per-row error list reported by the API."""
        return await self._call(
            lambda: self.client.insert_rows_json(
                f"{self.project_id}.{dataset_id}.{table_id}", rows
            ),
            f"insert_rows {dataset_id}.{table_id}",
        )

    # -- plumbing ----------------------------------------------------------

    async def _call(self, fn, label: str):
        t0 = time.perf_counter()
        try:
            result = await asyncio.to_thread(fn)
        except Exception as exc:
            raise translate_error(exc) from exc
        elapsed = round((time.perf_counter() - t0) * 1000, 2)
        logger.info("bigquery %s ms=%.1f", label, elapsed)
        return result


WarehouseBackend = Union[ConnectedBackend, UnavailableBackend]


def decode_credentials(raw: str) -> dict[str, Any]:
    """Parse service-account JSON given raw or base64-encoded."""
    text = raw.strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    try:
        decoded = base64.b64decode(text, validate=True).decode("utf-8")
        return json.loads(decoded)
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValueError("credentials are neither JSON nor base64-encoded JSON") from exc


def create_backend(settings: Settings) -> WarehouseBackend:
    """Build the warehouse backend from settings.  Never raises."""
    fixture_project = settings.google_cloud_project_id or settings.fixture_project_id
    if not settings.has_credentials:
        logger.warning("BigQuery credentials not found, using sample data")
        return UnavailableBackend("missing credentials", fixture_project)

    try:
        info = decode_credentials(settings.google_application_credentials_json or "")
        credentials = service_account.Credentials.from_service_account_info(info)
        client = bigquery.Client(
            project=settings.google_cloud_project_id,
            credentials=credentials,
            location=settings.bq_location,
        )
    except (ValueError, auth_exceptions.GoogleAuthError) as exc:
        logger.error("Failed to initialize BigQuery client: %s", exc)
        return UnavailableBackend(f"invalid credentials: {exc}", fixture_project)

    logger.info("BigQuery client initialized for project %s", settings.google_cloud_project_id)
    return ConnectedBackend(client, settings.google_cloud_project_id, settings.bq_location)


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

_UNREACHABLE = (
    api_exceptions.ServiceUnavailable,
    api_exceptions.RetryError,
    auth_exceptions.TransportError,
    auth_exceptions.RefreshError,
    ConnectionError,
)


def translate_error(exc: BaseException) -> AdminError:
    """Map an SDK/transport exception onto the service's error taxonomy."""
    if isinstance(exc, AdminError):
        return exc
    message = str(exc)
    if isinstance(exc, api_exceptions.NotFound):
        return TableNotFoundError(message)
    if isinstance(exc, api_exceptions.Forbidden):
        return PermissionDeniedError(message)
    if isinstance(exc, (api_exceptions.DeadlineExceeded, concurrent.futures.TimeoutError)):
        return QueryTimeoutError(message or "query exceeded its timeout")
    if isinstance(exc, _UNREACHABLE):
        return WarehouseUnavailableError(message)
    return WarehouseError(message)


# ---------------------------------------------------------------------------
# Row conversion
# ---------------------------------------------------------------------------


def to_jsonable(value: Any) -> Any:
    """Convert BigQuery row values into JSON-serializable ones."""
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (dt.datetime, dt.date, dt.time)):
        return value.isoformat()
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return str(value)


def row_to_dict(row: Any) -> dict[str, Any]:
    return {key: to_jsonable(value) for key, value in row.items()}
