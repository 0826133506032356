"""Shared pytest fixtures: fixture-mode settings and an in-process fake BigQuery client."""

from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any

import pytest
import pytest_asyncio
from google.api_core.exceptions import NotFound
from httpx import ASGITransport, AsyncClient

from bq_admin.config import Settings
from bq_admin.server import create_app
from bq_admin.warehouse import ConnectedBackend, UnavailableBackend


class FakeJob:
    def __init__(self, rows: list[dict] | None = None, exc: Exception | None = None, affected: int = 0):
        self.rows = rows or []
        self.exc = exc
        self.num_dml_affected_rows = affected

    def result(self, timeout=None):
        if self.exc is not None:
            raise self.exc
        return self.rows


class FakeBigQueryClient:
    """Just enough of ``bigquery.Client`` for the backend.

    ``on(fragment, ...)`` registers a canned job for queries whose SQL
    contains *fragment*; the first matching registration wins.
    """

    def __init__(self) -> None:
        self.queries: list[tuple[str, Any]] = []
        self.handlers: list[tuple[str, FakeJob]] = []
        self.datasets: list[str] = []
        self.tables: dict[str, list[SimpleNamespace]] = {}
        self.table_errors: dict[str, Exception] = {}
        self.list_error: Exception | None = None
        self.inserted: list[tuple[str, list[dict]]] = []
        self.insert_errors: list[dict] = []

    def on(self, fragment: str, rows=None, exc=None, affected: int = 0) -> None:
        self.handlers.append((fragment, FakeJob(rows, exc, affected)))

    def query(self, sql, job_config=None, location=None):
        self.queries.append((sql, job_config))
        for fragment, job in self.handlers:
            if fragment in sql:
                return job
        return FakeJob([])

    def list_datasets(self):
        if self.list_error is not None:
            raise self.list_error
        return [SimpleNamespace(dataset_id=d, friendly_name=None) for d in self.datasets]

    def list_tables(self, dataset_ref):
        if self.list_error is not None:
            raise self.list_error
        dataset = dataset_ref.split(".")[-1]
        return [SimpleNamespace(table_id=t.table_id) for t in self.tables.get(dataset, [])]

    def get_table(self, table_ref):
        _, dataset, table_id = table_ref.split(".")
        if table_id in self.table_errors:
            raise self.table_errors[table_id]
        for meta in self.tables.get(dataset, []):
            if meta.table_id == table_id:
                return meta
        raise NotFound(f"Not found: Table {table_ref}")

    def insert_rows_json(self, table_ref, rows):
        self.inserted.append((table_ref, rows))
        return self.insert_errors


def make_table_meta(table_id: str, table_type: str = "TABLE", num_rows: int = 10, num_bytes: int = 1000, fields=None):
    fields = fields or [("id", "INTEGER", "REQUIRED"), ("name", "STRING", "NULLABLE")]
    return SimpleNamespace(
        table_id=table_id,
        table_type=table_type,
        schema=[
            SimpleNamespace(name=n, field_type=t, mode=m, description=None) for n, t, m in fields
        ],
        num_rows=num_rows,
        num_bytes=num_bytes,
        created=datetime(2024, 1, 1, tzinfo=timezone.utc),
        modified=datetime(2024, 6, 1, tzinfo=timezone.utc),
        description=f"{table_id} table",
        labels={"team": "data"},
        location="US",
    )


@pytest.fixture
def settings() -> Settings:
    """Settings with no credentials, so every read is served from fixtures."""
    return Settings(
        _env_file=None,
        google_cloud_project_id=None,
        google_application_credentials_json=None,
        fixture_project_id="hockey-data-analysis",
    )


@pytest.fixture
def fixture_backend(settings) -> UnavailableBackend:
    return UnavailableBackend("missing credentials", settings.fixture_project_id)


@pytest.fixture
def fake_client() -> FakeBigQueryClient:
    return FakeBigQueryClient()


@pytest.fixture
def connected_backend(fake_client) -> ConnectedBackend:
    return ConnectedBackend(fake_client, "test-project", "US")


@pytest_asyncio.fixture
async def client(settings):
    """HTTP client against an app running in fixture mode."""
    app = create_app(settings)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest_asyncio.fixture
async def connected_client(settings, connected_backend):
    """HTTP client against an app wired to the fake BigQuery client."""
    app = create_app(settings, backend=connected_backend)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def table_meta():
    """Factory for fake ``bigquery.Table`` metadata objects."""
    return make_table_meta
