"""Dataset / table browsing and paged table data.

Each operation branches once on the backend variant: a ``ConnectedBackend``
queries BigQuery, an ``UnavailableBackend`` (or a warehouse that turns out
to be unreachable mid-call) is served from ``fixtures``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from bq_admin.config import Settings
from bq_admin.errors import AdminError, WarehouseUnavailableError
from bq_admin.schemas.dataset import Dataset, SchemaField, Table, TableDetail, TableSchema
from bq_admin.schemas.table_data import (
    FilterCondition,
    SearchRequest,
    SortCondition,
    TableDataOptions,
    TableDataResponse,
)
from bq_admin.services import fixtures
from bq_admin.services.envelope import build_envelope
from bq_admin.services.query_builder import BuiltQuery, build_count_query, build_data_query
from bq_admin.warehouse import ConnectedBackend, WarehouseBackend

logger = logging.getLogger("bq_admin.services.tables")

_VIEW_TYPES = {"VIEW", "MATERIALIZED_VIEW"}


def editable_columns(schema: list[SchemaField], key_column: str = "id") -> list[str]:
    """Schema columns the UI may edit: everything but the key and audit timestamps."""
    return [
        f.name
        for f in schema
        if f.name != key_column
        and "created_at" not in f.name.lower()
        and "updated_at" not in f.name.lower()
    ]


def filter_table_listing(
    tables: list[Table],
    search: str | None = None,
    type_: str | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> list[Table]:
    """Client-side filtering/paging of a table listing."""
    if search and search.strip():
        term = search.strip().lower()
        tables = [t for t in tables if term in t.id.lower() or term in t.description.lower()]
    if type_:
        tables = [t for t in tables if t.type == type_.upper()]
    tables = tables[offset:]
    if limit is not None:
        tables = tables[:limit]
    return tables


def _infer_data_type(value: Any) -> str:
    sample = value[0] if isinstance(value, list) and value else value
    if isinstance(sample, bool):
        return "boolean"
    if isinstance(sample, (int, float)):
        return "number"
    return "string"


def search_options(request: SearchRequest, default_limit: int) -> TableDataOptions:
    """Translate a search-endpoint body into ``TableDataOptions``.

    Filter data types are inferred from the JSON type of each value, so
    ``{"value": 5}`` compares numerically and ``{"value": "5"}`` as text.
    """
    filters = [
        FilterCondition(
            column=f.field,
            operator=f.operator,
            value=f.value,
            data_type=_infer_data_type(f.value),
        )
        for f in request.filters
    ]
    sorts = []
    if request.sort_by:
        sorts.append(SortCondition(column=request.sort_by, direction=request.sort_order.lower()))
    return TableDataOptions(
        limit=default_limit if request.limit is None else request.limit,
        offset=request.offset,
        filters=filters,
        sorts=sorts,
        search=request.search_term,
        columns=request.columns or None,
    )


def _iso(value: Any) -> str:
    return value.isoformat() if value is not None else ""


def _schema_from_metadata(fields: Any) -> list[SchemaField]:
    return [
        SchemaField(
            name=f.name,
            type=f.field_type or "STRING",
            mode=f.mode or "NULLABLE",
            description=f.description,
        )
        for f in (fields or [])
    ]


def _table_from_metadata(meta: Any) -> Table:
    kind = "VIEW" if (meta.table_type or "TABLE") in _VIEW_TYPES else "TABLE"
    return Table(
        id=meta.table_id,
        name=meta.table_id,
        type=kind,
        num_rows=0 if kind == "VIEW" else int(meta.num_rows or 0),
        num_bytes=0 if kind == "VIEW" else int(meta.num_bytes or 0),
        created_time=_iso(meta.created),
        modified_time=_iso(meta.modified),
        description=meta.description or "",
        labels=dict(meta.labels or {}),
        location=meta.location or "US",
    )


class TableService:
    """Read-side operations over the configured warehouse backend."""

    def __init__(self, backend: WarehouseBackend, settings: Settings) -> None:
        self.backend = backend
        self.settings = settings

    @property
    def project_id(self) -> str:
        return self.backend.project_id

    def _fallback(self, operation: str, exc: WarehouseUnavailableError) -> None:
        logger.warning("BigQuery unreachable during %s (%s); serving sample data", operation, exc.details)

    # -- datasets ----------------------------------------------------------

    async def list_datasets(self) -> list[Dataset]:
        backend = self.backend
        if isinstance(backend, ConnectedBackend):
            try:
                items = await backend.list_datasets()
            except WarehouseUnavailableError as exc:
                self._fallback("list_datasets", exc)
            else:
                return [
                    Dataset(
                        id=item.dataset_id,
                        name=item.dataset_id,
                        description=getattr(item, "friendly_name", None) or "",
                        location=backend.location,
                    )
                    for item in items
                ]
        return fixtures.list_datasets()

    # -- tables ------------------------------------------------------------

    async def list_tables(
        self,
        dataset_id: str,
        search: str | None = None,
        type_: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Table]:
        tables: list[Table] | None = None
        backend = self.backend
        if isinstance(backend, ConnectedBackend):
            try:
                items = await backend.list_tables(dataset_id)
            except WarehouseUnavailableError as exc:
                self._fallback("list_tables", exc)
            else:
                logger.info("Found %d tables/views in %s", len(items), dataset_id)
                tables = list(
                    await asyncio.gather(
                        *(self._describe_table(backend, dataset_id, item.table_id) for item in items)
                    )
                )
        if tables is None:
            tables = fixtures.list_tables(dataset_id)
        return filter_table_listing(tables, search, type_, limit, offset)

    async def _describe_table(self, backend: ConnectedBackend, dataset_id: str, table_id: str) -> Table:
        """Metadata plus a best-effort row count; failures yield a zeroed entry."""
        try:
            meta = await backend.get_table(dataset_id, table_id)
        except AdminError as exc:
            logger.warning("Metadata lookup failed for %s.%s: %s", dataset_id, table_id, exc)
            return Table(id=table_id, name=table_id)

        table = _table_from_metadata(meta)
        if table.type == "VIEW":
            return table

        try:
            count_query = build_count_query(self.project_id, dataset_id, table_id)
            row_count = await backend.count(count_query, self.settings.count_timeout_seconds)
        except AdminError as exc:
            logger.warning("Count query failed for %s.%s, using metadata: %s", dataset_id, table_id, exc)
            return table

        table.num_rows = row_count
        if not table.num_bytes:
            table.num_bytes = row_count * 100
        return table

    async def get_table(self, dataset_id: str, table_id: str) -> TableDetail:
        key = self.settings.key_column
        backend = self.backend
        if isinstance(backend, ConnectedBackend):
            try:
                meta = await backend.get_table(dataset_id, table_id)
            except WarehouseUnavailableError as exc:
                self._fallback("get_table", exc)
            else:
                schema = _schema_from_metadata(meta.schema)
                return TableDetail(
                    **_table_from_metadata(meta).model_dump(),
                    dataset_id=dataset_id,
                    schema_=schema,
                    editable_columns=editable_columns(schema, key),
                )

        fixture = fixtures.get_fixture_table(dataset_id, table_id)
        return TableDetail(
            **fixture.to_table().model_dump(),
            dataset_id=dataset_id,
            schema_=fixture.schema,
            editable_columns=editable_columns(fixture.schema, key),
        )

    async def get_table_schema(self, dataset_id: str, table_id: str) -> TableSchema:
        detail = await self.get_table(dataset_id, table_id)
        return TableSchema(
            dataset_id=dataset_id,
            table_id=table_id,
            key_column=self.settings.key_column,
            schema_=detail.schema_,
            editable_columns=detail.editable_columns,
            required_columns=[
                f.name
                for f in detail.schema_
                if f.mode == "REQUIRED" and f.name in detail.editable_columns
            ],
        )

    # -- data --------------------------------------------------------------

    def clamp_options(self, options: TableDataOptions) -> TableDataOptions:
        if options.limit > self.settings.max_page_size:
            return options.model_copy(update={"limit": self.settings.max_page_size})
        return options

    async def get_table_data(
        self,
        dataset_id: str,
        table_id: str,
        options: TableDataOptions,
    ) -> TableDataResponse:
        """Run the data query (and a best-effort count) and build the envelope."""
        requested_limit = options.limit
        options = self.clamp_options(options)
        data_query = build_data_query(self.project_id, dataset_id, table_id, options)
        count_query = build_count_query(self.project_id, dataset_id, table_id, options)
        t0 = time.perf_counter()

        backend = self.backend
        if isinstance(backend, ConnectedBackend):
            logger.info("Executing query: %s", data_query.sql)
            try:
                rows, total = await asyncio.gather(
                    backend.run_query(data_query, self.settings.query_timeout_seconds),
                    self._safe_count(backend, count_query),
                )
            except WarehouseUnavailableError as exc:
                self._fallback("get_table_data", exc)
            else:
                elapsed = round((time.perf_counter() - t0) * 1000, 2)
                logger.info("table_data %s.%s rows=%d ms=%.1f", dataset_id, table_id, len(rows), elapsed)
                return build_envelope(
                    table_id, rows, options, data_query.sql, total, elapsed,
                    requested_limit=requested_limit,
                )

        rows, total = fixtures.query_rows(dataset_id, table_id, options)
        elapsed = round((time.perf_counter() - t0) * 1000, 2)
        return build_envelope(
            table_id, rows, options, data_query.sql, total, elapsed,
            source="fixture", requested_limit=requested_limit,
        )

    async def _safe_count(self, backend: ConnectedBackend, query: BuiltQuery) -> int | None:
        try:
            return await backend.count(query, self.settings.count_timeout_seconds)
        except AdminError as exc:
            logger.warning("Count query failed, falling back to page size: %s", exc)
            return None
