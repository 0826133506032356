"""CSV / JSON export of table data."""

from __future__ import annotations

import csv
import io
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from bq_admin.schemas.mutation import ExportFormat, ExportJob, ExportRequest
from bq_admin.schemas.table_data import TableDataOptions
from bq_admin.services.query_builder import build_data_query
from bq_admin.services.table_service import TableService

logger = logging.getLogger("bq_admin.services.export")

MEDIA_TYPES = {"csv": "text/csv; charset=utf-8", "json": "application/json"}


def _csv_cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return value


def rows_to_csv(rows: list[dict[str, Any]], columns: list[str] | None = None) -> str:
    """Render rows as CSV with standard quoting.

    The header is ``columns`` if given, otherwise the union of row keys in
    first-seen order.
    """
    if columns is None:
        columns = []
        for row in rows:
            for key in row:
                if key not in columns:
                    columns.append(key)
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=columns, extrasaction="ignore")
    writer.writeheader()
    for row in rows:
        writer.writerow({c: _csv_cell(row.get(c)) for c in columns})
    return buf.getvalue()


def download_url(dataset_id: str, table_id: str, fmt: str) -> str:
    return f"/api/datasets/{dataset_id}/tables/{table_id}/export?format={fmt}"


class ExportService:
    def __init__(self, tables: TableService) -> None:
        self.tables = tables

    def _options(self, request: ExportRequest) -> TableDataOptions:
        return TableDataOptions(
            limit=self.tables.settings.export_max_rows,
            offset=0,
            filters=request.filters,
            sorts=request.sorts,
            search=request.search,
            columns=request.columns,
        )

    def start_export(self, dataset_id: str, table_id: str, request: ExportRequest) -> ExportJob:
        """Describe an export job; the rows are fetched from ``download_url``."""
        query = build_data_query(self.tables.project_id, dataset_id, table_id, self._options(request))
        job = ExportJob(
            job_id=f"export_{uuid.uuid4().hex[:12]}",
            format=request.format,
            dataset_id=dataset_id,
            table_id=table_id,
            query=query.sql,
            download_url=download_url(dataset_id, table_id, request.format),
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        logger.info("export job %s started for %s.%s (%s)", job.job_id, dataset_id, table_id, job.format)
        return job

    async def export(
        self,
        dataset_id: str,
        table_id: str,
        request: ExportRequest,
    ) -> tuple[str, str, str]:
        """Return ``(body, media_type, filename)`` for a synchronous download."""
        envelope = await self.tables.get_table_data(dataset_id, table_id, self._options(request))
        fmt: ExportFormat = request.format
        if fmt == "csv":
            body = rows_to_csv(envelope.data, request.columns)
        else:
            body = json.dumps(envelope.data, default=str)
        logger.info("exported %d rows from %s.%s as %s", len(envelope.data), dataset_id, table_id, fmt)
        return body, MEDIA_TYPES[fmt], f"{table_id}.{fmt}"
