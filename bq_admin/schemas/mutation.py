"""Row mutation, bulk and export schemas."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field, field_validator

from bq_admin.schemas.common import CamelModel
from bq_admin.schemas.table_data import FilterCondition, SortCondition

BULK_OPERATION_TYPES = ("INSERT", "UPDATE", "DELETE")


class RowUpdateRequest(CamelModel):
    data: dict[str, Any] = Field(default_factory=dict)
    validate_only: bool = False


class RowInsertRequest(CamelModel):
    rows: list[dict[str, Any]] = Field(..., min_length=1)


class MutationResult(CamelModel):
    success: bool
    operation: str
    row_id: str | None = None
    affected_rows: int = 0
    simulated: bool = False
    validate_only: bool = False
    query: str | None = None
    message: str | None = None


class BulkOperation(CamelModel):
    """Loosely-typed so that unknown ``type`` values reach validation."""

    type: str
    row_id: str | None = None
    data: dict[str, Any] | None = None

    @field_validator("row_id", mode="before")
    @classmethod
    def _stringify_row_id(cls, v: Any) -> Any:
        # Integer keys come back from the data endpoint as JSON numbers.
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


class BulkRequest(CamelModel):
    operations: list[BulkOperation]
    validate_only: bool = False
    transactional: bool = False


class BulkOperationResult(CamelModel):
    index: int
    type: str
    row_id: str | None = None
    valid: bool
    errors: list[str] = Field(default_factory=list)
    success: bool | None = None
    affected_rows: int | None = None
    error: str | None = None


class BulkResponse(CamelModel):
    validate_only: bool
    transactional: bool = False
    all_valid: bool
    executed: bool
    simulated: bool = False
    succeeded: int = 0
    failed: int = 0
    results: list[BulkOperationResult]


ExportFormat = Literal["csv", "json"]


class ExportRequest(CamelModel):
    format: ExportFormat = "csv"
    filters: list[FilterCondition] = Field(default_factory=list)
    sorts: list[SortCondition] = Field(default_factory=list)
    search: str | None = None
    columns: list[str] | None = None


class ExportJob(CamelModel):
    job_id: str
    status: Literal["started"] = "started"
    format: ExportFormat
    dataset_id: str
    table_id: str
    query: str
    download_url: str
    created_at: str
