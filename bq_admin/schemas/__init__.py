"""Pydantic request/response schemas."""

from bq_admin.schemas.common import ErrorResponse
from bq_admin.schemas.dataset import Dataset, SchemaField, Table, TableDetail, TableSchema
from bq_admin.schemas.mutation import (
    BulkOperation,
    BulkRequest,
    BulkResponse,
    ExportJob,
    ExportRequest,
    MutationResult,
    RowInsertRequest,
    RowUpdateRequest,
)
from bq_admin.schemas.table_data import (
    FilterCondition,
    Pagination,
    SearchFilter,
    SearchRequest,
    SortCondition,
    TableDataOptions,
    TableDataResponse,
)

__all__ = [
    "ErrorResponse",
    "Dataset",
    "SchemaField",
    "Table",
    "TableDetail",
    "TableSchema",
    "BulkOperation",
    "BulkRequest",
    "BulkResponse",
    "ExportJob",
    "ExportRequest",
    "MutationResult",
    "RowInsertRequest",
    "RowUpdateRequest",
    "FilterCondition",
    "Pagination",
    "SearchFilter",
    "SearchRequest",
    "SortCondition",
    "TableDataOptions",
    "TableDataResponse",
]
