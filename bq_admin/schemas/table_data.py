"""Table-data request options and the normalized response envelope."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field, field_validator

from bq_admin.schemas.common import CamelModel

FilterOperator = Literal[
    "equals",
    "contains",
    "startsWith",
    "endsWith",
    "gt",
    "gte",
    "lt",
    "lte",
    "between",
    "in",
    "isNull",
    "notNull",
]

FilterDataType = Literal["string", "number", "date", "boolean"]


class FilterCondition(CamelModel):
    """One column-level predicate.  Filters are AND-combined in input order."""

    id: str | None = None
    column: str = Field(..., min_length=1)
    operator: FilterOperator
    value: Any = None
    data_type: FilterDataType = "string"


class SortCondition(CamelModel):
    """One ordering key; lower ``priority`` sorts first."""

    column: str = Field(..., min_length=1)
    direction: Literal["asc", "desc"] = "asc"
    priority: int = 0

    @field_validator("direction", mode="before")
    @classmethod
    def _lower_direction(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v


class TableDataOptions(CamelModel):
    """Options bag accepted by the query translator."""

    limit: int = Field(100, ge=0)
    offset: int = Field(0, ge=0)
    filters: list[FilterCondition] = Field(default_factory=list)
    sorts: list[SortCondition] = Field(default_factory=list)
    search: str | None = None
    columns: list[str] | None = None
    where: str | None = Field(
        None,
        exclude=True,
        description="Trusted server-side predicate; never populated from request input.",
    )


class Pagination(CamelModel):
    """``limit`` is the page size actually applied.

    ``requestedLimit`` is only present when the caller asked for more than
    the server's page cap.
    """

    limit: int
    offset: int
    total: int
    requested_limit: int | None = None


class TableDataResponse(CamelModel):
    """Canonical envelope for table-data requests."""

    table_id: str
    data: list[dict[str, Any]]
    total_rows: int
    total_count: int | None = None
    has_more: bool
    pagination: Pagination
    filters: list[FilterCondition] = Field(default_factory=list)
    sorts: list[SortCondition] = Field(default_factory=list)
    search: str | None = None
    query: str
    execution_time: float | None = Field(None, description="Milliseconds")
    source: Literal["warehouse", "fixture"] = "warehouse"


class SearchFilter(CamelModel):
    field: str = Field(..., min_length=1)
    operator: FilterOperator = "equals"
    value: Any = None


class SearchRequest(CamelModel):
    """Body of the POST search endpoint; a flatter form of ``TableDataOptions``."""

    search_term: str | None = None
    columns: list[str] | None = None
    filters: list[SearchFilter] = Field(default_factory=list)
    sort_by: str | None = None
    sort_order: Literal["ASC", "DESC"] = "ASC"
    limit: int | None = Field(None, ge=0)
    offset: int = Field(0, ge=0)

    @field_validator("sort_order", mode="before")
    @classmethod
    def _upper_sort_order(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v
