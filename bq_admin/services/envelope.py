"""Shape query results into the canonical ``TableDataResponse`` envelope."""

from __future__ import annotations

from typing import Any, Literal

from bq_admin.schemas.table_data import Pagination, TableDataOptions, TableDataResponse

# Field names older clients/backends used, in precedence order.
ROW_PAYLOAD_KEYS = ("data", "rows")
TOTAL_KEYS = ("totalRows", "totalCount")


def compute_has_more(returned: int, limit: int) -> bool:
    """A full page means "maybe more".

    This over-reports when the total is an exact multiple of ``limit``; a
    zero limit can never have more.
    """
    return limit > 0 and returned == limit


def build_envelope(
    table_id: str,
    rows: list[dict[str, Any]],
    options: TableDataOptions,
    query: str,
    total_count: int | None = None,
    execution_ms: float | None = None,
    source: Literal["warehouse", "fixture"] = "warehouse",
    requested_limit: int | None = None,
) -> TableDataResponse:
    returned = len(rows)
    if requested_limit == options.limit:
        requested_limit = None
    return TableDataResponse(
        table_id=table_id,
        data=rows,
        total_rows=returned,
        total_count=total_count,
        has_more=compute_has_more(returned, options.limit),
        pagination=Pagination(
            limit=options.limit,
            offset=options.offset,
            total=total_count if total_count is not None else returned,
            requested_limit=requested_limit,
        ),
        filters=options.filters,
        sorts=options.sorts,
        search=options.search,
        query=query,
        execution_time=execution_ms,
        source=source,
    )


def _first_present(raw: dict[str, Any], keys: tuple[str, ...], default: Any) -> Any:
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return default


def normalize_legacy_payload(
    raw: dict[str, Any],
    table_id: str,
    options: TableDataOptions,
) -> TableDataResponse:
    """Compatibility shim for payloads using ``rows``/``totalCount`` names.

    Nothing inside this service produces those shapes; the shim is for
    external callers (proxies, older backends, cached responses) that hold a
    legacy payload and need the canonical envelope.
    """
    rows = list(_first_present(raw, ROW_PAYLOAD_KEYS, []))
    total = int(_first_present(raw, TOTAL_KEYS, 0))
    envelope = build_envelope(
        table_id=raw.get("tableId", table_id),
        rows=rows,
        options=options,
        query=raw.get("query", ""),
        execution_ms=raw.get("executionTime"),
    )
    envelope.total_rows = total
    envelope.pagination.total = total
    return envelope
