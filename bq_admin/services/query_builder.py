"""Translate table-data options into parameterized BigQuery SQL.

Every caller-supplied *value* is bound as a query parameter.  Identifiers
(project, dataset, table, column names) cannot be bound, so they are checked
against a conservative pattern and backtick-quoted instead.

Clause order: SELECT -> FROM -> WHERE (custom, filters, search) -> ORDER BY
-> LIMIT -> OFFSET.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Union

from google.cloud import bigquery

from bq_admin.errors import InvalidInputError
from bq_admin.schemas.table_data import FilterCondition, SortCondition, TableDataOptions

QueryParameter = Union[bigquery.ScalarQueryParameter, bigquery.ArrayQueryParameter]

# Columns probed by free-text search.  Not derived from the table schema, so a
# table missing one of these columns fails the search query.
SEARCH_COLUMNS: tuple[str, ...] = (
    "name",
    "title",
    "description",
    "player_name",
    "team",
    "email",
    "status",
    "category",
)

_COLUMN_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_DATASET_RE = re.compile(r"^[A-Za-z0-9_]+$")
_TABLE_RE = re.compile(r"^[A-Za-z0-9_\-$]+$")
_PROJECT_RE = re.compile(r"^[A-Za-z0-9_\-.:]+$")

_COMPARISON_SQL = {"gt": ">", "gte": ">=", "lt": "<", "lte": "<="}


@dataclass
class BuiltQuery:
    """SQL text plus the parameters it references."""

    sql: str
    parameters: list[QueryParameter] = field(default_factory=list)

    def job_config(self, timeout_seconds: float | None = None) -> bigquery.QueryJobConfig:
        config = bigquery.QueryJobConfig(query_parameters=list(self.parameters))
        if timeout_seconds:
            config.job_timeout_ms = int(timeout_seconds * 1000)
        return config

    def parameter(self, name: str) -> QueryParameter | None:
        for p in self.parameters:
            if p.name == name:
                return p
        return None


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------


def quote_column(name: str) -> str:
    if not isinstance(name, str) or not _COLUMN_RE.match(name):
        raise InvalidInputError(
            f"Invalid column name: {name!r}", params={"column": name}
        )
    return f"`{name}`"


def table_reference(project_id: str, dataset_id: str, table_id: str) -> str:
    """Return the fully-qualified, backtick-quoted table path."""
    if not project_id or not _PROJECT_RE.match(project_id):
        raise InvalidInputError(f"Invalid project id: {project_id!r}")
    if not dataset_id or not _DATASET_RE.match(dataset_id):
        raise InvalidInputError(
            f"Invalid dataset id: {dataset_id!r}", params={"datasetId": dataset_id}
        )
    if not table_id or not _TABLE_RE.match(table_id):
        raise InvalidInputError(
            f"Invalid table id: {table_id!r}", params={"tableId": table_id}
        )
    return f"`{project_id}.{dataset_id}.{table_id}`"


# ---------------------------------------------------------------------------
# Value coercion
# ---------------------------------------------------------------------------


def _as_number(value: Any, column: str) -> int | float:
    if isinstance(value, bool):
        raise InvalidInputError(f"Expected a number for column '{column}', got {value!r}")
    if isinstance(value, (int, float)):
        return value
    text = str(value).strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        raise InvalidInputError(
            f"Expected a number for column '{column}', got {value!r}",
            params={"column": column, "value": value},
        ) from None


def _as_bool(value: Any, column: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in {"true", "1", "yes"}:
        return True
    if text in {"false", "0", "no"}:
        return False
    raise InvalidInputError(
        f"Expected a boolean for column '{column}', got {value!r}",
        params={"column": column, "value": value},
    )


def typed_value(value: Any, data_type: str, column: str) -> tuple[str, Any]:
    """Return ``(bigquery_type, python_value)`` for a filter value."""
    if value is None:
        raise InvalidInputError(f"Filter on column '{column}' requires a value")
    if data_type == "number":
        number = _as_number(value, column)
        return ("INT64" if isinstance(number, int) else "FLOAT64"), number
    if data_type == "boolean":
        return "BOOL", _as_bool(value, column)
    # Strings and dates bind as STRING; BigQuery coerces STRING parameters
    # to DATE / DATETIME / TIMESTAMP where the column needs it.
    return "STRING", str(value)


def split_values(value: Any) -> list[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return [value]


def escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def sql_value_parameter(name: str, value: Any) -> QueryParameter | None:
    """Bind an arbitrary row value, inferring the parameter type.

    Returns ``None`` for ``None`` so callers can emit a literal ``NULL``.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return bigquery.ScalarQueryParameter(name, "BOOL", value)
    if isinstance(value, int):
        return bigquery.ScalarQueryParameter(name, "INT64", value)
    if isinstance(value, float):
        return bigquery.ScalarQueryParameter(name, "FLOAT64", value)
    return bigquery.ScalarQueryParameter(name, "STRING", str(value))


# ---------------------------------------------------------------------------
# Clauses
# ---------------------------------------------------------------------------


def build_filter_clause(index: int, condition: FilterCondition) -> tuple[str, list[QueryParameter]]:
    """Translate one filter into a predicate and its parameters."""
    col = quote_column(condition.column)
    op = condition.operator
    name = f"f{index}"

    if op == "isNull":
        return f"{col} IS NULL", []
    if op == "notNull":
        return f"{col} IS NOT NULL", []

    if op in ("contains", "startsWith", "endsWith"):
        if condition.value is None:
            raise InvalidInputError(f"Filter on column '{condition.column}' requires a value")
        text = escape_like(str(condition.value))
        pattern = {
            "contains": f"%{text}%",
            "startsWith": f"{text}%",
            "endsWith": f"%{text}",
        }[op]
        return f"{col} LIKE @{name}", [bigquery.ScalarQueryParameter(name, "STRING", pattern)]

    if op == "between":
        bounds = split_values(condition.value)
        if len(bounds) != 2:
            raise InvalidInputError(
                f"'between' on column '{condition.column}' needs exactly two values",
                params={"column": condition.column, "value": condition.value},
            )
        lo_type, lo = typed_value(bounds[0], condition.data_type, condition.column)
        hi_type, hi = typed_value(bounds[1], condition.data_type, condition.column)
        if lo_type != hi_type:
            lo_type = hi_type = "FLOAT64"
        return f"{col} BETWEEN @{name}_lo AND @{name}_hi", [
            bigquery.ScalarQueryParameter(f"{name}_lo", lo_type, lo),
            bigquery.ScalarQueryParameter(f"{name}_hi", hi_type, hi),
        ]

    if op == "in":
        items = split_values(condition.value)
        if not items:
            raise InvalidInputError(
                f"'in' on column '{condition.column}' needs at least one value",
                params={"column": condition.column, "value": condition.value},
            )
        typed = [typed_value(v, condition.data_type, condition.column) for v in items]
        types = {t for t, _ in typed}
        array_type = types.pop() if len(types) == 1 else "FLOAT64"
        return f"{col} IN UNNEST(@{name})", [
            bigquery.ArrayQueryParameter(name, array_type, [v for _, v in typed])
        ]

    param_type, value = typed_value(condition.value, condition.data_type, condition.column)
    if op == "equals":
        # Only ``string`` filters compare against a STRING parameter.
        return f"{col} = @{name}", [bigquery.ScalarQueryParameter(name, param_type, value)]

    if op in _COMPARISON_SQL:
        return f"{col} {_COMPARISON_SQL[op]} @{name}", [
            bigquery.ScalarQueryParameter(name, param_type, value)
        ]

    raise InvalidInputError(f"Unsupported filter operator: {op!r}")


def build_search_clause(search: str | None) -> tuple[str | None, list[QueryParameter]]:
    if not search or not search.strip():
        return None, []
    pattern = f"%{escape_like(search.strip().lower())}%"
    parts = [f"LOWER(CAST({quote_column(c)} AS STRING)) LIKE @search" for c in SEARCH_COLUMNS]
    return "(" + " OR ".join(parts) + ")", [
        bigquery.ScalarQueryParameter("search", "STRING", pattern)
    ]


def build_where(options: TableDataOptions) -> tuple[str, list[QueryParameter]]:
    """Return ``(" WHERE ...", params)`` or ``("", [])`` when nothing filters."""
    conditions: list[str] = []
    params: list[QueryParameter] = []

    if options.where:
        conditions.append(f"({options.where})")

    for i, condition in enumerate(options.filters):
        clause, clause_params = build_filter_clause(i, condition)
        conditions.append(clause)
        params.extend(clause_params)

    search_clause, search_params = build_search_clause(options.search)
    if search_clause:
        conditions.append(search_clause)
        params.extend(search_params)

    if not conditions:
        return "", []
    return " WHERE " + " AND ".join(conditions), params


def order_sorts(sorts: list[SortCondition]) -> list[SortCondition]:
    """Stable sort by priority, so equal priorities keep their input order."""
    return sorted(sorts, key=lambda s: s.priority)


def build_order_by(sorts: list[SortCondition]) -> str:
    if not sorts:
        return ""
    keys = [f"{quote_column(s.column)} {s.direction.upper()}" for s in order_sorts(sorts)]
    return " ORDER BY " + ", ".join(keys)


def build_projection(columns: list[str] | None) -> str:
    if not columns:
        return "*"
    return ", ".join(quote_column(c) for c in columns)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def build_data_query(
    project_id: str,
    dataset_id: str,
    table_id: str,
    options: TableDataOptions,
) -> BuiltQuery:
    ref = table_reference(project_id, dataset_id, table_id)
    where, params = build_where(options)
    sql = (
        f"SELECT {build_projection(options.columns)} FROM {ref}"
        f"{where}{build_order_by(options.sorts)}"
        f" LIMIT {int(options.limit)} OFFSET {int(options.offset)}"
    )
    return BuiltQuery(sql, params)


def build_count_query(
    project_id: str,
    dataset_id: str,
    table_id: str,
    options: TableDataOptions | None = None,
) -> BuiltQuery:
    """COUNT(*) over the same WHERE clause (and parameters) as the data query."""
    ref = table_reference(project_id, dataset_id, table_id)
    where, params = build_where(options) if options is not None else ("", [])
    return BuiltQuery(f"SELECT COUNT(*) AS total FROM {ref}{where}", params)


def row_predicate(key_column: str) -> str:
    """Equality predicate on the key column, bound to ``@row_id``.

    The key is compared as STRING so INT64 and STRING key columns both work
    with the row id taken from the URL.
    """
    return f"CAST({quote_column(key_column)} AS STRING) = @row_id"


def build_update_query(
    project_id: str,
    dataset_id: str,
    table_id: str,
    key_column: str,
    row_id: str,
    data: dict[str, Any],
) -> BuiltQuery:
    if not data:
        raise InvalidInputError("Update requires at least one column value")
    if key_column in data:
        raise InvalidInputError(
            f"Key column '{key_column}' cannot be updated", params={"column": key_column}
        )
    ref = table_reference(project_id, dataset_id, table_id)
    assignments: list[str] = []
    params: list[QueryParameter] = []
    for i, (column, value) in enumerate(data.items()):
        param = sql_value_parameter(f"set{i}", value)
        if param is None:
            assignments.append(f"{quote_column(column)} = NULL")
        else:
            assignments.append(f"{quote_column(column)} = @set{i}")
            params.append(param)
    params.append(bigquery.ScalarQueryParameter("row_id", "STRING", str(row_id)))
    sql = f"UPDATE {ref} SET {', '.join(assignments)} WHERE {row_predicate(key_column)}"
    return BuiltQuery(sql, params)


def build_delete_query(
    project_id: str,
    dataset_id: str,
    table_id: str,
    key_column: str,
    row_id: str,
) -> BuiltQuery:
    ref = table_reference(project_id, dataset_id, table_id)
    return BuiltQuery(
        f"DELETE FROM {ref} WHERE {row_predicate(key_column)}",
        [bigquery.ScalarQueryParameter("row_id", "STRING", str(row_id))],
    )
