"""Deterministic sample data served when BigQuery is not configured or unreachable.

Rows are a pure function of (table, row index), so every call returns the
same payload.  Filters, sorts, search, projection and paging are applied in
memory with the same semantics as the generated SQL.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Callable

from bq_admin.schemas.dataset import Dataset, SchemaField, Table
from bq_admin.schemas.table_data import FilterCondition, SortCondition, TableDataOptions
from bq_admin.services.query_builder import SEARCH_COLUMNS, split_values, typed_value

_CREATED = "2023-01-01T00:00:00Z"
_MODIFIED = "2024-01-01T00:00:00Z"
_POSITIONS = ("Forward", "Defense", "Goalie")


def _letter(i: int, span: int = 26) -> str:
    return chr(65 + (i % span))


def _schema(*fields: tuple[str, str]) -> list[SchemaField]:
    return [
        SchemaField(name=name, type=type_, mode="REQUIRED" if name == "id" else "NULLABLE")
        for name, type_ in fields
    ]


# ---------------------------------------------------------------------------
# Row factories
# ---------------------------------------------------------------------------


def _algorithm_config_row(i: int) -> dict[str, Any]:
    return {
        "id": i + 1,
        "algorithm_name": f"Algorithm_{i + 1}",
        "version": f"v{i // 10 + 1}.{i % 10}",
        "parameters": json.dumps({"param1": i, "param2": _letter(i)}),
        "created_date": (datetime(2023, 1, 1) + timedelta(days=i)).isoformat(),
        "status": "active" if i % 3 == 0 else "inactive",
    }


def _all_drafts_row(i: int) -> dict[str, Any]:
    return {
        "id": i + 1,
        "player_name": f"Player {i + 1}",
        "team": f"Team {_letter(i)}",
        "position": _POSITIONS[i % 3],
        "draft_year": 2020 + i % 5,
        "round": i // 30 + 1,
        "pick": i % 30 + 1,
        "points": (i * 37 + 11) % 100,
    }


def _college_commitment_row(i: int) -> dict[str, Any]:
    return {
        "id": i + 1,
        "player_name": f"Student {i + 1}",
        "college": f"University {_letter(i)}",
        "sport": "Hockey",
        "commitment_date": date(2023, i % 12 + 1, i % 28 + 1).isoformat(),
        "position": _POSITIONS[i % 3],
    }


def _player_summary_row(i: int) -> dict[str, Any]:
    return {
        "id": i + 1,
        "player_name": f"Player {i + 1}",
        "team": f"Team {_letter(i)}",
        "games_played": 40 + (i * 7) % 42,
        "points": (i * 37 + 11) % 100,
    }


def _customer_row(i: int) -> dict[str, Any]:
    created = datetime(2023, 1, 1) + timedelta(hours=i * 7)
    return {
        "id": i + 1,
        "name": f"Customer {i + 1}",
        "email": f"customer{i + 1}@example.com",
        "status": ("active", "prospect", "churned")[i % 3],
        "category": f"Segment {_letter(i, 4)}",
        "lifetime_value": round((i * 137) % 5000 + 0.5, 2),
        "created_at": created.isoformat(),
        "updated_at": (created + timedelta(days=30)).isoformat(),
    }


def _tournament_row(i: int) -> dict[str, Any]:
    return {
        "id": i + 1,
        "name": f"Tournament {i + 1}",
        "category": f"Division {_letter(i, 5)}",
        "teams": 8 + (i % 4) * 4,
        "start_date": date(2023, i % 12 + 1, i % 28 + 1).isoformat(),
    }


def _generic_row(i: int) -> dict[str, Any]:
    return {
        "id": i + 1,
        "name": f"Record {i + 1}",
        "value": (i * 53) % 1000,
        "category": f"Category {_letter(i, 5)}",
        "date": datetime(2023, i % 12 + 1, i % 28 + 1).isoformat(),
    }


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FixtureTable:
    id: str
    description: str
    row_count: int
    row_factory: Callable[[int], dict[str, Any]]
    schema: list[SchemaField] = field(default_factory=list)
    kind: str = "TABLE"
    num_bytes: int = 0

    def to_table(self) -> Table:
        view = self.kind == "VIEW"
        return Table(
            id=self.id,
            name=self.id,
            type=self.kind,
            num_rows=0 if view else self.row_count,
            num_bytes=0 if view else self.num_bytes,
            created_time=_CREATED,
            modified_time=_MODIFIED,
            description=self.description,
            labels={},
            location="US",
        )


GENERIC_SCHEMA = _schema(
    ("id", "INTEGER"),
    ("name", "STRING"),
    ("value", "INTEGER"),
    ("category", "STRING"),
    ("date", "TIMESTAMP"),
)

FIXTURE_DATASETS: dict[str, Dataset] = {
    "hockey": Dataset(
        id="hockey",
        name="hockey",
        description="Hockey analytics and player data",
        created="2023-01-01",
        last_modified="2024-01-01",
    ),
    "crm": Dataset(
        id="crm",
        name="crm",
        description="Customer relationship management data",
        created="2023-01-01",
        last_modified="2024-01-01",
    ),
    "tournament_consolidation": Dataset(
        id="tournament_consolidation",
        name="tournament_consolidation",
        description="Tournament and competition data",
        created="2023-01-01",
        last_modified="2024-01-01",
    ),
}

FIXTURE_TABLES: dict[str, list[FixtureTable]] = {
    "hockey": [
        FixtureTable(
            "algorithm_config",
            "Algorithm configuration settings",
            26,
            _algorithm_config_row,
            _schema(
                ("id", "INTEGER"),
                ("algorithm_name", "STRING"),
                ("version", "STRING"),
                ("parameters", "STRING"),
                ("created_date", "TIMESTAMP"),
                ("status", "STRING"),
            ),
            num_bytes=2560,
        ),
        FixtureTable(
            "all_drafts",
            "All draft data",
            5892,
            _all_drafts_row,
            _schema(
                ("id", "INTEGER"),
                ("player_name", "STRING"),
                ("team", "STRING"),
                ("position", "STRING"),
                ("draft_year", "INTEGER"),
                ("round", "INTEGER"),
                ("pick", "INTEGER"),
                ("points", "INTEGER"),
            ),
            num_bytes=531300,
        ),
        FixtureTable(
            "college_commitments_raw",
            "Raw college commitment data",
            1226,
            _college_commitment_row,
            _schema(
                ("id", "INTEGER"),
                ("player_name", "STRING"),
                ("college", "STRING"),
                ("sport", "STRING"),
                ("commitment_date", "DATE"),
                ("position", "STRING"),
            ),
            num_bytes=89250,
        ),
        FixtureTable(
            "player_summary",
            "Per-player scoring summary",
            40,
            _player_summary_row,
            _schema(
                ("id", "INTEGER"),
                ("player_name", "STRING"),
                ("team", "STRING"),
                ("games_played", "INTEGER"),
                ("points", "INTEGER"),
            ),
            kind="VIEW",
        ),
    ],
    "crm": [
        FixtureTable(
            "customers",
            "Customer data",
            1000,
            _customer_row,
            _schema(
                ("id", "INTEGER"),
                ("name", "STRING"),
                ("email", "STRING"),
                ("status", "STRING"),
                ("category", "STRING"),
                ("lifetime_value", "FLOAT"),
                ("created_at", "TIMESTAMP"),
                ("updated_at", "TIMESTAMP"),
            ),
            num_bytes=50000,
        ),
    ],
    "tournament_consolidation": [
        FixtureTable(
            "tournaments",
            "Tournament data",
            500,
            _tournament_row,
            _schema(
                ("id", "INTEGER"),
                ("name", "STRING"),
                ("category", "STRING"),
                ("teams", "INTEGER"),
                ("start_date", "DATE"),
            ),
            num_bytes=25000,
        ),
    ],
}


def list_datasets() -> list[Dataset]:
    return [
        ds.model_copy(update={"tables": len(FIXTURE_TABLES.get(ds_id, []))})
        for ds_id, ds in FIXTURE_DATASETS.items()
    ]


def list_tables(dataset_id: str) -> list[Table]:
    return [t.to_table() for t in FIXTURE_TABLES.get(dataset_id, [])]


def get_fixture_table(dataset_id: str, table_id: str) -> FixtureTable:
    """Known fixture table, or a generic 100-row table keyed by the identifiers."""
    for table in FIXTURE_TABLES.get(dataset_id, []):
        if table.id == table_id:
            return table
    return FixtureTable(
        table_id,
        f"Sample data for {dataset_id}.{table_id}",
        100,
        _generic_row,
        GENERIC_SCHEMA,
        num_bytes=5000,
    )


# ---------------------------------------------------------------------------
# In-memory query evaluation
# ---------------------------------------------------------------------------


def _coerce(value: Any, data_type: str, column: str) -> Any:
    return typed_value(value, data_type, column)[1]


def _comparable(cell: Any, data_type: str) -> Any:
    if data_type == "number":
        return float(cell)
    if data_type == "boolean":
        return bool(cell)
    return str(cell)


def _matches(row: dict[str, Any], condition: FilterCondition) -> bool:
    cell = row.get(condition.column)
    op = condition.operator
    if op == "isNull":
        return cell is None
    if op == "notNull":
        return cell is not None
    if cell is None:
        return False

    if op in ("contains", "startsWith", "endsWith"):
        text, needle = str(cell), str(condition.value)
        if op == "contains":
            return needle in text
        if op == "startsWith":
            return text.startswith(needle)
        return text.endswith(needle)

    dtype = condition.data_type
    try:
        left = _comparable(cell, dtype)
    except (TypeError, ValueError):
        return False

    def right(v: Any) -> Any:
        return _comparable(_coerce(v, dtype, condition.column), dtype)

    if op == "between":
        lo, hi = split_values(condition.value)
        return right(lo) <= left <= right(hi)
    if op == "in":
        return left in {right(v) for v in split_values(condition.value)}

    target = right(condition.value)
    if op == "equals":
        if dtype == "date":
            # A date literal matches timestamps on that day.
            return left == target or left.startswith(target + "T")
        return left == target
    return {
        "gt": left > target,
        "gte": left >= target,
        "lt": left < target,
        "lte": left <= target,
    }[op]


def _search_hit(row: dict[str, Any], term: str) -> bool:
    return any(
        row.get(c) is not None and term in str(row[c]).lower() for c in SEARCH_COLUMNS
    )


def _apply_sorts(rows: list[dict[str, Any]], sorts: list[SortCondition]) -> list[dict[str, Any]]:
    # Sort by the least significant key first; list.sort is stable.
    for sort in reversed(sorted(sorts, key=lambda s: s.priority)):
        column = sort.column
        rows.sort(
            key=lambda r: (r.get(column) is not None, r.get(column) if r.get(column) is not None else 0),
            reverse=sort.direction == "desc",
        )
    return rows


def query_rows(dataset_id: str, table_id: str, options: TableDataOptions) -> tuple[list[dict[str, Any]], int]:
    """Return ``(page_rows, matching_total)`` for a fixture table."""
    table = get_fixture_table(dataset_id, table_id)
    rows = [table.row_factory(i) for i in range(table.row_count)]

    for condition in options.filters:
        rows = [r for r in rows if _matches(r, condition)]
    if options.search and options.search.strip():
        term = options.search.strip().lower()
        rows = [r for r in rows if _search_hit(r, term)]

    total = len(rows)
    rows = _apply_sorts(rows, options.sorts)
    page = rows[options.offset : options.offset + options.limit]
    if options.columns:
        page = [{c: r.get(c) for c in options.columns} for r in page]
    return page, total
