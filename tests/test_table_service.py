"""TableService against the fake BigQuery client (connected path)."""

from __future__ import annotations

import concurrent.futures

import pytest
from google.api_core.exceptions import BadRequest, DeadlineExceeded, Forbidden, NotFound, ServiceUnavailable

from bq_admin.errors import PermissionDeniedError, QueryTimeoutError, TableNotFoundError
from bq_admin.schemas.dataset import SchemaField
from bq_admin.schemas.table_data import FilterCondition, SearchFilter, SearchRequest, TableDataOptions
from bq_admin.services.table_service import TableService, editable_columns, search_options


def test_editable_columns_skip_key_and_audit_columns():
    schema = [SchemaField(name=n) for n in ["id", "name", "created_at", "updated_at", "score"]]
    assert editable_columns(schema) == ["name", "score"]


@pytest.mark.asyncio
async def test_data_and_count_queries(connected_backend, fake_client, settings):
    fake_client.on("COUNT(*)", rows=[{"total": 57}])
    fake_client.on("LIMIT", rows=[{"id": 1, "name": "a"}, {"id": 2, "name": "b"}])
    service = TableService(connected_backend, settings)

    options = TableDataOptions(
        limit=2, filters=[FilterCondition(column="name", operator="startsWith", value="a")]
    )
    env = await service.get_table_data("crm", "customers", options)

    assert env.source == "warehouse"
    assert env.data == [{"id": 1, "name": "a"}, {"id": 2, "name": "b"}]
    assert env.total_count == 57
    assert env.pagination.total == 57
    assert env.has_more is True
    assert env.query.startswith("SELECT * FROM `test-project.crm.customers` WHERE `name` LIKE @f0")

    sqls = [sql for sql, _ in fake_client.queries]
    assert len(sqls) == 2
    count_sql = next(s for s in sqls if "COUNT(*)" in s)
    assert count_sql.endswith("WHERE `name` LIKE @f0")
    config = next(cfg for s, cfg in fake_client.queries if s == count_sql)
    assert config.query_parameters[0].value == "a%"


@pytest.mark.asyncio
async def test_count_failure_does_not_fail_request(connected_backend, fake_client, settings):
    fake_client.on("COUNT(*)", exc=BadRequest("count exploded"))
    fake_client.on("LIMIT", rows=[{"id": 1}])
    service = TableService(connected_backend, settings)

    env = await service.get_table_data("crm", "customers", TableDataOptions(limit=10))
    assert env.total_count is None
    assert env.pagination.total == 1
    assert env.total_rows == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "exc,expected",
    [
        (NotFound("Not found: Table x"), TableNotFoundError),
        (Forbidden("Access Denied"), PermissionDeniedError),
        (DeadlineExceeded("too slow"), QueryTimeoutError),
        (concurrent.futures.TimeoutError(), QueryTimeoutError),
    ],
)
async def test_remote_errors_are_mapped(connected_backend, fake_client, settings, exc, expected):
    fake_client.on("LIMIT", exc=exc)
    service = TableService(connected_backend, settings)
    with pytest.raises(expected):
        await service.get_table_data("crm", "customers", TableDataOptions())


@pytest.mark.asyncio
async def test_not_found_over_http_is_500_with_details(connected_client, fake_client):
    fake_client.on("LIMIT", exc=NotFound("Not found: Table test-project:crm.ghost"))
    response = await connected_client.get("/api/datasets/crm/tables/ghost/data")
    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Table or dataset not found"
    assert body["code"] == "NOT_FOUND"
    assert "crm.ghost" in body["details"]
    assert body["params"]["table_id"] == "ghost"


@pytest.mark.asyncio
async def test_unreachable_warehouse_serves_fixtures(connected_backend, fake_client, settings):
    fake_client.on("LIMIT", exc=ServiceUnavailable("connection refused"))
    service = TableService(connected_backend, settings)
    env = await service.get_table_data("hockey", "all_drafts", TableDataOptions(limit=3))
    assert env.source == "fixture"
    assert len(env.data) == 3


@pytest.mark.asyncio
async def test_limit_is_capped(connected_backend, fake_client, settings):
    settings.max_page_size = 50
    service = TableService(connected_backend, settings)
    env = await service.get_table_data("crm", "customers", TableDataOptions(limit=1_000_000))
    assert env.pagination.limit == 50
    assert env.pagination.requested_limit == 1_000_000
    assert "LIMIT 50 OFFSET 0" in env.query


@pytest.mark.asyncio
async def test_list_tables_fans_out_and_isolates_failures(connected_backend, fake_client, settings, table_meta):
    fake_client.tables["hockey"] = [
        table_meta("drafts", num_rows=5, num_bytes=0),
        table_meta("summary", table_type="VIEW", num_rows=99, num_bytes=99),
        table_meta("broken"),
        table_meta("slow", num_rows=12, num_bytes=345),
    ]
    fake_client.table_errors["broken"] = Forbidden("nope")
    fake_client.on("`test-project.hockey.drafts`", rows=[{"total": 40}])
    fake_client.on("`test-project.hockey.slow`", exc=DeadlineExceeded("count timed out"))
    service = TableService(connected_backend, settings)

    tables = {t.id: t for t in await service.list_tables("hockey")}

    assert tables["drafts"].num_rows == 40
    assert tables["drafts"].num_bytes == 4000
    assert (tables["summary"].type, tables["summary"].num_rows, tables["summary"].num_bytes) == ("VIEW", 0, 0)
    assert (tables["broken"].type, tables["broken"].num_rows) == ("TABLE", 0)
    assert (tables["slow"].num_rows, tables["slow"].num_bytes) == (12, 345)
    assert tables["drafts"].created_time.startswith("2024-01-01")
    # No count query is issued for the view.
    assert not any("summary" in sql for sql, _ in fake_client.queries)


@pytest.mark.asyncio
async def test_get_table_connected(connected_backend, fake_client, settings, table_meta):
    fake_client.tables["crm"] = [
        table_meta(
            "customers",
            fields=[
                ("id", "INTEGER", "REQUIRED"),
                ("email", "STRING", "NULLABLE"),
                ("tags", "STRING", "REPEATED"),
                ("updated_at", "TIMESTAMP", "NULLABLE"),
            ],
        )
    ]
    service = TableService(connected_backend, settings)
    detail = await service.get_table("crm", "customers")
    assert detail.dataset_id == "crm"
    assert [f.mode for f in detail.schema_] == ["REQUIRED", "NULLABLE", "REPEATED", "NULLABLE"]
    assert detail.editable_columns == ["email", "tags"]
    assert detail.labels == {"team": "data"}


@pytest.mark.asyncio
async def test_list_datasets_connected_and_unreachable(connected_backend, fake_client, settings):
    fake_client.datasets = ["sales", "ops"]
    service = TableService(connected_backend, settings)
    assert [d.id for d in await service.list_datasets()] == ["sales", "ops"]

    fake_client.list_error = ServiceUnavailable("down")
    assert [d.id for d in await service.list_datasets()] == ["hockey", "crm", "tournament_consolidation"]


def test_search_options_translation():
    request = SearchRequest(
        search_term="ada",
        columns=[],
        filters=[
            SearchFilter(field="score", operator="gt", value=1.5),
            SearchFilter(field="active", value=True),
            SearchFilter(field="team", operator="in", value=["A", "B"]),
        ],
        sort_by="score",
        sort_order="desc",
    )
    options = search_options(request, default_limit=25)
    assert options.limit == 25
    assert options.search == "ada"
    assert options.columns is None
    assert [(f.column, f.operator, f.data_type) for f in options.filters] == [
        ("score", "gt", "number"),
        ("active", "equals", "boolean"),
        ("team", "in", "string"),
    ]
    assert [(s.column, s.direction) for s in options.sorts] == [("score", "desc")]


@pytest.mark.asyncio
async def test_table_schema_required_columns(connected_backend, fake_client, settings, table_meta):
    fake_client.tables["crm"] = [
        table_meta(
            "customers",
            fields=[
                ("id", "INTEGER", "REQUIRED"),
                ("email", "STRING", "REQUIRED"),
                ("note", "STRING", "NULLABLE"),
            ],
        )
    ]
    service = TableService(connected_backend, settings)
    schema = await service.get_table_schema("crm", "customers")
    assert schema.key_column == "id"
    assert schema.editable_columns == ["email", "note"]
    assert schema.required_columns == ["email"]
