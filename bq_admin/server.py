"""FastAPI application: REST surface of the BigQuery admin console.

Run with:
    python -m bq_admin.main
    # → http://localhost:3001/health
    # → http://localhost:3001/docs  (Swagger UI)
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import TypeAdapter, ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from bq_admin.config import Settings, settings as default_settings
from bq_admin.errors import AdminError, InvalidInputError
from bq_admin.middleware.security import SecurityHeadersMiddleware, parse_cors_origins
from bq_admin.schemas import (
    BulkRequest,
    BulkResponse,
    Dataset,
    ErrorResponse,
    ExportJob,
    ExportRequest,
    FilterCondition,
    MutationResult,
    RowInsertRequest,
    RowUpdateRequest,
    SearchRequest,
    SortCondition,
    Table,
    TableDataOptions,
    TableDataResponse,
    TableDetail,
    TableSchema,
)
from bq_admin.services.export_service import ExportService
from bq_admin.services.mutation_service import MutationService
from bq_admin.services.table_service import TableService, search_options
from bq_admin.warehouse import create_backend

logger = logging.getLogger("bq_admin.server")

_FILTERS = TypeAdapter(list[FilterCondition])
_SORTS = TypeAdapter(list[SortCondition])


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Request parsing
# ---------------------------------------------------------------------------


def parse_json_param(raw: str | None, adapter: TypeAdapter, name: str) -> list:
    """Decode a JSON-encoded query parameter, rejecting malformed input."""
    if raw is None or not raw.strip():
        return []
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InvalidInputError(
            f"'{name}' must be a JSON-encoded array: {exc.msg}",
            message=f"Invalid {name} parameter",
            params={name: raw},
        ) from None
    try:
        return adapter.validate_python(payload)
    except ValidationError as exc:
        raise InvalidInputError(
            "; ".join(f"{'.'.join(map(str, e['loc']))}: {e['msg']}" for e in exc.errors()),
            message=f"Invalid {name} parameter",
            params={name: raw},
        ) from None


def parse_columns(raw: str | None) -> list[str] | None:
    if raw is None:
        return None
    columns = [c.strip() for c in raw.split(",") if c.strip()]
    return columns or None


def _table_options(
    request: Request,
    limit: int | None = Query(None, ge=0),
    offset: int = Query(0, ge=0),
    filters: str | None = Query(None, description="JSON array of filter conditions"),
    sorts: str | None = Query(None, description="JSON array of sort conditions"),
    search: str | None = Query(None),
    columns: str | None = Query(None, description="Comma-separated column projection"),
) -> TableDataOptions:
    return TableDataOptions(
        limit=request.app.state.settings.default_page_size if limit is None else limit,
        offset=offset,
        filters=parse_json_param(filters, _FILTERS, "filters"),
        sorts=parse_json_param(sorts, _SORTS, "sorts"),
        search=search,
        columns=parse_columns(columns),
    )


def get_table_service(request: Request) -> TableService:
    return request.app.state.table_service


def get_mutation_service(request: Request) -> MutationService:
    return request.app.state.mutation_service


def get_export_service(request: Request) -> ExportService:
    return request.app.state.export_service


# ---------------------------------------------------------------------------
# Error rendering
# ---------------------------------------------------------------------------


def _request_params(request: Request) -> dict[str, Any]:
    params: dict[str, Any] = dict(request.path_params)
    params.update(request.query_params)
    return params


def _error(status: int, error: str, code: str, request: Request, details: str | None = None,
           params: dict[str, Any] | None = None) -> JSONResponse:
    body = ErrorResponse(
        error=error,
        code=code,
        details=details,
        timestamp=_now(),
        params=params if params is not None else (_request_params(request) or None),
    )
    return JSONResponse(status_code=status, content=body.model_dump(exclude_none=True))


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AdminError)
    async def admin_error_handler(request: Request, exc: AdminError):
        log = logger.warning if exc.status_code < 500 else logger.error
        log("%s %s -> %s: %s", request.method, request.url.path, exc.error_code, exc.details)
        return _error(exc.status_code, exc.message, exc.error_code, request, exc.details, exc.params)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(map(str, e['loc']))}: {e['msg']}" for e in exc.errors()
        )
        return _error(400, "Invalid request parameters", "INVALID_INPUT", request, details)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            logger.info("Route not found: %s %s", request.method, request.url.path)
            return _error(404, "Route not found", "ROUTE_NOT_FOUND", request)
        return _error(exc.status_code, str(exc.detail), "HTTP_ERROR", request)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Server error on %s %s", request.method, request.url.path)
        return _error(500, "Internal server error", "INTERNAL_ERROR", request, str(exc))


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


def register_routes(app: FastAPI) -> None:
    @app.get("/health")
    async def health(request: Request):
        backend = request.app.state.table_service.backend
        return {
            "status": "OK",
            "timestamp": _now(),
            "version": request.app.state.settings.app_version,
            "warehouse": "connected" if backend.connected else "fixture",
        }

    @app.get("/api/datasets", response_model=list[Dataset])
    async def list_datasets(service: TableService = Depends(get_table_service)):
        return await service.list_datasets()

    @app.get("/api/datasets/{dataset_id}/tables", response_model=list[Table])
    async def list_tables(
        dataset_id: str,
        search: str | None = Query(None),
        type_: str | None = Query(None, alias="type", description="TABLE or VIEW"),
        limit: int | None = Query(None, ge=0),
        offset: int = Query(0, ge=0),
        service: TableService = Depends(get_table_service),
    ):
        return await service.list_tables(dataset_id, search, type_, limit, offset)

    @app.get("/api/datasets/{dataset_id}/tables/{table_id}", response_model=TableDetail)
    async def get_table(
        dataset_id: str,
        table_id: str,
        service: TableService = Depends(get_table_service),
    ):
        return await service.get_table(dataset_id, table_id)

    @app.get(
        "/api/datasets/{dataset_id}/tables/{table_id}/data",
        response_model=TableDataResponse,
        response_model_exclude_none=True,
    )
    async def get_table_data(
        dataset_id: str,
        table_id: str,
        options: TableDataOptions = Depends(_table_options),
        service: TableService = Depends(get_table_service),
    ):
        return await service.get_table_data(dataset_id, table_id, options)

    @app.get("/api/datasets/{dataset_id}/tables/{table_id}/schema", response_model=TableSchema)
    async def get_table_schema(
        dataset_id: str,
        table_id: str,
        service: TableService = Depends(get_table_service),
    ):
        return await service.get_table_schema(dataset_id, table_id)

    @app.post(
        "/api/datasets/{dataset_id}/tables/{table_id}/search",
        response_model=TableDataResponse,
        response_model_exclude_none=True,
    )
    async def search_table_data(
        request: Request,
        dataset_id: str,
        table_id: str,
        body: SearchRequest,
        service: TableService = Depends(get_table_service),
    ):
        options = search_options(body, request.app.state.settings.default_page_size)
        return await service.get_table_data(dataset_id, table_id, options)

    @app.post(
        "/api/datasets/{dataset_id}/tables/{table_id}/rows",
        response_model=MutationResult,
        status_code=201,
    )
    async def insert_rows(
        dataset_id: str,
        table_id: str,
        body: RowInsertRequest,
        service: MutationService = Depends(get_mutation_service),
    ):
        return await service.insert_rows(dataset_id, table_id, body.rows)

    @app.put(
        "/api/datasets/{dataset_id}/tables/{table_id}/rows/{row_id}",
        response_model=MutationResult,
    )
    async def update_row(
        dataset_id: str,
        table_id: str,
        row_id: str,
        body: RowUpdateRequest,
        service: MutationService = Depends(get_mutation_service),
    ):
        return await service.update_row(dataset_id, table_id, row_id, body.data, body.validate_only)

    @app.delete(
        "/api/datasets/{dataset_id}/tables/{table_id}/rows/{row_id}",
        response_model=MutationResult,
    )
    async def delete_row(
        dataset_id: str,
        table_id: str,
        row_id: str,
        service: MutationService = Depends(get_mutation_service),
    ):
        return await service.delete_row(dataset_id, table_id, row_id)

    @app.put("/api/datasets/{dataset_id}/tables/{table_id}/bulk", response_model=BulkResponse)
    async def bulk(
        dataset_id: str,
        table_id: str,
        body: BulkRequest,
        service: MutationService = Depends(get_mutation_service),
    ):
        return await service.bulk(dataset_id, table_id, body)

    @app.post("/api/datasets/{dataset_id}/tables/{table_id}/export", response_model=ExportJob)
    async def start_export(
        dataset_id: str,
        table_id: str,
        body: ExportRequest | None = None,
        service: ExportService = Depends(get_export_service),
    ):
        return service.start_export(dataset_id, table_id, body or ExportRequest())

    @app.get("/api/datasets/{dataset_id}/tables/{table_id}/export")
    async def download_export(
        dataset_id: str,
        table_id: str,
        fmt: str = Query("csv", alias="format", pattern="^(csv|json)$"),
        options: TableDataOptions = Depends(_table_options),
        service: ExportService = Depends(get_export_service),
    ):
        request = ExportRequest(
            format=fmt,
            filters=options.filters,
            sorts=options.sorts,
            search=options.search,
            columns=options.columns,
        )
        body, media_type, filename = await service.export(dataset_id, table_id, request)
        return Response(
            content=body,
            media_type=media_type,
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(settings: Settings | None = None, backend=None) -> FastAPI:
    """Build the app with its services wired to one warehouse backend."""
    settings = settings or default_settings
    backend = backend if backend is not None else create_backend(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "BigQuery admin API starting (env=%s, warehouse=%s)",
            settings.app_env,
            "connected" if backend.connected else "fixture",
        )
        yield
        logger.info("BigQuery admin API shutting down")

    app = FastAPI(
        title="BigQuery Admin API",
        description="Browse, filter, edit and export BigQuery tables.",
        version=settings.app_version,
        lifespan=lifespan,
    )

    tables = TableService(backend, settings)
    app.state.settings = settings
    app.state.table_service = tables
    app.state.mutation_service = MutationService(backend, settings)
    app.state.export_service = ExportService(tables)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=parse_cors_origins(settings.allowed_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware, enabled=settings.enable_security_headers)

    register_error_handlers(app)
    register_routes(app)
    return app
