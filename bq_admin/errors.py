"""Exception hierarchy shared by the warehouse layer, services and HTTP handlers."""

from __future__ import annotations

from typing import Any


class AdminError(Exception):
    """Base class for errors rendered as an ``ErrorResponse``."""

    status_code = 500
    error_code = "INTERNAL_ERROR"
    message = "Internal server error"

    def __init__(
        self,
        details: str | None = None,
        *,
        message: str | None = None,
        params: dict[str, Any] | None = None,
    ) -> None:
        self.details = details
        if message is not None:
            self.message = message
        self.params = params
        super().__init__(details or self.message)


class InvalidInputError(AdminError):
    """Caller supplied malformed parameters (bad JSON, unknown operator, bad identifier)."""

    status_code = 400
    error_code = "INVALID_INPUT"
    message = "Invalid request parameters"


class TableNotFoundError(AdminError):
    error_code = "NOT_FOUND"
    message = "Table or dataset not found"


class PermissionDeniedError(AdminError):
    error_code = "PERMISSION_DENIED"
    message = "Permission denied for the requested warehouse resource"


class QueryTimeoutError(AdminError):
    error_code = "QUERY_TIMEOUT"
    message = "Query timed out"


class WarehouseError(AdminError):
    error_code = "WAREHOUSE_ERROR"
    message = "Warehouse query failed"


class WarehouseUnavailableError(AdminError):
    """The warehouse could not be reached; callers substitute fixture data."""

    error_code = "WAREHOUSE_UNAVAILABLE"
    message = "Warehouse unreachable"
