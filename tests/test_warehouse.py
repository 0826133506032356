"""Backend construction, SDK error mapping and row conversion."""

from __future__ import annotations

import base64
import concurrent.futures
import datetime as dt
import json
from decimal import Decimal

import pytest
from google.api_core.exceptions import (
    BadRequest,
    DeadlineExceeded,
    Forbidden,
    NotFound,
    RetryError,
    ServiceUnavailable,
)

from bq_admin.config import Settings
from bq_admin.errors import (
    InvalidInputError,
    PermissionDeniedError,
    QueryTimeoutError,
    TableNotFoundError,
    WarehouseError,
    WarehouseUnavailableError,
)
from bq_admin.middleware.security import parse_cors_origins
from bq_admin.warehouse import (
    UnavailableBackend,
    create_backend,
    decode_credentials,
    to_jsonable,
    translate_error,
)


def test_decode_credentials_accepts_raw_and_base64_json():
    info = {"type": "service_account", "project_id": "p"}
    raw = json.dumps(info)
    assert decode_credentials(raw) == info
    assert decode_credentials(base64.b64encode(raw.encode()).decode()) == info


def test_decode_credentials_rejects_garbage():
    with pytest.raises(ValueError):
        decode_credentials("definitely not credentials")


def test_missing_credentials_yields_unavailable_backend(settings):
    backend = create_backend(settings)
    assert isinstance(backend, UnavailableBackend)
    assert backend.connected is False
    assert backend.project_id == "hockey-data-analysis"


@pytest.mark.parametrize("credentials", ["{not json", json.dumps({"type": "service_account"})])
def test_invalid_credentials_yield_unavailable_backend(credentials):
    settings = Settings(
        _env_file=None,
        google_cloud_project_id="my-project",
        google_application_credentials_json=credentials,
    )
    backend = create_backend(settings)
    assert isinstance(backend, UnavailableBackend)
    assert backend.reason.startswith("invalid credentials")
    assert backend.project_id == "my-project"


@pytest.mark.parametrize(
    "exc,expected",
    [
        (NotFound("gone"), TableNotFoundError),
        (Forbidden("denied"), PermissionDeniedError),
        (DeadlineExceeded("slow"), QueryTimeoutError),
        (concurrent.futures.TimeoutError(), QueryTimeoutError),
        (ServiceUnavailable("down"), WarehouseUnavailableError),
        (RetryError("gave up", cause=None), WarehouseUnavailableError),
        (ConnectionError("refused"), WarehouseUnavailableError),
        (BadRequest("syntax"), WarehouseError),
        (RuntimeError("boom"), WarehouseError),
    ],
)
def test_translate_error(exc, expected):
    assert type(translate_error(exc)) is expected


def test_translate_error_passes_admin_errors_through():
    err = InvalidInputError("bad")
    assert translate_error(err) is err


def test_translate_error_status_codes():
    assert translate_error(NotFound("gone")).status_code == 500
    assert translate_error(Forbidden("denied")).error_code == "PERMISSION_DENIED"


def test_to_jsonable():
    value = {
        "amount": Decimal("1.50"),
        "at": dt.datetime(2024, 3, 1, 12, 0, tzinfo=dt.timezone.utc),
        "day": dt.date(2024, 3, 1),
        "blob": b"\x00\x01",
        "nested": [Decimal("2"), None],
    }
    assert to_jsonable(value) == {
        "amount": 1.5,
        "at": "2024-03-01T12:00:00+00:00",
        "day": "2024-03-01",
        "blob": "AAE=",
        "nested": [2.0, None],
    }


def test_parse_cors_origins():
    assert parse_cors_origins("*") == ["*"]
    assert parse_cors_origins("http://a.test, http://b.test,") == ["http://a.test", "http://b.test"]
