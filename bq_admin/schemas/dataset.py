"""Dataset / table metadata schemas."""

from __future__ import annotations

from typing import Literal

from pydantic import Field

from bq_admin.schemas.common import CamelModel


class Dataset(CamelModel):
    id: str
    name: str
    description: str = ""
    location: str = "US"
    created: str | None = None
    last_modified: str | None = None
    tables: int | None = None


class SchemaField(CamelModel):
    """One column of a table schema."""

    name: str
    type: str = "STRING"
    mode: Literal["REQUIRED", "NULLABLE", "REPEATED"] = "NULLABLE"
    description: str | None = None


class Table(CamelModel):
    """Listing entry.  Row/byte counts are best-effort (zero for views)."""

    id: str
    name: str
    type: Literal["TABLE", "VIEW"] = "TABLE"
    num_rows: int = 0
    num_bytes: int = 0
    created_time: str = ""
    modified_time: str = ""
    description: str = ""
    labels: dict[str, str] = Field(default_factory=dict)
    location: str = "US"


class TableDetail(Table):
    """Table metadata plus schema and the columns the UI may edit."""

    dataset_id: str
    schema_: list[SchemaField] = Field(default_factory=list, alias="schema")
    editable_columns: list[str] = Field(default_factory=list)


class TableSchema(CamelModel):
    """Column layout for building insert / edit forms."""

    dataset_id: str
    table_id: str
    key_column: str
    schema_: list[SchemaField] = Field(default_factory=list, alias="schema")
    editable_columns: list[str] = Field(default_factory=list)
    required_columns: list[str] = Field(default_factory=list)
