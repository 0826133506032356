"""Row insert / update / delete and bulk batches.

With a connected backend the statements run as parameterized DML (inserts
use the streaming API).  Without one, mutations are simulated: they validate
and report success but fixture data is never modified.
"""

from __future__ import annotations

import json
import logging

from bq_admin.config import Settings
from bq_admin.errors import AdminError, InvalidInputError, WarehouseError
from bq_admin.schemas.mutation import (
    BULK_OPERATION_TYPES,
    BulkOperation,
    BulkOperationResult,
    BulkRequest,
    BulkResponse,
    MutationResult,
)
from bq_admin.services.query_builder import (
    build_delete_query,
    build_update_query,
    quote_column,
    table_reference,
)
from bq_admin.warehouse import ConnectedBackend, WarehouseBackend

logger = logging.getLogger("bq_admin.services.mutations")


def validate_operation(index: int, op: BulkOperation) -> BulkOperationResult:
    """Structural validation only; nothing is executed."""
    errors: list[str] = []
    kind = (op.type or "").upper()
    if kind not in BULK_OPERATION_TYPES:
        errors.append(
            f"Unknown operation type '{op.type}'; expected one of {', '.join(BULK_OPERATION_TYPES)}"
        )
    if kind in ("UPDATE", "DELETE") and not op.row_id:
        errors.append(f"{kind} requires rowId")
    if kind == "INSERT" and not op.data:
        errors.append("INSERT requires a non-empty data object")
    for column in (op.data or {}):
        try:
            quote_column(column)
        except InvalidInputError as exc:
            errors.append(exc.details or exc.message)
    return BulkOperationResult(
        index=index,
        type=op.type,
        row_id=op.row_id,
        valid=not errors,
        errors=errors,
    )


class MutationService:
    def __init__(self, backend: WarehouseBackend, settings: Settings) -> None:
        self.backend = backend
        self.settings = settings

    @property
    def key_column(self) -> str:
        return self.settings.key_column

    async def insert_rows(self, dataset_id: str, table_id: str, rows: list[dict]) -> MutationResult:
        table_reference(self.backend.project_id, dataset_id, table_id)
        for row in rows:
            for column in row:
                quote_column(column)

        backend = self.backend
        if not isinstance(backend, ConnectedBackend):
            logger.info("Simulated insert of %d rows into %s.%s", len(rows), dataset_id, table_id)
            return MutationResult(
                success=True, operation="INSERT", affected_rows=len(rows), simulated=True
            )

        errors = await backend.insert_rows(dataset_id, table_id, rows)
        if errors:
            raise WarehouseError(json.dumps(errors, default=str), message="Insert failed")
        logger.info("Inserted %d rows into %s.%s", len(rows), dataset_id, table_id)
        return MutationResult(success=True, operation="INSERT", affected_rows=len(rows))

    async def update_row(
        self,
        dataset_id: str,
        table_id: str,
        row_id: str,
        data: dict,
        validate_only: bool = False,
    ) -> MutationResult:
        query = build_update_query(
            self.backend.project_id, dataset_id, table_id, self.key_column, row_id, data
        )
        if validate_only:
            return MutationResult(
                success=True, operation="UPDATE", row_id=row_id, validate_only=True, query=query.sql
            )

        backend = self.backend
        if not isinstance(backend, ConnectedBackend):
            logger.info("Simulated update of %s.%s row %s", dataset_id, table_id, row_id)
            return MutationResult(
                success=True,
                operation="UPDATE",
                row_id=row_id,
                affected_rows=1,
                simulated=True,
                query=query.sql,
            )

        affected = await backend.run_dml(query, self.settings.query_timeout_seconds)
        logger.info("Updated %s.%s row %s affected=%d", dataset_id, table_id, row_id, affected)
        return MutationResult(
            success=True,
            operation="UPDATE",
            row_id=row_id,
            affected_rows=affected,
            query=query.sql,
            message=None if affected else f"No row with {self.key_column} = {row_id}",
        )

    async def delete_row(self, dataset_id: str, table_id: str, row_id: str) -> MutationResult:
        query = build_delete_query(
            self.backend.project_id, dataset_id, table_id, self.key_column, row_id
        )
        backend = self.backend
        if not isinstance(backend, ConnectedBackend):
            logger.info("Simulated delete of %s.%s row %s", dataset_id, table_id, row_id)
            return MutationResult(
                success=True,
                operation="DELETE",
                row_id=row_id,
                affected_rows=1,
                simulated=True,
                query=query.sql,
            )

        affected = await backend.run_dml(query, self.settings.query_timeout_seconds)
        logger.info("Deleted %s.%s row %s affected=%d", dataset_id, table_id, row_id, affected)
        return MutationResult(
            success=True,
            operation="DELETE",
            row_id=row_id,
            affected_rows=affected,
            query=query.sql,
            message=None if affected else f"No row with {self.key_column} = {row_id}",
        )

    async def _execute(self, dataset_id: str, table_id: str, op: BulkOperation) -> MutationResult:
        kind = op.type.upper()
        if kind == "INSERT":
            return await self.insert_rows(dataset_id, table_id, [op.data or {}])
        if kind == "UPDATE":
            return await self.update_row(dataset_id, table_id, op.row_id or "", op.data or {})
        return await self.delete_row(dataset_id, table_id, op.row_id or "")

    async def bulk(self, dataset_id: str, table_id: str, request: BulkRequest) -> BulkResponse:
        """Validate every operation, then (unless validate-only) run the valid ones.

        One failing operation does not stop the rest.  With ``transactional``
        nothing runs if any operation is structurally invalid.
        """
        table_reference(self.backend.project_id, dataset_id, table_id)
        results = [validate_operation(i, op) for i, op in enumerate(request.operations)]
        all_valid = all(r.valid for r in results)
        simulated = not isinstance(self.backend, ConnectedBackend)

        if request.validate_only or (request.transactional and not all_valid):
            return BulkResponse(
                validate_only=request.validate_only,
                transactional=request.transactional,
                all_valid=all_valid,
                executed=False,
                simulated=simulated,
                failed=sum(1 for r in results if not r.valid),
                results=results,
            )

        for op, result in zip(request.operations, results):
            if not result.valid:
                result.success = False
                result.error = "; ".join(result.errors)
                continue
            try:
                outcome = await self._execute(dataset_id, table_id, op)
            except AdminError as exc:
                logger.warning("Bulk operation %d (%s) failed: %s", result.index, op.type, exc)
                result.success = False
                result.error = exc.details or exc.message
            else:
                result.success = True
                result.affected_rows = outcome.affected_rows

        succeeded = sum(1 for r in results if r.success)
        logger.info(
            "bulk %s.%s operations=%d succeeded=%d", dataset_id, table_id, len(results), succeeded
        )
        return BulkResponse(
            validate_only=False,
            transactional=request.transactional,
            all_valid=all_valid,
            executed=True,
            simulated=simulated,
            succeeded=succeeded,
            failed=len(results) - succeeded,
            results=results,
        )
