"""Create, update, deactivate and delete sales rule rows in a remote table."""
from __future__ import annotations

from typing import Any, Callable, Mapping, Optional, Union

from .errors import RowNotFoundError, SchemaError
from .graph_client import GraphResponse
from .lock_retry import LockRetryPolicy, retry_locked_write
from .record import KEY_FIELD, STATUS_FIELD, Record, map_record, validate_arity
from .row_locator import fetch_row_values, find_row_index
from .schema import NOT_FOUND, resolve_header_map, table_url
from .session import SessionContext

INACTIVE = 0


class TableWriter:
    """Write sales rule rows into the table bound on ``session``.

    Row lookups are keyed by ``schedule_id``. Writes raise on any unexpected
    status, so a ``True`` return always means the remote call succeeded.
    When ``lock_policy`` is given, writes rejected because the workbook is
    locked are retried under that policy. The workbook file itself is never
    deleted from here; see :mod:`~salesrule_sync.workbook_file` for that.
    """

    def __init__(
        self,
        session: SessionContext,
        locale_code: Optional[str] = None,
        *,
        lock_policy: Optional[LockRetryPolicy] = None,
    ) -> None:
        self.session = session
        self.locale_code = locale_code
        self._lock_policy = lock_policy

    @property
    def rows_url(self) -> str:
        return f"{table_url(self.session)}/rows"

    def row_url(self, row_index: int) -> str:
        return f"{self.rows_url}/itemAt(index={row_index})"

    def upsert(self, record: Union[Record, Mapping[str, Any]]) -> bool:
        if not isinstance(record, Record):
            record = Record.from_mapping(record)
        vector = map_record(record, self.locale_code, log=self.session.logger)
        validate_arity(vector)

        schedule_id = record.get(KEY_FIELD)
        row_index = find_row_index(self.session, KEY_FIELD, schedule_id)
        body = {"values": [vector]}
        client = self.session.client
        if row_index != NOT_FOUND:
            self.session.logger.info("Updating schedule_id %s at row %d", schedule_id, row_index)
            url = self.row_url(row_index)
            response = self._write(lambda: client.patch(url, body))
            return response.status_code == 200

        self.session.logger.info("Adding row for schedule_id %s", schedule_id)
        url = self.rows_url
        response = self._write(lambda: client.post(url, body))
        return response.status_code == 201

    def deactivate(self, schedule_id: Any) -> bool:
        row_index = find_row_index(self.session, KEY_FIELD, schedule_id)
        if row_index == NOT_FOUND:
            raise RowNotFoundError(schedule_id)

        status_index = resolve_header_map(self.session).index_of(STATUS_FIELD)
        if status_index == NOT_FOUND:
            raise SchemaError(f"Column {STATUS_FIELD} not found in the table")
        values = fetch_row_values(self.session, row_index)
        if status_index >= len(values):
            raise SchemaError(f"Row {row_index} has no {STATUS_FIELD} cell")
        values[status_index] = INACTIVE

        self.session.logger.info("Deactivating schedule_id %s at row %d", schedule_id, row_index)
        client = self.session.client
        url = self.row_url(row_index)
        response = self._write(lambda: client.patch(url, {"values": [values]}))
        return response.status_code == 200

    def delete(self, schedule_id: Any) -> bool:
        row_index = find_row_index(self.session, KEY_FIELD, schedule_id)
        if row_index == NOT_FOUND:
            self.session.logger.info("Schedule id %s does not exist", schedule_id)
            return False

        client = self.session.client
        url = self.row_url(row_index)
        response = self._write(lambda: client.delete(url))
        self.session.logger.info("Deleted schedule_id %s (HTTP %d)", schedule_id, response.status_code)
        return True

    def _write(self, call: Callable[[], GraphResponse]) -> GraphResponse:
        if self._lock_policy is not None:
            return retry_locked_write(call, self._lock_policy, log=self.session.logger)
        return call()


__all__ = ["INACTIVE", "TableWriter"]
