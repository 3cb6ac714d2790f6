"""Worksheet, table and header discovery for a bound workbook.

Every resolver memoises its result on the :class:`SessionContext` only after a
successful lookup, so a :class:`NotFoundError` never poisons the session and
the next call simply asks the remote service again.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, Iterator, List, Mapping

from .errors import NotFoundError
from .session import SessionContext

VISIBLE = "Visible"
NOT_FOUND = -1


class HeaderMap(Mapping[str, int]):
    """Column name → zero-based column index of a table."""

    def __init__(self, columns: Mapping[str, int]) -> None:
        self._columns: Dict[str, int] = dict(columns)

    @classmethod
    def from_columns(cls, columns: Iterable[Any]) -> "HeaderMap":
        mapping: Dict[str, int] = {}
        for column in columns:
            if not isinstance(column, Mapping):
                continue
            name = column.get("name")
            if name is None or not str(name).strip():
                continue
            try:
                mapping[str(name)] = int(column.get("index"))
            except (TypeError, ValueError):
                continue
        return cls(mapping)

    def index_of(self, name: str) -> int:
        """Return the index of ``name`` or ``-1`` when the table has no such column."""

        return self._columns.get(name, NOT_FOUND)

    def names(self) -> List[str]:
        return [name for name, _ in sorted(self._columns.items(), key=lambda item: item[1])]

    def __getitem__(self, name: str) -> int:
        return self._columns[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._columns)

    def __len__(self) -> int:
        return len(self._columns)

    def __repr__(self) -> str:
        return f"HeaderMap({self._columns!r})"


def workbook_url(session: SessionContext) -> str:
    return f"{session.require_file_path()}/workbook"


def resolve_worksheet_id(session: SessionContext) -> str:
    """Return the first visible worksheet, honouring a store-level override."""

    if session.worksheet_id:
        return session.worksheet_id
    if session.store is not None and session.store.sheet_id:
        session.worksheet_id = session.store.sheet_id
        return session.worksheet_id

    response = session.client.get(f"{workbook_url(session)}/worksheets?$select=id,visibility")
    visible = [
        sheet
        for sheet in response.value_list()
        if isinstance(sheet, Mapping) and sheet.get("visibility") == VISIBLE and sheet.get("id")
    ]
    if not visible:
        session.logger.debug("No visible worksheet in %r", response.payload)
        raise NotFoundError("No visible worksheet found in the workbook.")
    session.worksheet_id = str(visible[0]["id"])
    return session.worksheet_id


def resolve_table_id(session: SessionContext) -> str:
    """Return the first table on the resolved worksheet."""

    if session.table_id:
        return session.table_id
    worksheet_id = resolve_worksheet_id(session)
    response = session.client.get(f"{workbook_url(session)}/worksheets/{worksheet_id}/tables?$select=id")
    tables = [table for table in response.value_list() if isinstance(table, Mapping) and table.get("id")]
    if not tables:
        session.logger.debug("No table on worksheet %s: %r", worksheet_id, response.payload)
        raise NotFoundError("No table found on the worksheet.")
    session.table_id = str(tables[0]["id"])
    return session.table_id


def table_url(session: SessionContext) -> str:
    """Return the REST address of the resolved table."""

    table_id = resolve_table_id(session)
    return f"{workbook_url(session)}/worksheets/{session.worksheet_id}/tables/{table_id}"


def resolve_header_map(session: SessionContext) -> HeaderMap:
    """Return the header map of the resolved table."""

    if session.header_map is not None:
        return session.header_map
    response = session.client.get(f"{table_url(session)}/columns?$select=index,name")
    header_map = HeaderMap.from_columns(response.value_list())
    if not header_map:
        session.logger.debug("No columns returned for table: %r", response.payload)
        raise NotFoundError("No columns found in the table.")
    session.header_map = header_map
    return header_map


__all__ = [
    "HeaderMap",
    "NOT_FOUND",
    "resolve_header_map",
    "resolve_table_id",
    "resolve_worksheet_id",
    "table_url",
    "workbook_url",
]
