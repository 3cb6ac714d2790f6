"""Locate table rows by an integer business key."""
from __future__ import annotations

from typing import Any, List, Optional, Sequence

from .errors import SchemaError
from .schema import NOT_FOUND, resolve_header_map, table_url
from .session import SessionContext


def coerce_key(value: Any) -> Optional[int]:
    """Coerce a cell or key to ``int``; ``None`` when it is not numeric."""

    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return None
    return int(number) if number.is_integer() else None


def _first_cell(cell: Any) -> Any:
    # column values arrive as single-item rows: [["schedule_id"], [10], ...]
    if isinstance(cell, (list, tuple)):
        return cell[0] if cell else None
    return cell


def match_index(values: Sequence[Any], key: Any) -> int:
    """Return the zero-based position of ``key`` among ``values`` or ``-1``."""

    wanted = coerce_key(key)
    if wanted is None:
        raise SchemaError(f"Key {key!r} is not numeric")
    for position, cell in enumerate(values):
        if coerce_key(_first_cell(cell)) == wanted:
            return position
    return NOT_FOUND


def find_row_index(session: SessionContext, column_name: str, key: Any) -> int:
    """Return the data-row index whose ``column_name`` cell equals ``key``, else ``-1``."""

    header_map = resolve_header_map(session)
    column_index = header_map.index_of(column_name)
    if column_index == NOT_FOUND:
        session.logger.debug("Column %s not found in %r", column_name, header_map)
        raise SchemaError(f"Column {column_name} not found in the table")

    response = session.client.get(f"{table_url(session)}/columns/itemAt(index={column_index})?$select=values")
    values = response.get("values") or []
    # first cell is the header
    return match_index(list(values)[1:], key)


def fetch_row_values(session: SessionContext, row_index: int) -> List[Any]:
    """Return the cell values of the data row at ``row_index``."""

    if row_index < 0:
        raise ValueError("Row index must be >= 0")
    response = session.client.get(f"{table_url(session)}/rows/itemAt(index={row_index})?$select=values")
    values = response.get("values") or []
    if not values or not isinstance(values[0], list):
        raise SchemaError(f"Row {row_index} returned no values")
    return list(values[0])


__all__ = ["coerce_key", "fetch_row_values", "find_row_index", "match_index"]
