"""Whole-file variant: download the workbook, edit it locally, upload it back.

This path predates the table API. The workbook is fetched through its signed
download URL, edited with :mod:`openpyxl` and uploaded again with the
``Prefer: bypass-shared-lock`` header. Uploads go through
:func:`~salesrule_sync.lock_retry.start_locked_write`, so a locked file is
retried in the background and the caller receives the task handle. A stale
lock may instead be cleared by deleting the file and uploading the complete
workbook again.
"""
from __future__ import annotations

import io
import logging
from typing import Any, Iterable, List, Mapping, Optional, Tuple, Union

from openpyxl import Workbook, load_workbook
from openpyxl.worksheet.worksheet import Worksheet

from .errors import NotFoundError, SchemaError, TransportError
from .graph_client import XLSX_CONTENT_TYPE, GraphClient
from .lock_retry import LockedWriteTask, LockRetryPolicy, rewrite_after_unlock, start_locked_write
from .record import KEY_FIELD, STATUS_FIELD, Record, map_record
from .row_locator import coerce_key
from .schema import NOT_FOUND
from .settings import SyncSettings

logger = logging.getLogger(__name__)

DOWNLOAD_URL_KEY = "@microsoft.graph.downloadUrl"
UPLOAD_HEADERS = {
    "Content-Type": XLSX_CONTENT_TYPE,
    "Prefer": "bypass-shared-lock",
}

RecordLike = Union[Record, Mapping[str, Any]]


# ---------------------------------------------------------------------------
# Legacy file addressing
# ---------------------------------------------------------------------------
def legacy_directory_path(settings: SyncSettings, content_dir: str) -> str:
    root = settings.directory_path_from_root.strip("/")
    folder = f"{content_dir}_promotions"
    return f"{root}/{folder}" if root else folder


def legacy_file_name(site_code: str) -> str:
    return f"{site_code}-promotions.xlsx"


def legacy_file_path(settings: SyncSettings, site_id: str, content_dir: str, site_code: str) -> str:
    directory = legacy_directory_path(settings, content_dir)
    return f"{settings.base_url}/sites/{site_id}/drive/root:/{directory}/{legacy_file_name(site_code)}"


# ---------------------------------------------------------------------------
# Transfer
# ---------------------------------------------------------------------------
def download_workbook(client: GraphClient, file_path: str) -> bytes:
    try:
        response = client.get(f"{file_path}?$select={DOWNLOAD_URL_KEY}")
    except TransportError as exc:
        if exc.status_code == 404:
            raise NotFoundError(f"Workbook not found: {file_path}") from exc
        raise
    download_url = response.get(DOWNLOAD_URL_KEY)
    if not download_url:
        raise NotFoundError(f"No download URL returned for {file_path}")
    data = client.download(download_url)
    if not data:
        raise NotFoundError(f"Downloaded workbook is empty: {file_path}")
    return data


def upload_workbook(
    client: GraphClient,
    file_path: str,
    data: bytes,
    *,
    policy: Optional[LockRetryPolicy] = None,
    clear_stale_locks: bool = False,
    log: Optional[logging.Logger] = None,
) -> LockedWriteTask:
    """Upload ``data`` in the background, retrying while the file is locked.

    With ``clear_stale_locks`` a locked file is deleted and the complete
    workbook in ``data`` is uploaded again in its place.
    """

    log = log or logger
    url = f"{file_path}:/content"

    def put() -> Any:
        return client.put(url, data, headers=UPLOAD_HEADERS)

    if not clear_stale_locks:
        return start_locked_write(put, policy, log=log)
    return start_locked_write(
        lambda: rewrite_after_unlock(put, lambda: delete_if_locked(client, file_path, log=log), log=log),
        policy,
        log=log,
    )


def delete_if_locked(client: GraphClient, file_path: str, *, log: Optional[logging.Logger] = None) -> bool:
    """Delete a locked file so it can be written again; ``False`` on failure."""

    log = log or logger
    try:
        client.delete(file_path, headers={"Prefer": "bypass-shared-lock"})
    except TransportError as exc:
        log.debug("Error deleting the locked file: %s", exc)
        return False
    return True


def load_workbook_bytes(data: bytes) -> Workbook:
    return load_workbook(io.BytesIO(data))


def workbook_to_bytes(workbook: Workbook) -> bytes:
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# Worksheet editing
# ---------------------------------------------------------------------------
def header_index(worksheet: Worksheet, name: str) -> int:
    """Return the 1-based column of ``name`` in the header row, or ``-1``."""

    for cell in next(worksheet.iter_rows(min_row=1, max_row=1), ()):
        if cell.value == name:
            return cell.column
    return NOT_FOUND


def _require_column(worksheet: Worksheet, name: str) -> int:
    column = header_index(worksheet, name)
    if column == NOT_FOUND:
        raise SchemaError(f'Column "{name}" not found in the worksheet')
    return column


def find_row(worksheet: Worksheet, key: Any, column: int) -> Optional[int]:
    """Return the 1-based row number whose ``column`` cell equals ``key``."""

    wanted = coerce_key(key)
    if wanted is None:
        raise SchemaError(f"Key {key!r} is not numeric")
    for row_number in range(2, worksheet.max_row + 1):
        if coerce_key(worksheet.cell(row=row_number, column=column).value) == wanted:
            return row_number
    return None


def upsert_rows(
    worksheet: Worksheet,
    records: Iterable[RecordLike],
    locale_code: Optional[str] = None,
    *,
    log: Optional[logging.Logger] = None,
) -> Tuple[int, int]:
    """Update matching rows and append the rest; returns ``(updated, added)``."""

    log = log or logger
    key_column = _require_column(worksheet, KEY_FIELD)
    updated = added = 0
    for item in records:
        record = item if isinstance(item, Record) else Record.from_mapping(item)
        names = [name for name, _ in record.present_fields()]
        vector = map_record(record, locale_code, log=log)
        columns = {name: header_index(worksheet, name) for name in names}
        row_number = find_row(worksheet, record.get(KEY_FIELD), key_column)
        if row_number is None:
            log.info("..adding row for schedule_id %s", record.get(KEY_FIELD))
            row_number = worksheet.max_row + 1
            added += 1
        else:
            log.info("..updating row for schedule_id %s", record.get(KEY_FIELD))
            updated += 1
        for name, value in zip(names, vector):
            if columns[name] == NOT_FOUND:
                log.debug("Worksheet has no column %s; value skipped", name)
                continue
            worksheet.cell(row=row_number, column=columns[name]).value = value
    return updated, added


def remove_rows(
    worksheet: Worksheet,
    schedule_ids: Iterable[Any],
    *,
    log: Optional[logging.Logger] = None,
) -> int:
    log = log or logger
    key_column = _require_column(worksheet, KEY_FIELD)
    removed = 0
    for schedule_id in schedule_ids:
        row_number = find_row(worksheet, schedule_id, key_column)
        if row_number is None:
            log.info("Can not find row to delete for schedule_id %s", schedule_id)
            continue
        log.info("..deleting row for schedule_id %s", schedule_id)
        worksheet.delete_rows(row_number, 1)
        removed += 1
    return removed


def deactivate_rows(
    worksheet: Worksheet,
    schedule_ids: Iterable[Any],
    *,
    log: Optional[logging.Logger] = None,
) -> List[Any]:
    """Set ``status`` to ``0`` on matching rows; returns the ids not found."""

    log = log or logger
    key_column = _require_column(worksheet, KEY_FIELD)
    status_column = _require_column(worksheet, STATUS_FIELD)
    missing: List[Any] = []
    for schedule_id in schedule_ids:
        row_number = find_row(worksheet, schedule_id, key_column)
        if row_number is None:
            missing.append(schedule_id)
            continue
        worksheet.cell(row=row_number, column=status_column).value = 0
    if missing:
        log.info("No rows to deactivate for schedule_id(s) %s", missing)
    return missing


# ---------------------------------------------------------------------------
# Download → edit → upload
# ---------------------------------------------------------------------------
def update_workbook(
    client: GraphClient,
    file_path: str,
    records: Iterable[RecordLike],
    *,
    locale_code: Optional[str] = None,
    policy: Optional[LockRetryPolicy] = None,
    clear_stale_locks: bool = False,
    log: Optional[logging.Logger] = None,
) -> LockedWriteTask:
    log = log or logger
    workbook = load_workbook_bytes(download_workbook(client, file_path))
    log.info("Workbook fetched: %s", file_path)
    upsert_rows(workbook.worksheets[0], records, locale_code, log=log)
    return upload_workbook(
        client,
        file_path,
        workbook_to_bytes(workbook),
        policy=policy,
        clear_stale_locks=clear_stale_locks,
        log=log,
    )


def remove_from_workbook(
    client: GraphClient,
    file_path: str,
    schedule_ids: Iterable[Any],
    *,
    policy: Optional[LockRetryPolicy] = None,
    clear_stale_locks: bool = False,
    log: Optional[logging.Logger] = None,
) -> LockedWriteTask:
    log = log or logger
    workbook = load_workbook_bytes(download_workbook(client, file_path))
    log.info("Workbook fetched: %s", file_path)
    remove_rows(workbook.worksheets[0], schedule_ids, log=log)
    return upload_workbook(
        client,
        file_path,
        workbook_to_bytes(workbook),
        policy=policy,
        clear_stale_locks=clear_stale_locks,
        log=log,
    )


__all__ = [
    "UPLOAD_HEADERS",
    "deactivate_rows",
    "delete_if_locked",
    "download_workbook",
    "find_row",
    "header_index",
    "legacy_directory_path",
    "legacy_file_name",
    "legacy_file_path",
    "load_workbook_bytes",
    "remove_from_workbook",
    "remove_rows",
    "update_workbook",
    "upload_workbook",
    "workbook_to_bytes",
]
