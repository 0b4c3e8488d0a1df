"""
Bulk synchronisation of imported tables with the table store.

Uploads write the file record first and then the rows in sequential chunks
of at most MAX_BATCH_SIZE, one atomic batch per chunk. Removal runs the same
way in reverse: row chunks first, the file record last. A failed chunk stops
the whole operation; whatever was committed before it stays in place.
"""
import asyncio
import logging
import math
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterator, List, Optional, Sequence, TypeVar

from excelview.errors import (
    AuthRequiredError,
    DeleteFailedError,
    UploadFailedError,
    WriteError,
    report_store_error,
)
from excelview.models.records import ParsedTable, RowRecord
from excelview.services.table_store import TableStore

logger = logging.getLogger(__name__)

# One below the store's hard limit of 500
MAX_BATCH_SIZE = 499

SETUP_PROGRESS = 5
ROWS_PROGRESS_SPAN = 90
MAX_ROWS_PROGRESS = 95
COMPLETE_PROGRESS = 100

ProgressCallback = Callable[[int], Awaitable[None]]
T = TypeVar("T")


@dataclass
class UploadResult:
    file_id: str
    row_count: int


def new_id() -> str:
    return uuid.uuid4().hex


def require_principal(uid: Optional[str]) -> str:
    """Fail before any store call when nobody is signed in"""
    if not uid or not str(uid).strip():
        raise AuthRequiredError()
    return uid


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    if size < 1:
        raise ValueError("chunk size must be at least 1")
    for start in range(0, len(items), size):
        yield items[start:start + size]


def compute_progress(written: int, total: int) -> int:
    """Progress after `written` of `total` rows are stored, between 5 and 95"""
    if total <= 0:
        return MAX_ROWS_PROGRESS
    proportional = math.floor(written / total * ROWS_PROGRESS_SPAN + 0.5)
    return min(MAX_ROWS_PROGRESS, SETUP_PROGRESS + proportional)


async def _report(progress_callback: Optional[ProgressCallback], value: int):
    if progress_callback is not None:
        await progress_callback(value)


async def upload_table(
    store: TableStore,
    uid: Optional[str],
    table: ParsedTable,
    progress_callback: Optional[ProgressCallback] = None,
    batch_size: int = MAX_BATCH_SIZE,
    settle_delay: float = 0.0,
) -> UploadResult:
    """Write a parsed table to the store as a new file.

    Args:
        store: Table store client
        uid: Signed-in principal
        table: Headers and rows to persist
        progress_callback: Optional coroutine called with a percentage
        batch_size: Rows per atomic batch, at most MAX_BATCH_SIZE
        settle_delay: Seconds to wait after reporting 100 before returning

    Returns:
        UploadResult with the new file id and the number of rows written

    Raises:
        AuthRequiredError: no principal, nothing was written
        UploadFailedError: a store write failed; chained to the WriteError
    """
    uid = require_principal(uid)
    if not 1 <= batch_size <= MAX_BATCH_SIZE:
        raise ValueError(f"batch_size must be between 1 and {MAX_BATCH_SIZE}")

    file_id = new_id()
    total = len(table.rows)
    logger.info("Uploading %s as %s (%d rows)", table.file_name, file_id, total)

    await _report(progress_callback, 0)
    try:
        await store.create_file(uid, file_id, table.file_name, list(table.headers))
    except WriteError as e:
        report_store_error(e)
        raise UploadFailedError(file_id, 0) from e
    await _report(progress_callback, SETUP_PROGRESS)

    written = 0
    for chunk in chunked(table.rows, batch_size):
        batch: List[RowRecord] = [
            RowRecord.from_cells(new_id(), file_id, written + offset, cells)
            for offset, cells in enumerate(chunk)
        ]
        try:
            await store.write_row_batch(uid, file_id, batch)
        except WriteError as e:
            report_store_error(e)
            logger.error("Upload of %s stopped after %d of %d rows", file_id, written, total)
            raise UploadFailedError(file_id, written) from e
        written += len(batch)
        logger.debug("Wrote rows %d-%d of %s", written - len(batch), written - 1, file_id)
        await _report(progress_callback, compute_progress(written, total))

    await _report(progress_callback, COMPLETE_PROGRESS)
    if settle_delay > 0:
        await asyncio.sleep(settle_delay)

    logger.info("Uploaded %s: %d rows", file_id, written)
    return UploadResult(file_id=file_id, row_count=written)


async def remove_file(
    store: TableStore,
    uid: Optional[str],
    file_id: str,
    batch_size: int = MAX_BATCH_SIZE,
) -> int:
    """Delete a file and all of its rows, returning the number of rows removed.

    The file record is deleted only after every row chunk succeeded, so a
    failed removal can be retried against the remaining rows.
    """
    uid = require_principal(uid)
    if not 1 <= batch_size <= MAX_BATCH_SIZE:
        raise ValueError(f"batch_size must be between 1 and {MAX_BATCH_SIZE}")

    rows = await store.list_rows(uid, file_id)
    row_ids = [row.id for row in rows]
    logger.info("Deleting %s (%d rows)", file_id, len(row_ids))

    deleted = 0
    for chunk in chunked(row_ids, batch_size):
        try:
            await store.delete_row_batch(uid, file_id, list(chunk))
        except WriteError as e:
            report_store_error(e)
            raise DeleteFailedError(file_id, deleted) from e
        deleted += len(chunk)

    try:
        await store.delete_file(uid, file_id)
    except WriteError as e:
        report_store_error(e)
        raise DeleteFailedError(file_id, deleted) from e

    logger.info("Deleted %s", file_id)
    return deleted
