import logging
from typing import List, Optional, Tuple

from fastapi import UploadFile

from excelview.errors import UnreadableFileError
from excelview.models.records import FileRecord, ParsedTable, sort_by_recency
from excelview.services import projector, table_view
from excelview.services.parser import is_supported, parse_table
from excelview.services.sync_engine import require_principal
from excelview.services.table_store import TableStore

logger = logging.getLogger(__name__)


async def read_upload(file: UploadFile) -> ParsedTable:
    """Parse an uploaded spreadsheet without touching the store"""
    if not file or not file.filename or not is_supported(file.filename):
        raise UnreadableFileError(file.filename if file else "", "only .xlsx, .xls and .csv files are allowed")
    content = await file.read()
    return parse_table(content, file.filename)


async def get_files(store: TableStore, uid: Optional[str]) -> List[FileRecord]:
    """Get all files of the user, newest first"""
    files = await store.list_files(require_principal(uid))
    return sort_by_recency(files)


async def get_file(store: TableStore, uid: Optional[str], file_id: str) -> Optional[FileRecord]:
    """Get file by ID"""
    return await store.get_file(require_principal(uid), file_id)


async def get_rows_page(store: TableStore, uid: Optional[str], file: FileRecord,
                        search: str = "", page: int = 1) -> Tuple[table_view.Page, int]:
    """Project the stored rows of a file and return one page of the search result
    together with the unfiltered row count"""
    rows = await store.list_rows(require_principal(uid), file.id)
    display_rows = projector.project_rows(file.headers, rows)
    return table_view.search_and_paginate(display_rows, search, page), len(display_rows)
