import abc
import logging
from typing import List, Optional, Sequence

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from excelview.database import StoredFile, StoredRow
from excelview.errors import PermissionDeniedError, WriteError
from excelview.models.records import CommittedTimestamp, FileRecord, RowRecord

logger = logging.getLogger(__name__)

# Hard ceiling of records in one atomic store operation
STORE_BATCH_LIMIT = 500


def file_path(uid: str, file_id: str) -> str:
    return f"users/{uid}/excelFiles/{file_id}"


def rows_path(uid: str, file_id: str) -> str:
    return f"{file_path(uid, file_id)}/rows"


class TableStore(abc.ABC):
    """Per-user store of file metadata and row records.

    Callers are responsible for checking that a principal is present; the
    store only checks that the principal owns what it touches.
    """

    @abc.abstractmethod
    async def create_file(self, uid: str, file_id: str, file_name: str, headers: List[str]) -> FileRecord:
        ...

    @abc.abstractmethod
    async def write_row_batch(self, uid: str, file_id: str, rows: Sequence[RowRecord]) -> None:
        ...

    @abc.abstractmethod
    async def list_files(self, uid: str) -> List[FileRecord]:
        ...

    @abc.abstractmethod
    async def get_file(self, uid: str, file_id: str) -> Optional[FileRecord]:
        ...

    @abc.abstractmethod
    async def list_rows(self, uid: str, file_id: str) -> List[RowRecord]:
        ...

    @abc.abstractmethod
    async def delete_row_batch(self, uid: str, file_id: str, row_ids: Sequence[str]) -> None:
        ...

    @abc.abstractmethod
    async def delete_file(self, uid: str, file_id: str) -> None:
        ...


def _to_file_record(stored: StoredFile) -> FileRecord:
    return FileRecord(
        id=stored.id,
        file_name=stored.file_name,
        headers=list(stored.headers or []),
        upload_date=CommittedTimestamp(stored.upload_date),
    )


def _to_row_record(stored: StoredRow) -> RowRecord:
    return RowRecord(
        id=stored.id,
        excel_file_id=stored.excel_file_id,
        row_index=stored.row_index,
        column_a=stored.column_a,
        column_b=stored.column_b,
        column_c=stored.column_c,
        column_d=stored.column_d,
        column_e=stored.column_e,
    )


class SqlTableStore(TableStore):
    """Table store backed by SQLAlchemy; each batch is one transaction"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def _check_owner(self, db: Session, uid: str, file_id: str, operation: str, payload_shape=None) -> StoredFile:
        stored = db.get(StoredFile, file_id)
        if stored is None or stored.owner_uid != uid:
            raise PermissionDeniedError(file_path(uid, file_id), operation, payload_shape)
        return stored

    # Blocking implementations, run on the threadpool by the async methods

    def _create_file(self, uid, file_id, file_name, headers):
        payload_shape = {"fields": ["fileName", "headers", "uploadDate"], "headers": len(headers)}
        with self.session_factory() as db:
            if db.get(StoredFile, file_id) is not None:
                raise PermissionDeniedError(file_path(uid, file_id), "create", payload_shape)
            stored = StoredFile(id=file_id, owner_uid=uid, file_name=file_name, headers=list(headers))
            try:
                db.add(stored)
                db.commit()
                db.refresh(stored)
            except SQLAlchemyError as e:
                db.rollback()
                raise WriteError(file_path(uid, file_id), "create", payload_shape, str(e)) from e
            return _to_file_record(stored)

    def _write_row_batch(self, uid, file_id, rows):
        payload_shape = {"records": len(rows)}
        path = rows_path(uid, file_id)
        if len(rows) > STORE_BATCH_LIMIT:
            raise WriteError(path, "batch-write", payload_shape,
                             f"Batch of {len(rows)} exceeds the limit of {STORE_BATCH_LIMIT}")
        with self.session_factory() as db:
            self._check_owner(db, uid, file_id, "batch-write", payload_shape)
            try:
                db.add_all([
                    StoredRow(
                        id=row.id,
                        excel_file_id=file_id,
                        owner_uid=uid,
                        row_index=row.row_index,
                        column_a=row.column_a,
                        column_b=row.column_b,
                        column_c=row.column_c,
                        column_d=row.column_d,
                        column_e=row.column_e,
                    )
                    for row in rows
                ])
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise WriteError(path, "batch-write", payload_shape, str(e)) from e

    def _list_files(self, uid):
        with self.session_factory() as db:
            stored = (
                db.query(StoredFile)
                .filter(StoredFile.owner_uid == uid)
                .order_by(StoredFile.upload_date.desc())
                .all()
            )
            return [_to_file_record(f) for f in stored]

    def _get_file(self, uid, file_id):
        with self.session_factory() as db:
            stored = db.get(StoredFile, file_id)
            if stored is None or stored.owner_uid != uid:
                return None
            return _to_file_record(stored)

    def _list_rows(self, uid, file_id):
        with self.session_factory() as db:
            stored = (
                db.query(StoredRow)
                .filter(StoredRow.excel_file_id == file_id, StoredRow.owner_uid == uid)
                .order_by(StoredRow.row_index.asc())
                .all()
            )
            return [_to_row_record(r) for r in stored]

    def _delete_row_batch(self, uid, file_id, row_ids):
        payload_shape = {"records": len(row_ids)}
        path = rows_path(uid, file_id)
        if len(row_ids) > STORE_BATCH_LIMIT:
            raise WriteError(path, "batch-delete", payload_shape,
                             f"Batch of {len(row_ids)} exceeds the limit of {STORE_BATCH_LIMIT}")
        with self.session_factory() as db:
            self._check_owner(db, uid, file_id, "batch-delete", payload_shape)
            try:
                (
                    db.query(StoredRow)
                    .filter(StoredRow.excel_file_id == file_id, StoredRow.id.in_(list(row_ids)))
                    .delete(synchronize_session=False)
                )
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise WriteError(path, "batch-delete", payload_shape, str(e)) from e

    def _delete_file(self, uid, file_id):
        with self.session_factory() as db:
            stored = self._check_owner(db, uid, file_id, "delete")
            try:
                db.delete(stored)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise WriteError(file_path(uid, file_id), "delete", None, str(e)) from e

    async def create_file(self, uid, file_id, file_name, headers):
        return await run_in_threadpool(self._create_file, uid, file_id, file_name, headers)

    async def write_row_batch(self, uid, file_id, rows):
        await run_in_threadpool(self._write_row_batch, uid, file_id, list(rows))

    async def list_files(self, uid):
        return await run_in_threadpool(self._list_files, uid)

    async def get_file(self, uid, file_id):
        return await run_in_threadpool(self._get_file, uid, file_id)

    async def list_rows(self, uid, file_id):
        return await run_in_threadpool(self._list_rows, uid, file_id)

    async def delete_row_batch(self, uid, file_id, row_ids):
        await run_in_threadpool(self._delete_row_batch, uid, file_id, list(row_ids))

    async def delete_file(self, uid, file_id):
        await run_in_threadpool(self._delete_file, uid, file_id)
