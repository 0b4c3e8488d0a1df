import io
import os

# Store settings must exist before the application module is imported
os.environ.setdefault("EXCELVIEW_API_KEY", "test-api-key")
os.environ.setdefault("EXCELVIEW_AUTH_DOMAIN", "test.example.com")
os.environ.setdefault("EXCELVIEW_PROJECT_ID", "excelview-test")
os.environ.setdefault("EXCELVIEW_APP_ID", "1:test:web:app")
os.environ.setdefault("EXCELVIEW_MESSAGING_SENDER_ID", "123456")
os.environ.setdefault("EXCELVIEW_DATABASE_URL", "sqlite://")
os.environ.setdefault("EXCELVIEW_SETTLE_DELAY", "0")

import datetime

import pytest
from openpyxl import Workbook

from excelview.config import Settings
from excelview.database import build_engine, build_session_factory, create_tables
from excelview.errors import PermissionDeniedError, WriteError
from excelview.models.records import CommittedTimestamp, FileRecord
from excelview.services.table_store import SqlTableStore, TableStore, file_path


class RecordingStore(TableStore):
    """In-memory store that logs every call and can fail chosen calls.

    `fail_on` maps an operation name to the 1-based call number that fails.
    """

    def __init__(self, fail_on=None, deny=False):
        self.fail_on = dict(fail_on or {})
        self.deny = deny
        self.calls = []
        self.files = {}
        self.rows = {}
        self._counts = {}
        self._clock = datetime.datetime(2024, 1, 1)

    def _record(self, operation, uid, file_id, payload=None):
        self.calls.append((operation, file_id, payload))
        self._counts[operation] = self._counts.get(operation, 0) + 1
        if self._counts[operation] == self.fail_on.get(operation):
            error = PermissionDeniedError if self.deny else WriteError
            raise error(file_path(uid, file_id), operation, {"records": len(payload or [])})

    def calls_to(self, operation):
        return [call for call in self.calls if call[0] == operation]

    async def create_file(self, uid, file_id, file_name, headers):
        self._record("create_file", uid, file_id)
        self._clock += datetime.timedelta(seconds=1)
        record = FileRecord(file_id, file_name, list(headers), CommittedTimestamp(self._clock))
        self.files[file_id] = (uid, record)
        self.rows[file_id] = {}
        return record

    async def write_row_batch(self, uid, file_id, rows):
        self._record("write_row_batch", uid, file_id, list(rows))
        for row in rows:
            self.rows[file_id][row.id] = row

    async def list_files(self, uid):
        records = [record for owner, record in self.files.values() if owner == uid]
        return sorted(records, key=lambda r: r.upload_date.sort_key(), reverse=True)

    async def get_file(self, uid, file_id):
        owner, record = self.files.get(file_id, (None, None))
        return record if owner == uid else None

    async def list_rows(self, uid, file_id):
        self.calls.append(("list_rows", file_id, None))
        return sorted(self.rows.get(file_id, {}).values(), key=lambda r: r.row_index)

    async def delete_row_batch(self, uid, file_id, row_ids):
        self._record("delete_row_batch", uid, file_id, list(row_ids))
        for row_id in row_ids:
            self.rows[file_id].pop(row_id, None)

    async def delete_file(self, uid, file_id):
        self._record("delete_file", uid, file_id)
        self.files.pop(file_id, None)
        self.rows.pop(file_id, None)


@pytest.fixture
def sql_store():
    engine = build_engine("sqlite://")
    create_tables(engine)
    yield SqlTableStore(build_session_factory(engine))
    engine.dispose()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        api_key="test-api-key",
        auth_domain="test.example.com",
        project_id="excelview-test",
        app_id="1:test:web:app",
        messaging_sender_id="123456",
        database_url=f"sqlite:///{tmp_path / 'excelview.db'}",
        settle_delay=0.0,
    )


@pytest.fixture
def client(settings):
    from fastapi.testclient import TestClient

    from excelview.main import create_app

    with TestClient(create_app(settings)) as test_client:
        yield test_client


def make_workbook(rows, extra_sheet=None):
    """Build .xlsx bytes whose first sheet holds `rows`"""
    wb = Workbook()
    ws = wb.active
    ws.title = "Data"
    for row in rows:
        ws.append(row)
    if extra_sheet is not None:
        other = wb.create_sheet("Other")
        for row in extra_sheet:
            other.append(row)
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()
