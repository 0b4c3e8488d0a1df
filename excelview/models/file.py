from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
import datetime

from excelview.models.records import COLUMN_COUNT, FileRecord, CommittedTimestamp


class TableBase(BaseModel):
    file_name: str = Field(..., min_length=1)
    headers: List[str] = Field(default_factory=list, max_length=COLUMN_COUNT)


class TableUpload(TableBase):
    rows: List[List[str]] = Field(default_factory=list)

    @field_validator("rows")
    @classmethod
    def check_row_width(cls, rows):
        for position, row in enumerate(rows):
            if len(row) > COLUMN_COUNT:
                raise ValueError(f"row {position} has more than {COLUMN_COUNT} cells")
        return rows


class TablePreview(TableUpload):
    row_count: int


class FileResponse(TableBase):
    id: str
    upload_date: Optional[datetime.datetime] = None

    @classmethod
    def from_record(cls, record: FileRecord) -> "FileResponse":
        upload_date = None
        if isinstance(record.upload_date, CommittedTimestamp):
            upload_date = record.upload_date.at
        return cls(
            id=record.id,
            file_name=record.file_name,
            headers=record.headers,
            upload_date=upload_date,
        )


class UploadResponse(BaseModel):
    id: str
    file_name: str
    row_count: int


class RowsPage(BaseModel):
    id: str
    file_name: str
    headers: List[str]
    rows: List[List[str]]
    page: int
    page_size: int
    total_pages: int
    total_rows: int
    matching_rows: int
    search: str = ""
