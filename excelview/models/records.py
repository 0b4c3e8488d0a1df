import datetime
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple, Union

COLUMN_COUNT = 5
COLUMN_FIELDS = ("column_a", "column_b", "column_c", "column_d", "column_e")


@dataclass(frozen=True)
class PendingTimestamp:
    """Upload date of a record the store has not acknowledged yet"""

    def sort_key(self) -> Tuple[int, datetime.datetime]:
        # Pending writes are newer than anything already committed
        return (1, datetime.datetime.min)


@dataclass(frozen=True)
class CommittedTimestamp:
    at: datetime.datetime

    def sort_key(self) -> Tuple[int, datetime.datetime]:
        at = self.at
        if at.tzinfo is not None:
            at = at.astimezone(datetime.timezone.utc).replace(tzinfo=None)
        return (0, at)


UploadDate = Union[PendingTimestamp, CommittedTimestamp]


@dataclass
class ParsedTable:
    file_name: str
    headers: List[str]
    rows: List[List[str]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)


@dataclass
class FileRecord:
    id: str
    file_name: str
    headers: List[str]
    upload_date: UploadDate = field(default_factory=PendingTimestamp)


@dataclass
class RowRecord:
    id: str
    excel_file_id: str
    row_index: int
    column_a: str = ""
    column_b: str = ""
    column_c: str = ""
    column_d: str = ""
    column_e: str = ""

    @classmethod
    def from_cells(cls, id: str, excel_file_id: str, row_index: int, cells: Sequence[str]) -> "RowRecord":
        """Place a positional row into the five column slots, dropping anything past column E"""
        values = [("" if cell is None else str(cell)) for cell in list(cells)[:COLUMN_COUNT]]
        values += [""] * (COLUMN_COUNT - len(values))
        return cls(id, excel_file_id, row_index, *values)

    @property
    def cells(self) -> List[str]:
        return [getattr(self, name) for name in COLUMN_FIELDS]


def sort_by_recency(files: Sequence[FileRecord]) -> List[FileRecord]:
    """Newest first, pending records ahead of committed ones"""
    return sorted(files, key=lambda f: f.upload_date.sort_key(), reverse=True)
