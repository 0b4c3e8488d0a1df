from typing import List, Sequence

from excelview.models.records import COLUMN_FIELDS, RowRecord


def project_row(header_count: int, row: RowRecord) -> List[str]:
    count = max(0, min(header_count, len(COLUMN_FIELDS)))
    cells = []
    for name in COLUMN_FIELDS[:count]:
        value = getattr(row, name, None)
        cells.append("" if value is None else str(value))
    return cells


def project_rows(headers: Sequence[str], rows: Sequence[RowRecord]) -> List[List[str]]:
    """Read stored rows back as display rows with one cell per declared header"""
    return [project_row(len(headers), row) for row in rows]
