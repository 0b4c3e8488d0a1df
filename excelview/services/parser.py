import io
import logging
import os
from typing import Any, List

import pandas as pd

from excelview.errors import EmptySheetError, UnreadableFileError
from excelview.models.records import COLUMN_COUNT, ParsedTable

logger = logging.getLogger(__name__)

# Extension -> pandas reader engine
EXCEL_ENGINES = {
    ".xlsx": "openpyxl",
    ".xls": "xlrd",
}
SUPPORTED_EXTENSIONS = tuple(EXCEL_ENGINES) + (".csv",)


def is_supported(file_name: str) -> bool:
    return os.path.splitext(file_name or "")[1].lower() in SUPPORTED_EXTENSIONS


def cell_to_str(value: Any) -> str:
    """Render a cell the way it is shown in the table"""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if pd.isna(value):
            return ""
        if value.is_integer():
            return str(int(value))
        return str(value)
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    return str(value)


def _drop_blank_trailing_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Narrow the frame to the widest row, as a workbook sheet would be"""
    while df.shape[1] > 0 and (df.iloc[:, -1].map(cell_to_str) == "").all():
        df = df.iloc[:, :-1]
    return df


def _read_first_sheet(content: bytes, file_name: str) -> pd.DataFrame:
    extension = os.path.splitext(file_name or "")[1].lower()
    buffer = io.BytesIO(content)

    if extension == ".csv":
        # Ragged rows are cut to columns A-E and blank lines keep their place
        try:
            df = pd.read_csv(
                buffer,
                header=None,
                names=list(range(COLUMN_COUNT)),
                index_col=False,
                dtype=object,
                keep_default_na=False,
                skip_blank_lines=False,
                engine="python",
                on_bad_lines=lambda fields: fields[:COLUMN_COUNT],
            )
        except pd.errors.EmptyDataError:
            return pd.DataFrame()
        return _drop_blank_trailing_columns(df)

    engine = EXCEL_ENGINES.get(extension)
    if engine is None:
        raise UnreadableFileError(file_name, f"unsupported file type '{extension or 'none'}'")

    return pd.read_excel(buffer, sheet_name=0, header=None, dtype=object, engine=engine)


def parse_table(content: bytes, file_name: str) -> ParsedTable:
    """Turn spreadsheet bytes into headers plus rows, limited to columns A-E.

    Only the first sheet is read. The first row becomes the headers and every
    cell is converted to a string, blanks becoming empty strings.
    """
    try:
        df = _read_first_sheet(content, file_name)
    except UnreadableFileError:
        raise
    except Exception as e:
        logger.warning("Could not read %s: %s", file_name, e)
        raise UnreadableFileError(file_name, str(e)) from e

    if df.shape[0] == 0:
        raise EmptySheetError(file_name)

    df = df.iloc[:, :COLUMN_COUNT]
    values: List[List[str]] = [
        [cell_to_str(cell) for cell in row] for row in df.itertuples(index=False, name=None)
    ]

    headers = values[0]
    rows = values[1:]
    logger.info("Parsed %s: %d columns, %d rows", file_name, len(headers), len(rows))
    return ParsedTable(file_name=file_name, headers=headers, rows=rows)
