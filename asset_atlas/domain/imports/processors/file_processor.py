"""
Decoding of uploaded asset spreadsheets (CSV or Excel) into flat string rows.
"""
import csv
import io
import logging
from dataclasses import dataclass, field
from io import StringIO
from typing import Dict, List, Optional

import pandas as pd

from asset_atlas.domain.imports.errors import (
    CorruptFile,
    DuplicateColumnHeaders,
    EmptyFile,
    UnsupportedFileType,
)

logger = logging.getLogger(__name__)

CSV_MEDIA_TYPES = {"text/csv", "application/csv", "text/plain"}
EXCEL_MEDIA_TYPES = {
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",  # .xlsx
    "application/vnd.ms-excel",  # .xls
}


@dataclass
class DecodedFile:
    rows: List[Dict[str, str]]
    headers: List[str]
    file_type: str
    blank_rows_skipped: int = 0
    warnings: List[str] = field(default_factory=list)


def detect_file_type(declared_media_type: Optional[str], file_name: Optional[str]) -> str:
    """
    Decide how to parse an upload.

    The file extension wins; the declared media type is only consulted when the
    extension is missing or unknown.

    Returns:
        'csv' or 'excel'

    Raises:
        UnsupportedFileType: when neither hint names a supported format.
    """
    extension = ""
    if file_name and "." in file_name:
        extension = file_name.rsplit(".", 1)[-1].lower()

    if extension == "csv":
        return "csv"
    if extension in ("xlsx", "xls"):
        return "excel"

    media_type = (declared_media_type or "").split(";")[0].strip().lower()
    if media_type in CSV_MEDIA_TYPES:
        return "csv"
    if media_type in EXCEL_MEDIA_TYPES:
        return "excel"

    raise UnsupportedFileType()


def _decode_text(file_content: bytes) -> str:
    try:
        # utf-8-sig drops the BOM Excel adds when saving "CSV UTF-8".
        return file_content.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise CorruptFile(f"CSV is not valid UTF-8: {exc}") from exc


def _read_csv_rows(file_content: bytes) -> List[List[str]]:
    text_content = _decode_text(file_content)
    try:
        return list(csv.reader(StringIO(text_content)))
    except csv.Error as exc:
        raise CorruptFile(f"Could not parse CSV: {exc}") from exc


def _is_blank(cells: List[str]) -> bool:
    return all(not (cell or "").strip() for cell in cells)


def _find_header_row(grid: List[List[str]]):
    """
    Return (index, headers) for the first non-blank row of a sheet.

    Raises:
        EmptyFile: no non-blank row at all.
        DuplicateColumnHeaders: a non-empty header appears more than once.
    """
    header_index = next((i for i, row in enumerate(grid) if not _is_blank(row)), None)
    if header_index is None:
        raise EmptyFile()

    headers = [(cell or "").strip() for cell in grid[header_index]]
    seen = set()
    repeated = []
    for header in headers:
        if header and header in seen and header not in repeated:
            repeated.append(header)
        seen.add(header)
    if repeated:
        raise DuplicateColumnHeaders(f"Duplicate column headers: {', '.join(repeated)}")

    return header_index, headers


def _grid_to_records(grid: List[List[str]], file_type: str) -> DecodedFile:
    """
    Turn a sheet of string cells into header-keyed records.

    Short rows simply lack the trailing keys; cells under an empty header or
    beyond the header width are ignored.
    """
    header_index, headers = _find_header_row(grid)

    records: List[Dict[str, str]] = []
    skipped = 0
    ignored_cells = False
    for raw in grid[header_index + 1:]:
        if _is_blank(raw):
            skipped += 1
            continue
        record = {}
        for position, cell in enumerate(raw):
            value = (cell or "").strip()
            header = headers[position] if position < len(headers) else ""
            if not header:
                ignored_cells = ignored_cells or bool(value)
                continue
            record[header] = value
        records.append(record)

    warnings = []
    if ignored_cells:
        warnings.append("Some cells have no column header; those cells were ignored.")

    return DecodedFile(
        rows=records,
        headers=headers,
        file_type=file_type,
        blank_rows_skipped=skipped,
        warnings=warnings,
    )


def process_csv(file_content: bytes) -> DecodedFile:
    """Parse a CSV upload. The first non-blank line is the header row."""
    decoded = _grid_to_records(_read_csv_rows(file_content), "csv")
    logger.info("Processed CSV with header: %d rows, columns: %s", len(decoded.rows), decoded.headers)
    return decoded


def _cell_to_string(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        if pd.isna(value):
            return ""
        # Whole numbers typed into Excel come back as floats (e.g. 1001.0).
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def _read_excel_grid(file_content: bytes) -> List[List[str]]:
    # header=None: the header row is located the same way as for CSV, and
    # pandas does not rename repeated headers behind our back.
    try:
        df = pd.read_excel(
            io.BytesIO(file_content),
            sheet_name=0,
            header=None,
            dtype=object,
            keep_default_na=False,
        )
    except Exception as e:
        raise CorruptFile(f"Could not read Excel file: {e}") from e

    return [[_cell_to_string(value) for value in row] for row in df.values.tolist()]


def process_excel(file_content: bytes) -> DecodedFile:
    """Parse the first sheet of an Excel workbook (.xlsx or legacy .xls), coercing every cell to a string."""
    decoded = _grid_to_records(_read_excel_grid(file_content), "excel")
    logger.info("Processed Excel first sheet: %d rows, columns: %s", len(decoded.rows), decoded.headers)
    return decoded


def decode_upload(file_content: bytes, declared_media_type: Optional[str], file_name: Optional[str]) -> DecodedFile:
    """
    Convert an uploaded buffer into ordered flat rows.

    Raises:
        UnsupportedFileType, CorruptFile, DuplicateColumnHeaders, EmptyFile
    """
    file_type = detect_file_type(declared_media_type, file_name)

    if file_type == "csv":
        decoded = process_csv(file_content)
    else:
        decoded = process_excel(file_content)

    if not decoded.rows:
        raise EmptyFile()

    return decoded


def extract_headers(file_content: bytes, declared_media_type: Optional[str], file_name: Optional[str]) -> List[str]:
    """Return the header row only, for mapping previews."""
    file_type = detect_file_type(declared_media_type, file_name)

    if file_type == "csv":
        grid = _read_csv_rows(file_content)
    else:
        grid = _read_excel_grid(file_content)

    try:
        _, headers = _find_header_row(grid)
    except EmptyFile:
        return []
    return headers
