"""
Workbook access helpers shared by the format parsers.

Every sheet is materialised once as a list of row lists (0-based row and
column indices, matching the fixed offsets the parsers use). Cell values
come from openpyxl with data_only=True so formula cells read as their
cached results.
"""

import io
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import openpyxl

logger = logging.getLogger(__name__)


class WorkbookImportError(ValueError):
    """Base class for workbook import failures."""

    def __init__(self, message: str, sheet_names: List[str] = None):
        super().__init__(message)
        self.sheet_names = list(sheet_names or [])


class SheetNotFoundError(WorkbookImportError):
    def __init__(self, sheet: str, sheet_names: List[str]):
        super().__init__(
            f"Required sheet '{sheet}' not found. Sheets: {', '.join(sheet_names)}",
            sheet_names,
        )
        self.sheet = sheet


class UnknownWorkbookFormatError(WorkbookImportError):
    def __init__(self, sheet_names: List[str]):
        super().__init__(
            f"Unknown Excel format. Sheets: {', '.join(sheet_names)}",
            sheet_names,
        )


@dataclass
class WorkbookData:
    sheet_names: List[str]
    sheets: Dict[str, List[List[Any]]] = field(default_factory=dict)

    def find(self, *candidates: str) -> Optional[str]:
        """First sheet whose name matches a candidate (case/whitespace-insensitive)."""
        by_key = {normalize_text(name): name for name in self.sheet_names}
        for candidate in candidates:
            name = by_key.get(normalize_text(candidate))
            if name is not None:
                return name
        return None

    def rows(self, *candidates: str) -> List[List[Any]]:
        name = self.find(*candidates)
        if name is None:
            raise SheetNotFoundError(candidates[0], self.sheet_names)
        return self.sheets[name]


def load_workbook_bytes(file_bytes: bytes) -> WorkbookData:
    """Read an .xlsx payload. Raises WorkbookImportError if it is not a readable workbook."""
    try:
        wb = openpyxl.load_workbook(io.BytesIO(file_bytes), data_only=True, read_only=True)
    except Exception as e:
        logger.error(f"Workbook open error: {e}")
        raise WorkbookImportError(f"Failed to read workbook: {str(e)}")

    data = WorkbookData(sheet_names=list(wb.sheetnames))
    for ws in wb.worksheets:
        data.sheets[ws.title] = [list(row) for row in ws.iter_rows(values_only=True)]
    wb.close()
    return data


def normalize_text(text) -> str:
    """Normalize text for comparison"""
    if text is None:
        return ""
    return re.sub(r"\s+", " ", str(text)).strip().lower()


def cell(rows: List[List[Any]], row: int, col: int) -> Any:
    if row < 0 or row >= len(rows):
        return None
    values = rows[row]
    if col < 0 or col >= len(values):
        return None
    return values[col]


_NUMBER_CLEAN = re.compile(r"[,$%\s]")


def to_optional_float(value) -> Optional[float]:
    """Number from a cell, or None when blank or unparseable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = _NUMBER_CLEAN.sub("", str(value))
    if not text or text.upper() in ("N/A", "NA", "-", "TBD"):
        return None
    try:
        return float(text)
    except ValueError:
        return None


def to_float(value, default: float = 0.0) -> float:
    """Number from a cell; unparseable values count as the default (0) rather than failing."""
    number = to_optional_float(value)
    return default if number is None else number


def to_optional_int(value) -> Optional[int]:
    number = to_optional_float(value)
    return None if number is None else int(round(number))


def text_of(value) -> str:
    return "" if value is None else str(value).strip()
