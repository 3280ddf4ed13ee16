"""
Estimator workbook import.

Fixed-layout parsers for the three workbook families the estimating team
sends, selected by sheet names. Rows with unparseable numbers import as 0;
unknown layouts raise with the list of sheets found.
"""

from .formats import ExcelFormat, detect_format, parse_workbook, parse_workbook_data
from .workbook import (
    SheetNotFoundError,
    UnknownWorkbookFormatError,
    WorkbookData,
    WorkbookImportError,
    load_workbook_bytes,
)
