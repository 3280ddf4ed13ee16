"""
Workbook format detection and dispatch.

detect_format() is a pure function of the sheet names. Each format maps to
exactly one parser with the same contract: parse(WorkbookData) -> ParsedProposal.
"""

import enum
import logging
from typing import Callable, Dict, Iterable

from ..schemas import ParsedProposal
from . import cost_sheet, margin_analysis, moody
from .workbook import UnknownWorkbookFormatError, WorkbookData, load_workbook_bytes, normalize_text

logger = logging.getLogger(__name__)


class ExcelFormat(str, enum.Enum):
    MOODY = "moody"
    SCOTIABANK = "scotiabank"
    STANDARD = "standard"
    UNKNOWN = "unknown"


def detect_format(sheet_names: Iterable[str]) -> ExcelFormat:
    names = {normalize_text(name) for name in sheet_names}

    if "bid form" in names and "summary" in names:
        return ExcelFormat.MOODY
    if any(margin_analysis.SHEET_PATTERN.match(name) for name in names):
        return ExcelFormat.SCOTIABANK
    if any(normalize_text(n) in names for n in cost_sheet.COST_SHEET_NAMES):
        return ExcelFormat.STANDARD
    return ExcelFormat.UNKNOWN


PARSERS: Dict[ExcelFormat, Callable[[WorkbookData], ParsedProposal]] = {
    ExcelFormat.MOODY: moody.parse,
    ExcelFormat.SCOTIABANK: margin_analysis.parse,
    ExcelFormat.STANDARD: cost_sheet.parse,
}


def parse_workbook_data(workbook: WorkbookData) -> ParsedProposal:
    fmt = detect_format(workbook.sheet_names)
    parser = PARSERS.get(fmt)
    if parser is None:
        raise UnknownWorkbookFormatError(workbook.sheet_names)

    logger.info(f"Parsing workbook as {fmt.value} ({', '.join(workbook.sheet_names)})")
    return parser(workbook)


def parse_workbook(file_bytes: bytes) -> ParsedProposal:
    """Read workbook bytes and parse with the detected format's parser."""
    return parse_workbook_data(load_workbook_bytes(file_bytes))
