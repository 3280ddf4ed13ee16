from .json_repair import extract_json, parse_llm_json, repair_json
from .normalizer import (
    build_gap_report,
    detect_extraction_accuracy,
    detect_missing_fields,
    merge_screen_records,
    screens_from_llm_payload,
)
from .service import RfpExtractionService
