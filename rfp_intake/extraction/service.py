"""
LLM extraction with fallbacks.

Chain: AnythingLLM chat -> extract_json -> repair_json -> screen records.
When no usable JSON comes back, a web search for the venue address is
tried so the estimator at least gets a location; after that the result is
"not_found". extract() never raises.
"""

import logging
from typing import Optional

from ..config import settings
from ..rfp_parser import extract_client_name, extract_project_title
from .clients import AnythingLLMClient, SerperClient
from .json_repair import parse_llm_json
from .normalizer import screens_from_llm_payload

logger = logging.getLogger(__name__)

MAX_PROMPT_CHARS = 200_000


class RfpExtractionService:
    def __init__(
        self,
        llm: Optional[AnythingLLMClient] = None,
        search: Optional[SerperClient] = None,
        min_confidence: Optional[float] = None,
    ):
        self.llm = llm or AnythingLLMClient()
        self.search = search or SerperClient()
        self.min_confidence = (
            settings.GAP_FILL_MIN_CONFIDENCE if min_confidence is None else min_confidence
        )

    def extract(self, text: str, venue_hint: Optional[str] = None) -> dict:
        """
        Extract screens from filtered RFP text.

        Returns {"status": "llm" | "search_fallback" | "not_found",
        "screens": [ScreenRecord], "payload": parsed JSON or None,
        "venue": {"query", "address"} or None, "warnings": [str]}.
        """
        warnings = []
        if len(text) > MAX_PROMPT_CHARS:
            text = text[:MAX_PROMPT_CHARS] + "\n\n[DOCUMENT TRUNCATED]"
            warnings.append(f"Prompt text truncated to {MAX_PROMPT_CHARS} characters")

        response = self.llm.chat(self._build_extraction_prompt(text))
        result = self._from_response(response, warnings)
        if result is not None:
            return result

        return self._search_fallback(venue_hint or self._venue_query(text), warnings)

    def extract_unfiltered(self, file_bytes: bytes, filename: str, venue_hint: Optional[str] = None) -> dict:
        """
        Fallback for PDFs that could not be filtered: embed the raw document
        in the workspace and ask the same question without inline text.
        """
        warnings = ["PDF could not be filtered; extraction ran against the full document"]
        location = self.llm.upload_document(file_bytes, filename)
        if location is None:
            warnings.append("Document upload to the LLM workspace failed")
            return self._search_fallback(venue_hint, warnings)

        response = self.llm.chat(self._build_extraction_prompt(None))
        result = self._from_response(response, warnings)
        if result is not None:
            return result
        return self._search_fallback(venue_hint, warnings)

    def _from_response(self, response: Optional[str], warnings: list) -> Optional[dict]:
        if not response:
            warnings.append("LLM extraction unavailable")
            return None

        payload = parse_llm_json(response)
        if payload is None:
            logger.warning("LLM response contained no recoverable JSON")
            warnings.append("LLM response was not valid JSON")
            return None

        try:
            screens = screens_from_llm_payload(payload, self.min_confidence)
        except ValueError as e:
            logger.warning(f"LLM payload rejected: {e}")
            warnings.append("LLM response did not match the screen schema")
            return None

        if not screens:
            warnings.append("LLM response listed no screens")
            return None

        logger.info(f"LLM extraction returned {len(screens)} screens")
        venue = None
        if isinstance(payload, dict) and payload.get("venue"):
            venue = {"query": None, "address": str(payload["venue"])}
        return {
            "status": "llm",
            "screens": screens,
            "payload": payload,
            "venue": venue,
            "warnings": warnings,
        }

    def _search_fallback(self, query: Optional[str], warnings: list) -> dict:
        address = self.search.search_venue_address(query) if query else None
        if address:
            logger.info(f"Venue address found by search for {query!r}")
            return {
                "status": "search_fallback",
                "screens": [],
                "payload": None,
                "venue": {"query": query, "address": address},
                "warnings": warnings,
            }

        logger.info("No extraction result and no venue found")
        return {
            "status": "not_found",
            "screens": [],
            "payload": None,
            "venue": None,
            "warnings": warnings,
        }

    @staticmethod
    def _venue_query(text: str) -> Optional[str]:
        client = extract_client_name(text)
        title = extract_project_title(text)
        parts = [p for p in (client, title) if p and p not in ("Unknown Client", "LED Display Project")]
        return " ".join(parts) or None

    def _build_extraction_prompt(self, text: Optional[str]) -> str:
        """Build the workspace prompt for LED display scope extraction."""
        if text is None:
            source = "Use the RFP document embedded in this workspace."
        else:
            source = f'DOCUMENT TEXT:\n"""\n{text}\n"""'

        return f"""You are an estimator reading an RFP for LED video displays.

TASK: List every LED display (screen) the bidder must supply. Look in
Division 11 06 60 (display schedule), Division 27 / 26 (AV and electrical)
and the AV drawing sheets.

For each screen return an object with these keys. Every value is an object
{{"value": ..., "citation": "page or section", "confidence": 0.0-1.0}},
with value null when the document does not say:
- "name": location or screen name
- "pitchMm": pixel pitch in millimetres
- "widthFt", "heightFt": active area in feet
- "quantity": number of identical screens
- "serviceType": "Front", "Rear" or "Top"
- "productType": e.g. "Indoor Fine Pitch", "Outdoor", "Ribbon"
- "isCurved": true or false
- "brightnessNits": minimum brightness

Also return "venue": the venue name or street address if stated.

Do not guess. A value you cannot cite gets confidence 0.3 or lower.

{source}

Return ONLY valid JSON: {{"screens": [...], "venue": ...}}"""
