"""
HTTP clients for the extraction chain.

AnythingLLM (RAG workspace chat) and Serper (Google search) are both
text-in / text-out. Network and decode errors are logged and returned as
None so callers fall through to the next stage instead of failing the
request.
"""

import json
import logging
import urllib.error
import urllib.request
import uuid
from typing import Optional

from ..config import settings

logger = logging.getLogger(__name__)


class AnythingLLMClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        workspace: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        self.base_url = (base_url if base_url is not None else settings.ANYTHING_LLM_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.ANYTHING_LLM_KEY
        self.workspace = workspace or settings.ANYTHING_LLM_WORKSPACE
        self.timeout = timeout or settings.LLM_TIMEOUT_SECONDS

    def is_configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    def _headers(self, content_type: str = "application/json") -> dict:
        return {
            "Content-Type": content_type,
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }

    def _post(self, path: str, data: bytes, content_type: str = "application/json") -> Optional[dict]:
        req = urllib.request.Request(
            f"{self.base_url}{path}",
            data=data,
            headers=self._headers(content_type),
            method="POST",
        )
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                return json.loads(response.read())
        except urllib.error.HTTPError as e:
            logger.warning(f"AnythingLLM {path} returned HTTP {e.code}")
            return None
        except Exception as e:
            logger.warning(f"AnythingLLM {path} failed: {e}")
            return None

    def chat(self, message: str, workspace: Optional[str] = None) -> Optional[str]:
        """Send one chat turn to the workspace. Returns the response text or None."""
        if not self.is_configured():
            logger.info("AnythingLLM not configured; skipping chat")
            return None

        slug = workspace or self.workspace
        payload = json.dumps({"message": message, "mode": "chat"}).encode("utf-8")
        result = self._post(f"/workspace/{slug}/chat", payload)
        if not result:
            return None
        if result.get("error"):
            logger.warning(f"AnythingLLM chat error: {result['error']}")
            return None
        return result.get("textResponse")

    def upload_document(self, file_bytes: bytes, filename: str) -> Optional[str]:
        """
        Upload a raw document and embed it into the workspace.

        Used when a PDF could not be filtered: the RAG store gets the whole
        document instead of the filtered excerpt. Returns the stored
        document location, or None.
        """
        if not self.is_configured():
            return None

        boundary = f"----rfpintake{uuid.uuid4().hex}"
        body = (
            f"--{boundary}\r\n"
            f'Content-Disposition: form-data; name="file"; filename="{filename}"\r\n'
            f"Content-Type: application/pdf\r\n\r\n"
        ).encode("utf-8") + file_bytes + f"\r\n--{boundary}--\r\n".encode("utf-8")

        result = self._post(
            "/document/upload", body, content_type=f"multipart/form-data; boundary={boundary}",
        )
        documents = (result or {}).get("documents") or []
        if not documents:
            logger.warning(f"AnythingLLM upload returned no documents for {filename}")
            return None

        location = documents[0].get("location")
        if not location:
            return None

        payload = json.dumps({"adds": [location], "deletes": []}).encode("utf-8")
        if self._post(f"/workspace/{self.workspace}/update-embeddings", payload) is None:
            return None
        logger.info(f"Embedded {filename} into workspace {self.workspace}")
        return location


class SerperClient:
    def __init__(self, api_key: Optional[str] = None, endpoint: Optional[str] = None, timeout: int = 15):
        self.api_key = api_key if api_key is not None else settings.SERPER_API_KEY
        self.endpoint = endpoint or settings.SERPER_ENDPOINT
        self.timeout = timeout

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def search(self, query: str) -> Optional[dict]:
        if not self.is_configured():
            logger.info("Serper not configured; skipping search")
            return None

        payload = json.dumps({"q": query, "num": 5}).encode("utf-8")
        req = urllib.request.Request(
            self.endpoint,
            data=payload,
            headers={"Content-Type": "application/json", "X-API-KEY": self.api_key},
            method="POST",
        )
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                return json.loads(response.read())
        except Exception as e:
            logger.warning(f"Serper search failed: {e}")
            return None

    def search_venue_address(self, query: str) -> Optional[str]:
        """Best-guess street address for a venue: knowledge graph first, then snippets."""
        result = self.search(f"{query} address")
        if not result:
            return None

        attributes = (result.get("knowledgeGraph") or {}).get("attributes") or {}
        for key in ("Address", "Location", "Headquarters"):
            if attributes.get(key):
                return attributes[key]

        for item in result.get("organic") or []:
            snippet = item.get("snippet")
            if snippet:
                return snippet
        return None
