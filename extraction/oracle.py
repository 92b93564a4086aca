"""Extraction oracle: the external AI service that reads shipment documents.

The oracle is an opaque ``complete(request) -> str`` function. Building the
request (prompt plus text or images) and defensively decoding the answer
live here too, so every oracle implementation shares them.
"""

import asyncio
import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import openai

from core.config import Settings
from core.errors import (
    MalformedOracleResponse,
    NoItemsExtracted,
    OracleTimeout,
    OracleUnreachable,
    UnsupportedDocument,
)
from core.observability.logging import get_logger
from extraction.documents import (
    CSV,
    IMAGE,
    PDF,
    SPREADSHEET,
    TEXT,
    Document,
    grid_to_csv,
    image_media_type,
    image_to_b64,
    load_grid,
    pdf_to_images,
)


logger = get_logger(__name__)

PROMPTS_DIR = Path(__file__).resolve().parent / "prompts"

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*\n?", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\n?```\s*$")


def read_prompt(name: str) -> str:
    """Read a prompt template from the prompts directory."""
    return (PROMPTS_DIR / name).read_text(encoding="utf-8")


# =============================================================================
# Request
# =============================================================================

@dataclass
class OracleRequest:
    """One extraction request: instructions plus either text or images.

    Attributes:
        system_prompt: Fixed system instruction
        user_prompt: Fixed user prompt template
        text: Document text (pasted text, CSV, rendered spreadsheet)
        images: (media_type, base64 data) pairs for PDFs pages and photos
    """
    system_prompt: str
    user_prompt: str
    text: Optional[str] = None
    images: List[Tuple[str, str]] = field(default_factory=list)


def build_request(document: Document) -> OracleRequest:
    """Build the oracle request for a document.

    Spreadsheets are rendered to CSV text, PDFs to page images, photos are
    sent as-is, and text documents are passed through.
    """
    request = OracleRequest(
        system_prompt=read_prompt("system.txt"),
        user_prompt=read_prompt("shipment_prompt.txt"),
    )
    kind = document.kind
    if kind in (SPREADSHEET, CSV):
        request.text = grid_to_csv(load_grid(document))
    elif kind == TEXT:
        request.text = document.text()
    elif kind == PDF:
        request.images = [("image/png", img) for img in pdf_to_images(document)]
    elif kind == IMAGE:
        request.images = [(image_media_type(document), image_to_b64(document))]
    else:
        raise UnsupportedDocument(f"Cannot send '{kind}' documents to the extraction service", document.filename)
    return request


# =============================================================================
# Response Parsing
# =============================================================================

def strip_code_fences(raw_text: str) -> str:
    """Remove a leading ```json / ``` fence and a trailing ``` fence, if present."""
    text = raw_text.strip()
    text = _FENCE_OPEN.sub("", text)
    text = _FENCE_CLOSE.sub("", text)
    return text.strip()


def parse_oracle_response(raw_text: str) -> Dict[str, Any]:
    """Decode the oracle's answer into ``{items, supplier, dateReceived}``.

    Raises:
        MalformedOracleResponse: Not JSON, not an object, or ``items`` not a list
        NoItemsExtracted: ``items`` is an empty list
    """
    try:
        parsed = json.loads(strip_code_fences(raw_text or ""))
    except json.JSONDecodeError:
        raise MalformedOracleResponse(raw_text)

    if not isinstance(parsed, dict):
        raise MalformedOracleResponse(raw_text, reason="a non-object JSON value")

    items = parsed.get("items")
    if not isinstance(items, list):
        raise MalformedOracleResponse(raw_text, reason="JSON without an items list")
    if not items:
        raise NoItemsExtracted(parsed.get("supplier"), parsed.get("dateReceived"))

    return parsed


# =============================================================================
# Oracle Implementations
# =============================================================================

class ExtractionOracle(ABC):
    """External document-understanding service."""

    @abstractmethod
    async def complete(self, request: OracleRequest) -> str:
        """Send ``request`` and return the raw textual answer.

        Raises:
            OracleUnreachable: Service not configured, unreachable or refusing
            OracleTimeout: No answer within the configured wait
        """


class OpenAIExtractionOracle(ExtractionOracle):
    """Extraction oracle backed by an OpenAI vision chat model.

    Args:
        api_key: OpenAI API key (None means not configured)
        model: Chat model name
        timeout_seconds: Bounded wait for the whole call, retries included
        max_tokens: Completion token limit
        max_attempts: Attempts when rate limited
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gpt-4o",
        timeout_seconds: float = 45.0,
        max_tokens: int = 4096,
        max_attempts: int = 3,
        client: Optional[openai.AsyncOpenAI] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.max_tokens = max_tokens
        self.max_attempts = max_attempts
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "OpenAIExtractionOracle":
        return cls(
            api_key=settings.openai_api_key,
            model=settings.extraction_model,
            timeout_seconds=settings.oracle_timeout_seconds,
            max_tokens=settings.oracle_max_tokens,
        )

    def _get_client(self) -> openai.AsyncOpenAI:
        if self._client is None:
            if not self.api_key:
                raise OracleUnreachable("OPENAI_API_KEY is not configured")
            self._client = openai.AsyncOpenAI(api_key=self.api_key, timeout=self.timeout_seconds)
        return self._client

    def _messages(self, request: OracleRequest) -> List[Dict[str, Any]]:
        prompt = request.user_prompt
        if request.text is not None:
            prompt = f"{prompt}\n\n{request.text}"
        content: List[Dict[str, Any]] = [{"type": "text", "text": prompt}]
        for media_type, data in request.images:
            content.append({
                "type": "image_url",
                "image_url": {"url": f"data:{media_type};base64,{data}", "detail": "high"},
            })
        return [
            {"role": "system", "content": request.system_prompt},
            {"role": "user", "content": content},
        ]

    async def _call(self, request: OracleRequest) -> str:
        client = self._get_client()
        messages = self._messages(request)

        for attempt in range(1, self.max_attempts + 1):
            try:
                response = await client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    temperature=0,
                    max_tokens=self.max_tokens,
                )
                return response.choices[0].message.content or ""
            except openai.RateLimitError as e:
                if attempt == self.max_attempts:
                    raise OracleUnreachable(f"rate limited after {attempt} attempts: {e}") from e
                logger.warning(
                    "Extraction service rate limited, retrying",
                    extra_fields={"attempt": attempt, "max_attempts": self.max_attempts},
                )
                await asyncio.sleep(2 ** attempt)
        raise OracleUnreachable("no attempts made")

    async def complete(self, request: OracleRequest) -> str:
        logger.info(
            "Sending document to extraction service",
            extra_fields={
                "model": self.model,
                "images": len(request.images),
                "text_chars": len(request.text or ""),
            },
        )
        try:
            return await asyncio.wait_for(self._call(request), timeout=self.timeout_seconds)
        except (asyncio.TimeoutError, openai.APITimeoutError) as e:
            raise OracleTimeout(self.timeout_seconds) from e
        except openai.APIConnectionError as e:
            raise OracleUnreachable(str(e)) from e
        except openai.APIStatusError as e:
            raise OracleUnreachable(f"HTTP {e.status_code}: {e.message}") from e
