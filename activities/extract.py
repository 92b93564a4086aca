"""Extraction activity for the shipment intake pipeline.

Temporal activity that wraps ``extraction.extract`` for a document on disk
or pasted text.
"""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from temporalio import activity

from core.config import load_settings
from core.observability.logging import (
    log_activity_complete,
    log_activity_start,
    with_correlation,
)
from extraction.documents import Document
from extraction.oracle import ExtractionOracle, OpenAIExtractionOracle
from extraction.runner import extract


@dataclass
class ExtractDocumentInput:
    """Input for extract_document_activity.

    Attributes:
        farm_id: Farm the document belongs to
        text: Pasted free text (used when file_path is empty)
        file_path: Absolute path to an uploaded spreadsheet, PDF or image
        strategy: Force "grid" or "oracle"; default depends on the document kind
    """
    farm_id: str
    text: Optional[str] = None
    file_path: Optional[str] = None
    strategy: Optional[str] = None


@dataclass
class ExtractDocumentOutput:
    """Output from extract_document_activity.

    Attributes:
        success: False when the whole extraction failed
        result: Serialized ExtractionResult (camelCase document)
        error: Failure message when success is False
    """
    success: bool
    result: dict = field(default_factory=dict)
    error: Optional[str] = None


def get_oracle() -> ExtractionOracle:
    """Oracle used by the activity; configured from the environment."""
    return OpenAIExtractionOracle.from_settings(load_settings())


def _load_document(input: ExtractDocumentInput) -> Document:
    if input.file_path:
        return Document.from_path(Path(input.file_path))
    return Document.from_text(input.text or "")


@activity.defn
async def extract_document_activity(input: ExtractDocumentInput) -> ExtractDocumentOutput:
    """Extract candidate shipment lines from a file or pasted text.

    Extraction failures (unreadable document, oracle down, malformed reply)
    are returned as ``success=False`` rather than raised, so the workflow
    decides what to do and Temporal does not retry a bad document.

    Args:
        input: ExtractDocumentInput with farm_id and text or file_path

    Returns:
        ExtractDocumentOutput with the serialized ExtractionResult
    """
    start = time.monotonic()
    with with_correlation(farm_id=input.farm_id, activity_name="extract_document", stage="extract"):
        log_activity_start("extract_document", file_path=input.file_path, has_text=bool(input.text))

        document = _load_document(input)
        result = await extract(document, oracle=get_oracle(), strategy=input.strategy)

        log_activity_complete(
            "extract_document",
            duration_ms=(time.monotonic() - start) * 1000,
            success=result.success,
            total_rows=result.summary.total_rows,
            valid_rows=result.summary.valid_rows,
        )

    return ExtractDocumentOutput(
        success=result.success,
        result=result.to_document(),
        error=result.error,
    )
