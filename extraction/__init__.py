"""Document-to-record extraction: column resolution, document readers, oracle, extractor."""

from extraction.documents import Document, validate_document
from extraction.oracle import ExtractionOracle, OpenAIExtractionOracle, OracleRequest
from extraction.runner import extract, extract_text

__all__ = [
    "Document",
    "validate_document",
    "ExtractionOracle",
    "OpenAIExtractionOracle",
    "OracleRequest",
    "extract",
    "extract_text",
]
