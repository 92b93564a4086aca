"""Extraction pipeline for shipment documents.

Exposes one entry point, ``extract(document)``, backed by two record
sources that produce the same raw rows:

- GridRecordSource: reads a spreadsheet/CSV directly, finds the header row
  and maps columns through the Column Resolver.
- OracleRecordSource: sends the document to the extraction oracle and
  decodes its JSON answer.

Both feed the same derivation (CandidateRecord.from_source) and the same
validator, so field rules live in exactly one place.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from core.config import load_settings
from core.errors import (
    ExtractionError,
    MalformedOracleResponse,
    NoItemsExtracted,
    OracleUnreachable,
    UnsupportedDocument,
)
from core.models.canonical import (
    CandidateRecord,
    ExtractedMeta,
    ExtractedRow,
    ExtractionResult,
    ExtractionSummary,
    FieldIssue,
    ValidationVerdict,
    effective_quantity,
)
from core.observability.logging import get_logger, with_correlation
from extraction.columns import ColumnResolver, find_header_row
from extraction.documents import GRID_KINDS, Document, load_grid, validate_document
from extraction.oracle import ExtractionOracle, build_request, parse_oracle_response
from validation.rules import validate


logger = get_logger(__name__)

GRID = "grid"
ORACLE = "oracle"


# =============================================================================
# Record Sources
# =============================================================================

@dataclass
class SourceOutput:
    """Raw rows keyed by canonical field names, plus document-level metadata."""
    rows: List[Dict[str, Any]]
    meta: ExtractedMeta = field(default_factory=ExtractedMeta)


class RecordSource(ABC):
    """A strategy that turns a document into raw candidate rows."""

    kind: str = ""

    def __init__(self, document: Document):
        self.document = document

    @abstractmethod
    async def produce(self) -> SourceOutput:
        """Read the document.

        Raises:
            ExtractionError: The document cannot be turned into rows at all
        """


class GridRecordSource(RecordSource):
    """Direct spreadsheet parsing through header detection and column aliases."""

    kind = GRID

    async def produce(self) -> SourceOutput:
        rows = await asyncio.to_thread(load_grid, self.document)
        header_index = find_header_row(rows)
        resolver = ColumnResolver(rows[header_index])
        data_rows = [resolver.to_raw_record(row) for row in rows[header_index + 1:]]
        data_rows = [row for row in data_rows if any(v is not None for v in row.values())]
        if not data_rows:
            raise NoItemsExtracted()
        logger.info(
            "Grid parsed",
            extra_fields={"header_row": header_index, "data_rows": len(data_rows)},
        )
        return SourceOutput(rows=data_rows)


def _meta_text(value: Any) -> Optional[str]:
    """Header values as text; numbers such as 20240301 are kept, objects are dropped."""
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


class OracleRecordSource(RecordSource):
    """Oracle-based extraction for any supported document kind."""

    kind = ORACLE

    def __init__(self, document: Document, oracle: ExtractionOracle):
        super().__init__(document)
        self.oracle = oracle

    async def produce(self) -> SourceOutput:
        request = await asyncio.to_thread(build_request, self.document)
        raw_text = await self.oracle.complete(request)
        parsed = parse_oracle_response(raw_text)

        items = parsed["items"]
        if not all(isinstance(item, dict) for item in items):
            raise MalformedOracleResponse(raw_text, reason="items that are not JSON objects")

        meta = ExtractedMeta(
            supplier=_meta_text(parsed.get("supplier")),
            date_received=_meta_text(parsed.get("dateReceived")),
        )
        return SourceOutput(rows=items, meta=meta)


# =============================================================================
# Shared Derivation + Validation
# =============================================================================

def _field_label(loc: Tuple[Any, ...]) -> str:
    return str(loc[0]) if loc else "record"


def to_candidate(raw: Dict[str, Any]) -> Tuple[CandidateRecord, List[FieldIssue]]:
    """Derive a CandidateRecord from one raw row.

    Values that cannot be parsed (e.g. a price of "abc") are dropped from the
    record and reported as field issues instead of failing the whole batch.
    """
    issues: List[FieldIssue] = []
    data = dict(raw)
    for _ in range(len(data) + 1):
        try:
            return CandidateRecord.from_source(data), issues
        except ValidationError as e:
            bad_fields = {_field_label(err["loc"]) for err in e.errors()}
            for name in sorted(bad_fields):
                issues.append(FieldIssue(
                    field=name,
                    message=f"Unreadable value for {name}: {data.get(name)!r}",
                    code="INVALID_VALUE",
                ))
                data.pop(name, None)
    return CandidateRecord.from_source({}), issues


def build_row(row_number: int, raw: Dict[str, Any]) -> ExtractedRow:
    record, issues = to_candidate(raw)
    verdict = validate(record)
    if issues:
        verdict = ValidationVerdict(
            is_valid=False,
            errors=list(verdict.errors) + issues,
            warnings=verdict.warnings,
        )
    return ExtractedRow(row_number=row_number, record=record, verdict=verdict)


def summarize(rows: List[ExtractedRow]) -> ExtractionSummary:
    """Row counts over all rows; fish and cost totals over valid rows only."""
    valid = [row.record for row in rows if row.verdict.is_valid]
    return ExtractionSummary(
        total_rows=len(rows),
        valid_rows=len(valid),
        error_rows=len(rows) - len(valid),
        missing_codes=sum(1 for row in rows if not row.record.code),
        total_fish=sum(effective_quantity(record) for record in valid),
        total_cost=sum((record.line_total() for record in valid), Decimal("0")),
    )


# =============================================================================
# Entry Point
# =============================================================================

def choose_source(
    document: Document,
    oracle: Optional[ExtractionOracle] = None,
    strategy: Optional[str] = None,
) -> RecordSource:
    """Pick a record source.

    Default: spreadsheets and CSV are parsed directly, everything else goes
    to the oracle. ``strategy`` forces ``"grid"`` or ``"oracle"``.
    """
    if strategy is None:
        strategy = GRID if document.kind in GRID_KINDS else ORACLE
    if strategy == GRID:
        return GridRecordSource(document)
    if strategy == ORACLE:
        if oracle is None:
            raise OracleUnreachable("No extraction service is configured")
        return OracleRecordSource(document, oracle)
    raise UnsupportedDocument(
        f"Unknown extraction strategy: {strategy} (expected 'grid' or 'oracle')",
        document.filename,
    )


async def extract(
    document: Document,
    oracle: Optional[ExtractionOracle] = None,
    strategy: Optional[str] = None,
    max_bytes: Optional[int] = None,
) -> ExtractionResult:
    """Extract validated candidate records from a document.

    Never raises for document, oracle or network failures: those become
    ``ExtractionResult(success=False, error=...)``. Rows that fail validation
    do not fail the call; they are counted in ``summary.error_rows``.

    Args:
        document: Uploaded file or pasted text
        oracle: Extraction oracle (needed unless the document is a grid)
        strategy: Force "grid" or "oracle"; default depends on the document kind
        max_bytes: Upload size limit (default: MAX_UPLOAD_BYTES setting)

    Returns:
        ExtractionResult with one ExtractedRow per source row
    """
    if max_bytes is None:
        max_bytes = load_settings().max_upload_bytes

    with with_correlation(stage="extract"):
        try:
            validate_document(document, max_bytes)
            source = choose_source(document, oracle, strategy)
            output = await source.produce()
        except ExtractionError as e:
            logger.error(
                "Extraction failed",
                extra_fields={"document": document.filename, "error_code": e.code, "error": str(e)},
            )
            return ExtractionResult(success=False, error=str(e), error_code=e.code)

        rows = [build_row(index, raw) for index, raw in enumerate(output.rows)]
        summary = summarize(rows)
        logger.info(
            "Extraction complete",
            extra_fields={
                "document": document.filename,
                "source": source.kind,
                "total_rows": summary.total_rows,
                "valid_rows": summary.valid_rows,
                "error_rows": summary.error_rows,
            },
        )
        return ExtractionResult(
            success=True,
            source_kind=source.kind,
            data=rows,
            summary=summary,
            extracted_meta=output.meta,
        )


async def extract_text(text: str, oracle: ExtractionOracle) -> ExtractionResult:
    """Extract from pasted free text through the oracle."""
    return await extract(Document.from_text(text), oracle=oracle, strategy=ORACLE)
