"""Typed exception hierarchy for the fish farm intake pipeline.

Every error kind carries a machine-readable ``code`` class attribute and
keeps its context as attributes, so callers catch by type and the HTTP
layer can answer with structured payloads.

    FishFarmError
    |
    +-- ExtractionError                (fatal to one extraction call)
    |   +-- HeaderNotFound
    |   +-- UnsupportedDocument
    |   +-- OracleUnreachable
    |   +-- OracleTimeout
    |   +-- MalformedOracleResponse
    |   +-- NoItemsExtracted
    |
    +-- ImportPreconditionError        (raised before any write)
    |   +-- Unauthenticated
    |   +-- MissingFarm
    |   +-- EmptyImport
    |
    +-- TransactionWriteFailure
    |
    +-- StoreError
    |   +-- DocumentNotFound
    |
    +-- ReceptionError
    |   +-- PlanNotFound
    |   +-- ItemNotFound
    |   +-- InvalidTransition
    |   +-- PlanLocked
    |   +-- PlanIncomplete
    |   +-- ItemAlreadyReceived
    |
    +-- RecordValidationError
        +-- InvalidFarmSettings

Per-row validation problems (``MissingMandatoryField``) are never raised:
they are accumulated into the row's ValidationVerdict.
"""

from typing import List, Optional


MISSING_MANDATORY_FIELD = "MISSING_MANDATORY_FIELD"


class FishFarmError(Exception):
    """Base exception for all pipeline errors."""

    code: str = "FISH_FARM_ERROR"


# =============================================================================
# Extraction
# =============================================================================

class ExtractionError(FishFarmError):
    """Base for failures that abort a whole extraction call."""

    code: str = "EXTRACTION_ERROR"


class HeaderNotFound(ExtractionError):
    """No recognizable header row in the scanned window of a grid."""

    code: str = "HEADER_NOT_FOUND"

    def __init__(self, scanned_rows: int, markers: List[str]):
        self.scanned_rows = scanned_rows
        self.markers = list(markers)
        super().__init__(
            f"No header row found in the first {scanned_rows} rows "
            f"(looked for any of: {', '.join(self.markers)})"
        )


class UnsupportedDocument(ExtractionError):
    """The document cannot be read by any extraction strategy."""

    code: str = "UNSUPPORTED_DOCUMENT"

    def __init__(self, reason: str, filename: Optional[str] = None):
        self.reason = reason
        self.filename = filename
        prefix = f"{filename}: " if filename else ""
        super().__init__(f"{prefix}{reason}")


class OracleUnreachable(ExtractionError):
    """The extraction oracle could not be reached or rejected the request."""

    code: str = "ORACLE_UNREACHABLE"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Extraction service unavailable: {detail}")


class OracleTimeout(ExtractionError):
    """The extraction oracle did not answer within the bounded wait."""

    code: str = "ORACLE_TIMEOUT"

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Extraction service did not respond within {timeout_seconds:g}s")


class MalformedOracleResponse(ExtractionError):
    """The oracle answered with something that is not the expected JSON object."""

    code: str = "MALFORMED_ORACLE_RESPONSE"

    def __init__(self, raw_text: str, reason: str = "invalid JSON"):
        self.raw_excerpt = (raw_text or "")[:200]
        self.reason = reason
        super().__init__(f"Extraction service returned {reason}: {self.raw_excerpt}")


class NoItemsExtracted(ExtractionError):
    """The oracle answered correctly but found no fish line items."""

    code: str = "NO_ITEMS_EXTRACTED"

    def __init__(self, supplier: Optional[str] = None, date_received: Optional[str] = None):
        self.supplier = supplier
        self.date_received = date_received
        super().__init__("No fish items could be found in the document")


# =============================================================================
# Shipment import
# =============================================================================

class ImportPreconditionError(FishFarmError):
    """Base for import preconditions, all checked before any write."""

    code: str = "IMPORT_PRECONDITION"


class Unauthenticated(ImportPreconditionError):
    code: str = "UNAUTHENTICATED"

    def __init__(self):
        super().__init__("User not authenticated")


class MissingFarm(ImportPreconditionError):
    code: str = "MISSING_FARM"

    def __init__(self):
        super().__init__("Farm ID is required")


class EmptyImport(ImportPreconditionError):
    code: str = "EMPTY_IMPORT"

    def __init__(self):
        super().__init__("No items to import")


class TransactionWriteFailure(FishFarmError):
    """An atomic write failed; nothing from the transaction was persisted."""

    code: str = "TRANSACTION_WRITE_FAILURE"

    def __init__(self, operation: str, cause: BaseException):
        self.operation = operation
        self.cause_message = str(cause)
        super().__init__(f"Failed to {operation}: {cause}")


# =============================================================================
# Storage
# =============================================================================

class StoreError(FishFarmError):
    """The document store failed to read or write."""

    code: str = "STORE_ERROR"


class DocumentNotFound(StoreError):
    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"Document not found: {collection}/{doc_id}")


# =============================================================================
# Reception workflow
# =============================================================================

class ReceptionError(FishFarmError):
    code: str = "RECEPTION_ERROR"


class PlanNotFound(ReceptionError):
    code: str = "PLAN_NOT_FOUND"

    def __init__(self, plan_id: str):
        self.plan_id = plan_id
        super().__init__(f"Reception plan not found: {plan_id}")


class ItemNotFound(ReceptionError):
    code: str = "ITEM_NOT_FOUND"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Reception item not found: {item_id}")


class InvalidTransition(ReceptionError):
    """A plan or item status change that the state machine forbids."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, entity: str, current: str, target: str):
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(f"Cannot move {entity} from '{current}' to '{target}'")


class PlanLocked(ReceptionError):
    """Items of a locked (or later) plan cannot be added, edited or removed."""

    code: str = "PLAN_LOCKED"

    def __init__(self, plan_id: str, status: str):
        self.plan_id = plan_id
        self.status = status
        super().__init__(f"Reception plan {plan_id} is '{status}' and its items can no longer be changed")


class PlanIncomplete(ReceptionError):
    code: str = "PLAN_INCOMPLETE"

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__(", ".join(self.errors))


class ItemAlreadyReceived(ReceptionError):
    code: str = "ITEM_ALREADY_RECEIVED"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Item already received: {item_id}")


# =============================================================================
# Record validation (raised only by write paths, never by validate())
# =============================================================================

class RecordValidationError(FishFarmError):
    """A record failed validation at write time."""

    code: str = "RECORD_VALIDATION"

    def __init__(self, entity: str, messages: List[str]):
        self.entity = entity
        self.messages = list(messages)
        super().__init__(f"Invalid {entity}: {'; '.join(self.messages)}")


class InvalidFarmSettings(RecordValidationError):
    code: str = "INVALID_FARM_SETTINGS"

    def __init__(self, messages: List[str]):
        super().__init__("farm settings", messages)
