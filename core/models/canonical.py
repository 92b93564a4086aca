"""Core canonical data models for the fish intake pipeline.

These models represent extracted shipment lines, persisted inventory records,
aquariums, reception plans and farm settings in one standardized shape that
is independent of the document they came from.

Field names are snake_case in Python; every model serializes (and accepts)
the camelCase names used in stored documents, e.g. ``scientificName``.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated


DEFAULT_CURRENCY = "ILS"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Value Parsers (handle various input formats from spreadsheets and the oracle)
# =============================================================================

_CURRENCY_SYMBOLS = ("₪", "$", "€", "ILS", "USD", "EUR")


def _finite_decimal(number: Decimal) -> Decimal:
    if not number.is_finite():
        raise ValueError(f"Amount out of range: {number}")
    return number


def _parse_decimal(value):
    """Parse decimal from various formats (currency symbols, commas, floats, etc.)."""
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, Decimal):
        return _finite_decimal(value)
    if isinstance(value, (int, float)):
        return _finite_decimal(Decimal(str(value)))
    if isinstance(value, str):
        s = value.strip()
        for symbol in _CURRENCY_SYMBOLS:
            s = s.replace(symbol, "")
        s = s.replace(",", "").strip()
        if s == "":
            return None
        if s.startswith("(") and s.endswith(")"):
            s = "-" + s[1:-1]
        try:
            number = Decimal(s)
        except InvalidOperation:
            raise ValueError(f"Cannot parse amount: {value}")
        return _finite_decimal(number)
    return value


def _finite_int(number):
    try:
        return int(number)
    except OverflowError:
        raise ValueError(f"Number out of range: {number}")


def _parse_int(value):
    """Parse integer from various formats."""
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, (float, Decimal)):
        return _finite_int(value)
    if isinstance(value, str):
        s = value.strip().replace(",", "")
        if s == "":
            return None
        return _finite_int(float(s))
    return value


def _parse_box_number(value):
    """Parse a box number; labels like "Box-12" keep their digits, "" means absent."""
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, (float, Decimal)):
        return _finite_int(value)
    if isinstance(value, str):
        s = value.strip()
        if s == "":
            return None
        try:
            number = float(s)
        except ValueError:
            match = re.search(r"\d+", s)
            return int(match.group()) if match else None
        return _finite_int(number)
    return value


def _parse_date(value):
    """Parse date from various string formats (day-first for slashed dates)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        s = value.strip()
        if s == "":
            return None
        for fmt in ("%Y-%m-%d", "%d/%m/%Y", "%d.%m.%Y", "%d-%m-%Y", "%m/%d/%Y", "%Y%m%d"):
            try:
                return datetime.strptime(s, fmt).date()
            except ValueError:
                continue
        try:
            return datetime.fromisoformat(s.replace("Z", "+00:00")).date()
        except ValueError:
            raise ValueError(f"Cannot parse date: {s}")
    return value


def _strip_text(value):
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return str(value)
    return value


DecimalValue = Annotated[Decimal, BeforeValidator(_parse_decimal)]
IntValue = Annotated[int, BeforeValidator(_parse_int)]
BoxNumberValue = Annotated[int, BeforeValidator(_parse_box_number)]
DateValue = Annotated[date, BeforeValidator(_parse_date)]
TextValue = Annotated[str, BeforeValidator(_strip_text)]


# =============================================================================
# Base Models
# =============================================================================

class CanonicalBase(BaseModel):
    """Base model for all canonical data structures."""
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    def to_document(self) -> Dict[str, Any]:
        """Serialize to the camelCase JSON shape kept in the document store."""
        return self.model_dump(mode="json", by_alias=True)


class FrozenBase(CanonicalBase):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, frozen=True)


def _alias(name: str, *alternatives: str) -> Dict[str, Any]:
    """Field kwargs accepting ``name`` plus alternative spellings, serialized as ``name``."""
    return {
        "validation_alias": AliasChoices(name, *alternatives),
        "serialization_alias": name,
    }


# =============================================================================
# Enumerations
# =============================================================================

class ShelfLevel(str, Enum):
    BOTTOM = "bottom"
    MIDDLE = "middle"
    TOP = "top"


class AquariumStatus(str, Enum):
    EMPTY = "empty"
    OCCUPIED = "occupied"
    IN_TRANSFER = "in-transfer"
    MAINTENANCE = "maintenance"


class PlanSource(str, Enum):
    EXCEL = "excel"
    MANUAL = "manual"


class PlanStatus(str, Enum):
    """Reception plan lifecycle states."""
    PLANNING = "planning"
    PROFORMA_RECEIVED = "proforma_received"
    FINALIZED = "finalized"
    LOCKED = "locked"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ItemStatus(str, Enum):
    PLANNED = "planned"
    RECEIVED = "received"
    CANCELLED = "cancelled"


class CodeStatus(str, Enum):
    VALID = "valid"
    MISSING = "missing"


# =============================================================================
# Extraction Models
# =============================================================================

class CandidateRecord(FrozenBase):
    """One prospective fish line item, before validation and persistence.

    Accepts both the canonical camelCase names and the oracle's short names
    (``bags``, ``qtyPerBag``, ``price``). Build instances with
    ``CandidateRecord.from_source`` so the derivation rules are applied.
    """
    scientific_name: Optional[TextValue] = Field(default=None, **_alias("scientificName", "scientific_name"))
    size: Optional[TextValue] = None
    # 1 when the source omits the field; an explicit null/blank stays None and fails validation
    box_number: Optional[BoxNumberValue] = Field(default=1, **_alias("boxNumber", "box_number"))
    box_portion: Optional[TextValue] = Field(default=None, **_alias("boxPortion", "box_portion"))
    common_name: Optional[TextValue] = Field(default=None, **_alias("commonName", "common_name"))
    code: Optional[TextValue] = None
    bag_count: Optional[IntValue] = Field(default=None, **_alias("bagCount", "bags", "bag_count"))
    quantity_per_bag: Optional[IntValue] = Field(
        default=None, **_alias("quantityPerBag", "qtyPerBag", "quantity_per_bag")
    )
    total_quantity: Optional[IntValue] = Field(
        default=None, **_alias("totalQuantity", "quantity", "total_quantity")
    )
    unit_price: Optional[DecimalValue] = Field(default=None, **_alias("unitPrice", "price", "unit_price"))
    currency: Optional[TextValue] = DEFAULT_CURRENCY

    @classmethod
    def from_source(cls, raw: Mapping[str, Any]) -> "CandidateRecord":
        """Build a record from one source row and apply the derivation rules.

        - ``totalQuantity`` absent: ``bagCount * quantityPerBag`` when both are
          present, else 1. An explicit value is passed through unchanged.
        - ``currency`` absent or blank: ``ILS``.
        - blank optional text fields collapse to None.
        """
        record = cls.model_validate(dict(raw))
        updates: Dict[str, Any] = {}

        if record.total_quantity is None:
            if record.bag_count is not None and record.quantity_per_bag is not None:
                updates["total_quantity"] = record.bag_count * record.quantity_per_bag
            else:
                updates["total_quantity"] = 1

        currency = (record.currency or "").strip().upper()
        updates["currency"] = currency or DEFAULT_CURRENCY

        for name in ("common_name", "code", "box_portion"):
            if getattr(record, name) == "":
                updates[name] = None

        return record.model_copy(update=updates)

    @property
    def display_name(self) -> str:
        return self.common_name or self.scientific_name or ""

    def line_total(self) -> Decimal:
        """Quantity times unit price, price defaulting to 0."""
        return Decimal(effective_quantity(self)) * (self.unit_price or Decimal("0"))


def effective_quantity(item: Any) -> int:
    """The quantity a line contributes: totalQuantity, else quantity, else 1."""
    if isinstance(item, Mapping):
        total = item.get("totalQuantity") or item.get("total_quantity")
        quantity = item.get("quantity")
    else:
        total = getattr(item, "total_quantity", None)
        quantity = getattr(item, "quantity", None)
    return int(total or quantity or 1)


class FieldIssue(FrozenBase):
    """One violated rule: the field it concerns and a readable message."""
    field: str
    message: str
    code: str = "MISSING_MANDATORY_FIELD"


class ValidationVerdict(FrozenBase):
    """Result of validating one record. Errors make it invalid; warnings never do."""
    is_valid: bool
    errors: List[FieldIssue] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    def error_fields(self) -> List[str]:
        return [issue.field for issue in self.errors]

    def messages(self) -> List[str]:
        return [issue.message for issue in self.errors]


class ExtractedRow(CanonicalBase):
    """A candidate record with its verdict and its position in the source."""
    row_number: int
    record: CandidateRecord
    verdict: ValidationVerdict


class ExtractionSummary(CanonicalBase):
    total_rows: int = 0
    valid_rows: int = 0
    error_rows: int = 0
    missing_codes: int = 0
    total_fish: int = 0
    total_cost: Decimal = Decimal("0")


class ExtractedMeta(CanonicalBase):
    supplier: Optional[str] = None
    date_received: Optional[str] = None


class ExtractionResult(CanonicalBase):
    """Outcome of one extraction call.

    ``success`` is False only when the whole call failed (unreadable document,
    oracle unreachable or malformed, no items). Invalid rows still count as
    a successful extraction with ``summary.error_rows > 0``.
    """
    success: bool
    source_kind: Optional[str] = None
    data: List[ExtractedRow] = Field(default_factory=list)
    summary: ExtractionSummary = Field(default_factory=ExtractionSummary)
    extracted_meta: ExtractedMeta = Field(default_factory=ExtractedMeta)
    error: Optional[str] = None
    error_code: Optional[str] = None

    def valid_records(self) -> List[CandidateRecord]:
        return [row.record for row in self.data if row.verdict.is_valid]

    def invalid_rows(self) -> List[ExtractedRow]:
        return [row for row in self.data if not row.verdict.is_valid]


# =============================================================================
# Shipment / Inventory Models
# =============================================================================

class ShipmentMetadata(CanonicalBase):
    """Operator-supplied (or extracted) header data for a shipment import."""
    supplier: Optional[TextValue] = None
    date_received: Optional[DateValue] = None
    notes: Optional[str] = None


class ShipmentRecord(CanonicalBase):
    """Persisted shipment aggregate, stored at ``farms/{farmId}/shipments/{id}``."""
    shipment_id: str
    farm_id: str
    supplier: str = ""
    date_received: DateValue
    total_item_types: int = Field(**_alias("totalItemTypes", "totalItems"))
    total_fish_count: int = Field(**_alias("totalFishCount", "totalFish"))
    total_cost: DecimalValue = Decimal("0")
    currency: str = DEFAULT_CURRENCY
    status: str = "received"
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    created_by: str
    edit_history: List[Dict[str, Any]] = Field(default_factory=list)


class FishCosts(CanonicalBase):
    invoice_cost_per_fish: DecimalValue = Decimal("0")
    arrival_cost_per_fish: DecimalValue = Decimal("0")
    current_cost_per_fish: DecimalValue = Decimal("0")
    total_invoice_cost: DecimalValue = Decimal("0")
    currency: str = DEFAULT_CURRENCY


class ReceptionMortality(CanonicalBase):
    doa: int = 0
    deaths: int = 0


class PostReceptionMortality(CanonicalBase):
    deaths: int = 0


class MortalityCounters(CanonicalBase):
    reception: ReceptionMortality = Field(default_factory=ReceptionMortality)
    post_reception: PostReceptionMortality = Field(default_factory=PostReceptionMortality)
    total_mortality: int = 0
    mortality_rate: float = 0.0


class FishInstanceRecord(CanonicalBase):
    """One inventory unit-of-count created from a shipment line item."""
    instance_id: str
    farm_id: str
    shipment_id: str
    code: str
    code_status: CodeStatus = CodeStatus.VALID
    scientific_name: str
    common_name: str = ""
    size: str
    box_number: Optional[int] = None
    original_quantity: int
    current_quantity: int
    costs: FishCosts
    phase: str = "reception"
    lifecycle: str = "short-term"
    mortality: MortalityCounters = Field(default_factory=MortalityCounters)
    aquarium_id: Optional[str] = None
    all_treatments: List[Dict[str, Any]] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    imported_by: str
    updated_at: datetime = Field(default_factory=utc_now)


class ImportOutcome(CanonicalBase):
    shipment_id: str
    fish_count: int
    total_fish: int


# =============================================================================
# Aquarium Models
# =============================================================================

class ReceivedAquariumItem(CanonicalBase):
    """A reception item placed into an aquarium."""
    item_id: str
    plan_id: Optional[str] = None
    quantity: int
    date_added: datetime = Field(default_factory=utc_now)


class Aquarium(CanonicalBase):
    """A physical tank, stored in the farm's ``aquariums`` collection."""
    aquarium_id: str = ""
    farm_id: str = ""
    aquarium_number: TextValue = ""
    shelf: ShelfLevel = ShelfLevel.BOTTOM
    volume: float = 0
    room: str = "main"
    status: AquariumStatus = AquariumStatus.EMPTY
    occupancy_rate: float = Field(default=0, ge=0, le=1)
    total_fish: int = 0
    received_items: List[ReceivedAquariumItem] = Field(default_factory=list)
    last_cleaned: Optional[datetime] = None
    last_water_change: Optional[datetime] = None
    notes: str = ""
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class AquariumFishEntry(CanonicalBase):
    """A fish line found in an aquarium, tagged with the collection it came from."""
    source: str
    id: str
    scientific_name: Optional[str] = None
    common_name: Optional[str] = None
    size: Optional[str] = None
    quantity: int = 0
    data: Dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Reception Models
# =============================================================================

class ReceptionPlan(CanonicalBase):
    """A plan for receiving an expected shipment into the farm."""
    plan_id: str = ""
    farm_id: str
    expected_date: DateValue
    source: PlanSource
    status: PlanStatus = PlanStatus.PLANNING
    country_of_origin: str = ""
    supplier_name: str = ""
    target_room: str = ""
    shipment_reference: str = ""
    notes: str = ""
    expected_aquarium_count: int = 0
    item_count: int = 0
    received_count: int = 0
    is_locked: bool = False
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    finalized_at: Optional[datetime] = None
    locked_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ReceptionItem(CanonicalBase):
    """One planned fish line within a reception plan."""
    item_id: str = ""
    plan_id: str
    farm_id: str
    hebrew_name: TextValue
    scientific_name: str = ""
    size: TextValue
    box_number: Optional[TextValue] = None
    box_portion: str = ""
    code: TextValue = ""
    target_aquarium_id: Optional[str] = None
    target_aquarium_number: TextValue = ""
    target_room: str = ""
    quantity: IntValue = 1
    status: ItemStatus = ItemStatus.PLANNED
    notes: str = ""
    received_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class SizeBucket(CanonicalBase):
    count: int = 0
    items: List[str] = Field(default_factory=list)


class RoomBucket(CanonicalBase):
    count: int = 0
    sizes: Dict[str, int] = Field(default_factory=dict)


class WorkRequirements(CanonicalBase):
    by_size: Dict[str, SizeBucket] = Field(default_factory=dict)
    by_room: Dict[str, RoomBucket] = Field(default_factory=dict)
    total_items: int = 0
    total_aquariums_needed: int = 0


# =============================================================================
# Farm Settings
# =============================================================================

class Room(CanonicalBase):
    id: str
    label: str


class StatusDef(CanonicalBase):
    id: str
    label: str
    color: str


DEFAULT_ROOMS = [
    {"id": "reception", "label": "קליטה"},
    {"id": "main", "label": "ראשי"},
    {"id": "quarantine", "label": "הסגר"},
    {"id": "display", "label": "תצוגה"},
]

DEFAULT_STATUSES = [
    {"id": "empty", "label": "ריק", "color": "#95a5a6"},
    {"id": "occupied", "label": "תפוס", "color": "#3498db"},
    {"id": "maintenance", "label": "תחזוקה", "color": "#f39c12"},
    {"id": "in-transfer", "label": "בהעברה", "color": "#9b59b6"},
]


class FarmSettings(CanonicalBase):
    """Typed farm vocabulary, stored under ``farms/{farmId}.settings``."""
    currency: str = DEFAULT_CURRENCY
    language: str = "he"
    timezone: str = "Asia/Jerusalem"
    rooms: List[Room] = Field(
        default_factory=lambda: [Room(**r) for r in DEFAULT_ROOMS],
        **_alias("aquariumRooms", "rooms"),
    )
    statuses: List[StatusDef] = Field(
        default_factory=lambda: [StatusDef(**s) for s in DEFAULT_STATUSES],
        **_alias("aquariumStatuses", "statuses"),
    )

    def room_ids(self) -> List[str]:
        return [room.id for room in self.rooms]
