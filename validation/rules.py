"""Record validation rules.

Every validator is a pure function returning a ValidationVerdict that lists
*all* violated rules, never just the first one, so an operator can fix a
row in one pass. Nothing here raises for bad data; write paths decide what
to do with an invalid verdict.

Rule sets:
- shipment line items (``validate`` / ``validate_candidate``)
- aquariums (``validate_aquarium``)
- reception plans and reception items
- farm settings (``validate_farm_settings``)
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Mapping, Optional, Union

from pydantic import BaseModel

from core.errors import MISSING_MANDATORY_FIELD
from core.models.canonical import (
    CandidateRecord,
    FarmSettings,
    FieldIssue,
    PlanSource,
    ValidationVerdict,
)


HIGH_PRICE_THRESHOLD = Decimal("10000")
KNOWN_CURRENCIES = ("ILS", "USD", "EUR")
COLOR_PATTERN = re.compile(r"^#[0-9a-fA-F]{6}$")

RecordLike = Union[BaseModel, Mapping[str, Any]]


# =============================================================================
# Helpers
# =============================================================================

def _as_mapping(data: RecordLike) -> Mapping[str, Any]:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="python", by_alias=True)
    return data


def _field(data: Mapping[str, Any], camel: str, snake: Optional[str] = None) -> Any:
    """Read a field by its stored (camelCase) name, falling back to snake_case."""
    if camel in data:
        return data[camel]
    if snake and snake in data:
        return data[snake]
    return None


def _blank(value: Any) -> bool:
    """True for None and for strings that are empty after trimming."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return False


def _number(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None


def _verdict(errors: List[FieldIssue], warnings: Iterable[str] = ()) -> ValidationVerdict:
    return ValidationVerdict(is_valid=not errors, errors=errors, warnings=list(warnings))


def _missing(field_name: str, message: str) -> FieldIssue:
    return FieldIssue(field=field_name, message=message, code=MISSING_MANDATORY_FIELD)


def _invalid(field_name: str, message: str) -> FieldIssue:
    return FieldIssue(field=field_name, message=message, code="INVALID_VALUE")


# =============================================================================
# Shipment Line Items
# =============================================================================

def validate(record: Union[CandidateRecord, Mapping[str, Any]]) -> ValidationVerdict:
    """Validate one shipment line item.

    Mandatory: scientificName and size (non-empty after trimming) and boxNumber.
    The box number check is presence-based: ``0`` is a valid box, ``None`` is not.

    Warnings (never affect validity): missing code, unit price above 10000,
    a total that disagrees with bags x quantity per bag, unknown currency.

    Args:
        record: A CandidateRecord, or a mapping accepted by CandidateRecord

    Returns:
        ValidationVerdict with one error per violated rule
    """
    if not isinstance(record, CandidateRecord):
        record = CandidateRecord.model_validate(dict(record))

    errors: List[FieldIssue] = []
    if _blank(record.scientific_name):
        errors.append(_missing("scientificName", "Scientific name is required"))
    if _blank(record.size):
        errors.append(_missing("size", "Size is required"))
    if record.box_number is None:
        errors.append(_missing("boxNumber", "Box number is required"))

    warnings: List[str] = []
    if _blank(record.code):
        warnings.append("Missing fish code - one will be generated on import")
    if record.unit_price is not None and record.unit_price > HIGH_PRICE_THRESHOLD:
        warnings.append(f"Unusually high unit price: {record.unit_price}")
    if (
        record.total_quantity is not None
        and record.bag_count is not None
        and record.quantity_per_bag is not None
        and record.total_quantity != record.bag_count * record.quantity_per_bag
    ):
        warnings.append(
            f"Total quantity {record.total_quantity} does not match "
            f"{record.bag_count} bags x {record.quantity_per_bag} per bag"
        )
    if record.currency and record.currency.upper() not in KNOWN_CURRENCIES:
        warnings.append(f"Unknown currency: {record.currency}")

    return _verdict(errors, warnings)


validate_candidate = validate


# =============================================================================
# Aquariums
# =============================================================================

def validate_aquarium(data: RecordLike) -> ValidationVerdict:
    """Aquarium rules: aquariumNumber and room required, volume required and > 0."""
    data = _as_mapping(data)
    errors: List[FieldIssue] = []

    if _blank(_field(data, "aquariumNumber", "aquarium_number")):
        errors.append(_missing("aquariumNumber", "Aquarium number is required"))

    volume = _number(_field(data, "volume"))
    if volume is None or volume <= 0:
        errors.append(_invalid("volume", "Volume must be greater than 0"))

    if _blank(_field(data, "room")):
        errors.append(_missing("room", "Room/Location is required"))

    return _verdict(errors)


# =============================================================================
# Reception Plans / Items
# =============================================================================

def validate_reception_plan(data: RecordLike) -> ValidationVerdict:
    """Plan rules: expectedDate, source in {excel, manual}, country, supplier, target room."""
    data = _as_mapping(data)
    errors: List[FieldIssue] = []

    if _blank(_field(data, "expectedDate", "expected_date")):
        errors.append(_missing("expectedDate", "Expected shipment date is required"))

    source = _field(data, "source")
    source_value = getattr(source, "value", source)
    if source_value not in {s.value for s in PlanSource}:
        errors.append(_invalid("source", "Source must be 'excel' or 'manual'"))

    if _blank(_field(data, "countryOfOrigin", "country_of_origin")):
        errors.append(_missing("countryOfOrigin", "Country of origin is required"))
    if _blank(_field(data, "supplierName", "supplier_name")):
        errors.append(_missing("supplierName", "Supplier name is required"))
    if _blank(_field(data, "targetRoom", "target_room")):
        errors.append(_missing("targetRoom", "Target room is required"))

    return _verdict(errors)


def validate_reception_item(data: RecordLike, require_aquarium: bool = True) -> ValidationVerdict:
    """Item rules: hebrewName, size and targetAquariumId required; quantity > 0 when given.

    ``require_aquarium=False`` accepts draft items that are not yet assigned to
    an aquarium; assignment is enforced later by ``validate_plan_complete``.
    """
    data = _as_mapping(data)
    errors: List[FieldIssue] = []

    if _blank(_field(data, "hebrewName", "hebrew_name")):
        errors.append(_missing("hebrewName", "Hebrew name is required"))
    if _blank(_field(data, "size")):
        errors.append(_missing("size", "Size is required"))
    if require_aquarium and _blank(_field(data, "targetAquariumId", "target_aquarium_id")):
        errors.append(_missing("targetAquariumId", "Target aquarium is required"))

    quantity = _field(data, "quantity")
    if quantity is not None:
        number = _number(quantity)
        if number is None or number <= 0:
            errors.append(_invalid("quantity", "Quantity must be greater than 0"))

    return _verdict(errors)


# =============================================================================
# Farm Settings
# =============================================================================

def validate_farm_settings(settings: FarmSettings) -> List[str]:
    """Return every problem with a settings object; an empty list means valid."""
    problems: List[str] = []

    if not settings.rooms:
        problems.append("At least one room is required")
    seen_rooms = set()
    for index, room in enumerate(settings.rooms):
        if _blank(room.id):
            problems.append(f"Room #{index + 1} has no id")
        elif room.id in seen_rooms:
            problems.append(f"Duplicate room id: {room.id}")
        seen_rooms.add(room.id)
        if _blank(room.label):
            problems.append(f"Room '{room.id}' has no label")

    if not settings.statuses:
        problems.append("At least one aquarium status is required")
    seen_statuses = set()
    for index, status in enumerate(settings.statuses):
        if _blank(status.id):
            problems.append(f"Status #{index + 1} has no id")
        elif status.id in seen_statuses:
            problems.append(f"Duplicate status id: {status.id}")
        seen_statuses.add(status.id)
        if _blank(status.label):
            problems.append(f"Status '{status.id}' has no label")
        if not COLOR_PATTERN.match(status.color or ""):
            problems.append(f"Status '{status.id}' color must look like #rrggbb")

    if _blank(settings.currency):
        problems.append("Currency is required")

    return problems
