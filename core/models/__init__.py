"""Core data models - canonical fish farm records.

Extraction output, persisted inventory, aquariums, reception plans and farm
settings share one set of pydantic models serialized in camelCase.
"""

from core.models.canonical import (
    # Base
    CanonicalBase,
    DecimalValue,
    IntValue,
    DateValue,
    effective_quantity,

    # Enumerations
    AquariumStatus,
    CodeStatus,
    ItemStatus,
    PlanSource,
    PlanStatus,
    ShelfLevel,

    # Extraction
    CandidateRecord,
    FieldIssue,
    ValidationVerdict,
    ExtractedRow,
    ExtractionSummary,
    ExtractedMeta,
    ExtractionResult,

    # Inventory
    ShipmentMetadata,
    ShipmentRecord,
    FishCosts,
    MortalityCounters,
    FishInstanceRecord,
    ImportOutcome,
    Aquarium,
    AquariumFishEntry,
    ReceivedAquariumItem,

    # Reception
    ReceptionPlan,
    ReceptionItem,
    SizeBucket,
    RoomBucket,
    WorkRequirements,

    # Farm settings
    FarmSettings,
    Room,
    StatusDef,
)

__all__ = [
    "CanonicalBase",
    "DecimalValue",
    "IntValue",
    "DateValue",
    "effective_quantity",
    "AquariumStatus",
    "CodeStatus",
    "ItemStatus",
    "PlanSource",
    "PlanStatus",
    "ShelfLevel",
    "CandidateRecord",
    "FieldIssue",
    "ValidationVerdict",
    "ExtractedRow",
    "ExtractionSummary",
    "ExtractedMeta",
    "ExtractionResult",
    "ShipmentMetadata",
    "ShipmentRecord",
    "FishCosts",
    "MortalityCounters",
    "FishInstanceRecord",
    "ImportOutcome",
    "Aquarium",
    "AquariumFishEntry",
    "ReceivedAquariumItem",
    "ReceptionPlan",
    "ReceptionItem",
    "SizeBucket",
    "RoomBucket",
    "WorkRequirements",
    "FarmSettings",
    "Room",
    "StatusDef",
]
