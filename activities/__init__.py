"""Activity definitions module."""

from activities.persist import (
    import_shipment_activity,
    add_plan_items_activity,
    ImportShipmentInput,
    ImportShipmentOutput,
    AddPlanItemsInput,
    AddPlanItemsOutput,
)
from activities.extract import (
    extract_document_activity,
    ExtractDocumentInput,
    ExtractDocumentOutput,
)

__all__ = [
    # Persist activities
    "import_shipment_activity",
    "add_plan_items_activity",
    "ImportShipmentInput",
    "ImportShipmentOutput",
    "AddPlanItemsInput",
    "AddPlanItemsOutput",
    # Extract activities
    "extract_document_activity",
    "ExtractDocumentInput",
    "ExtractDocumentOutput",
]
