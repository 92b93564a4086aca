"""Persistence activities for the shipment intake pipeline.

Activities that write extracted lines to the document store: as a new
shipment with its fish instances, or as planned items of a reception plan.
"""

import time
from dataclasses import dataclass, field
from typing import List, Optional

from temporalio import activity

from core.models.canonical import ShipmentMetadata
from core.observability.logging import (
    log_activity_complete,
    log_activity_error,
    log_activity_start,
    with_correlation,
)
from core.errors import FishFarmError
from inventory.shipments import import_shipment
from reception.service import add_extracted_items
from storage.documents import DocumentStore, open_store


@dataclass
class ImportShipmentInput:
    """Input for import_shipment_activity.

    Attributes:
        farm_id: Farm receiving the shipment
        user_id: Operator who triggered the import
        items: Candidate records as camelCase dicts
        supplier: Supplier name
        date_received: ISO date the shipment arrived
        notes: Free text notes
    """
    farm_id: str
    user_id: str
    items: List[dict] = field(default_factory=list)
    supplier: Optional[str] = None
    date_received: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class ImportShipmentOutput:
    shipment_id: str
    fish_count: int
    total_fish: int


@dataclass
class AddPlanItemsInput:
    """Input for add_plan_items_activity.

    Attributes:
        farm_id: Farm owning the plan
        plan_id: Reception plan receiving the items
        items: Candidate records as camelCase dicts
    """
    farm_id: str
    plan_id: str
    items: List[dict] = field(default_factory=list)


@dataclass
class AddPlanItemsOutput:
    plan_id: str
    item_ids: List[str] = field(default_factory=list)
    added: int = 0


def get_store() -> DocumentStore:
    """Store used by the activities; configured from the environment."""
    return open_store()


@activity.defn
async def import_shipment_activity(input: ImportShipmentInput) -> ImportShipmentOutput:
    """Import extracted lines as one shipment plus its fish instances.

    Precondition errors (Unauthenticated, MissingFarm, EmptyImport) and
    TransactionWriteFailure propagate; the workflow decides which are retried.

    Args:
        input: ImportShipmentInput with farm, user, metadata and items

    Returns:
        ImportShipmentOutput with the new shipment id and counts
    """
    start = time.monotonic()
    with with_correlation(farm_id=input.farm_id, activity_name="import_shipment", stage="import"):
        log_activity_start("import_shipment", lines=len(input.items))

        metadata = ShipmentMetadata(
            supplier=input.supplier,
            date_received=input.date_received,
            notes=input.notes,
        )
        try:
            outcome = import_shipment(get_store(), input.farm_id, metadata, input.items, input.user_id)
        except FishFarmError as e:
            log_activity_error("import_shipment", str(e), error_code=e.code)
            raise

        log_activity_complete(
            "import_shipment",
            duration_ms=(time.monotonic() - start) * 1000,
            shipment_id=outcome.shipment_id,
            total_fish=outcome.total_fish,
        )

    return ImportShipmentOutput(
        shipment_id=outcome.shipment_id,
        fish_count=outcome.fish_count,
        total_fish=outcome.total_fish,
    )


@activity.defn
async def add_plan_items_activity(input: AddPlanItemsInput) -> AddPlanItemsOutput:
    """Attach extracted lines to a reception plan as unassigned planned items."""
    start = time.monotonic()
    with with_correlation(
        farm_id=input.farm_id,
        plan_id=input.plan_id,
        activity_name="add_plan_items",
        stage="plan",
    ):
        log_activity_start("add_plan_items", lines=len(input.items))
        try:
            items = add_extracted_items(get_store(), input.farm_id, input.plan_id, input.items)
        except FishFarmError as e:
            log_activity_error("add_plan_items", str(e), error_code=e.code)
            raise

        log_activity_complete(
            "add_plan_items",
            duration_ms=(time.monotonic() - start) * 1000,
            added=len(items),
        )

    return AddPlanItemsOutput(
        plan_id=input.plan_id,
        item_ids=[item.item_id for item in items],
        added=len(items),
    )
