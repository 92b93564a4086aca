"""Shipment import and shipment queries.

``import_shipment`` turns validated candidate records into one ShipmentRecord
plus one FishInstanceRecord per line, written as a single batch: a failed
import leaves no shipment and no instances behind.
"""

import secrets
import string
import time
from datetime import date
from decimal import Decimal
from typing import Any, List, Mapping, Optional, Sequence, Union

from core.errors import (
    EmptyImport,
    MissingFarm,
    StoreError,
    TransactionWriteFailure,
    Unauthenticated,
)
from core.models.canonical import (
    DEFAULT_CURRENCY,
    CandidateRecord,
    CodeStatus,
    FishCosts,
    FishInstanceRecord,
    ImportOutcome,
    ShipmentMetadata,
    ShipmentRecord,
    effective_quantity,
)
from core.observability.logging import get_logger, with_correlation
from storage.documents import (
    FISH_INSTANCES,
    SHIPMENTS,
    DocumentStore,
    farm_collection,
)


logger = get_logger(__name__)

_CODE_ALPHABET = string.ascii_lowercase + string.digits

ItemLike = Union[CandidateRecord, Mapping[str, Any]]


def generate_missing_code() -> str:
    """Placeholder code for a line without one: ``MISSING-<epoch ms>-<6 chars>``."""
    suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(6))
    return f"MISSING-{int(time.time() * 1000)}-{suffix}"


def _as_candidate(item: ItemLike) -> CandidateRecord:
    if isinstance(item, CandidateRecord):
        return item
    return CandidateRecord.from_source(item)


def _unit_price(item: CandidateRecord) -> Decimal:
    return item.unit_price if item.unit_price is not None else Decimal("0")


# =============================================================================
# Import
# =============================================================================

def build_instance(
    item: CandidateRecord,
    instance_id: str,
    farm_id: str,
    shipment_id: str,
    user_id: str,
) -> FishInstanceRecord:
    """Initial inventory record for one shipment line.

    All per-fish costs start equal to the invoice price; mortality counters
    start at zero and the fish are not yet in an aquarium.
    """
    quantity = effective_quantity(item)
    price = _unit_price(item)
    code = item.code or generate_missing_code()

    return FishInstanceRecord(
        instance_id=instance_id,
        farm_id=farm_id,
        shipment_id=shipment_id,
        code=code,
        code_status=CodeStatus.VALID if item.code else CodeStatus.MISSING,
        scientific_name=item.scientific_name or "",
        common_name=item.common_name or "",
        size=item.size or "",
        box_number=item.box_number,
        original_quantity=quantity,
        current_quantity=quantity,
        costs=FishCosts(
            invoice_cost_per_fish=price,
            arrival_cost_per_fish=price,
            current_cost_per_fish=price,
            total_invoice_cost=price * quantity,
            currency=item.currency or DEFAULT_CURRENCY,
        ),
        imported_by=user_id,
    )


def import_shipment(
    store: DocumentStore,
    farm_id: Optional[str],
    metadata: ShipmentMetadata,
    items: Sequence[ItemLike],
    user_id: Optional[str],
) -> ImportOutcome:
    """Persist a shipment and its fish instances atomically.

    Args:
        store: Document store
        farm_id: Farm receiving the shipment
        metadata: Supplier, date received and notes
        items: Validated line items (CandidateRecords or raw mappings)
        user_id: Authenticated caller

    Returns:
        ImportOutcome with the new shipment id, number of lines and total fish

    Raises:
        Unauthenticated: No caller identity
        MissingFarm: No farm id
        EmptyImport: No items
        TransactionWriteFailure: The batch failed; nothing was written
    """
    if not user_id:
        raise Unauthenticated()
    if not farm_id:
        raise MissingFarm()
    if not items:
        raise EmptyImport()

    records: List[CandidateRecord] = [_as_candidate(item) for item in items]
    shipment_id = store.new_id()

    with with_correlation(farm_id=farm_id, shipment_id=shipment_id, stage="import"):
        total_fish = sum(effective_quantity(record) for record in records)
        total_cost = sum(
            (Decimal(effective_quantity(record)) * _unit_price(record) for record in records),
            Decimal("0"),
        )

        shipment = ShipmentRecord(
            shipment_id=shipment_id,
            farm_id=farm_id,
            supplier=metadata.supplier or "",
            date_received=metadata.date_received or date.today(),
            total_item_types=len(records),
            total_fish_count=total_fish,
            total_cost=total_cost,
            currency=records[0].currency or DEFAULT_CURRENCY,
            notes=metadata.notes,
            created_by=user_id,
        )

        batch = store.batch()
        batch.set(farm_collection(farm_id, SHIPMENTS), shipment_id, shipment.to_document())
        instances_path = farm_collection(farm_id, FISH_INSTANCES)
        for record in records:
            instance_id = store.new_id()
            instance = build_instance(record, instance_id, farm_id, shipment_id, user_id)
            batch.set(instances_path, instance_id, instance.to_document())

        try:
            store.commit(batch)
        except StoreError as e:
            logger.exception(
                "Shipment import rolled back",
                extra_fields={"lines": len(records)},
            )
            raise TransactionWriteFailure("import shipment", e) from e

        logger.info(
            "Shipment imported",
            extra_fields={"lines": len(records), "total_fish": total_fish, "total_cost": str(total_cost)},
        )

    return ImportOutcome(shipment_id=shipment_id, fish_count=len(records), total_fish=total_fish)


# =============================================================================
# Queries
# =============================================================================

def get_shipments(store: DocumentStore, farm_id: str) -> List[ShipmentRecord]:
    """All shipments of a farm, most recently received first."""
    docs = store.query(farm_collection(farm_id, SHIPMENTS), order_by="dateReceived", descending=True)
    return [ShipmentRecord.model_validate(doc) for doc in docs]


def get_shipment(store: DocumentStore, farm_id: str, shipment_id: str) -> ShipmentRecord:
    """Raises DocumentNotFound when the shipment does not exist."""
    doc = store.require(farm_collection(farm_id, SHIPMENTS), shipment_id)
    return ShipmentRecord.model_validate(doc)


def get_shipment_fish(store: DocumentStore, farm_id: str, shipment_id: str) -> List[FishInstanceRecord]:
    docs = store.query(farm_collection(farm_id, FISH_INSTANCES), where={"shipmentId": shipment_id})
    return [FishInstanceRecord.model_validate(doc) for doc in docs]
