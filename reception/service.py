"""Reception plans and their items over the document store.

Plans live in ``farms/{farmId}/reception_plans`` and items in
``farms/{farmId}/reception_items`` (linked by ``planId``). Every operation
that touches more than one document commits a single batch.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError

from core.errors import (
    DocumentNotFound,
    InvalidTransition,
    ItemAlreadyReceived,
    ItemNotFound,
    PlanIncomplete,
    PlanNotFound,
    RecordValidationError,
    StoreError,
    TransactionWriteFailure,
)
from core.models.canonical import (
    AquariumStatus,
    CandidateRecord,
    ItemStatus,
    PlanStatus,
    ReceivedAquariumItem,
    ReceptionItem,
    ReceptionPlan,
    effective_quantity,
    utc_now,
)
from core.observability.logging import get_logger, with_correlation
from reception.plan import (
    RECEIVING_STATES,
    SETTLED_ITEM_STATES,
    check_item_transition,
    check_plan_transition,
    ensure_editable,
    generate_shipment_reference,
    require_all_settled,
    require_plan_complete,
)
from storage.documents import (
    AQUARIUMS,
    RECEPTION_ITEMS,
    RECEPTION_PLANS,
    DocumentStore,
    farm_collection,
)
from validation.rules import validate, validate_reception_item, validate_reception_plan


logger = get_logger(__name__)

_PLAN_PROTECTED = (
    "planId", "farmId", "status", "itemCount", "receivedCount", "isLocked",
    "createdAt", "createdBy", "finalizedAt", "lockedAt", "completedAt",
)
_ITEM_PROTECTED = ("itemId", "planId", "farmId", "status", "receivedAt", "createdAt")

ExtractedLike = Union[CandidateRecord, Mapping[str, Any]]


def _now() -> str:
    return utc_now().isoformat()


def _plans(farm_id: str) -> str:
    return farm_collection(farm_id, RECEPTION_PLANS)


def _items(farm_id: str) -> str:
    return farm_collection(farm_id, RECEPTION_ITEMS)


def _model(model_cls, entity: str, data: Mapping[str, Any]):
    try:
        return model_cls.model_validate(dict(data))
    except ValidationError as e:
        raise RecordValidationError(
            entity, [f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors()]
        ) from e


def _commit(store: DocumentStore, batch, operation: str) -> None:
    try:
        store.commit(batch)
    except DocumentNotFound:
        raise
    except StoreError as e:
        logger.exception("Reception write failed", extra_fields={"operation": operation})
        raise TransactionWriteFailure(operation, e) from e


# =============================================================================
# Plans
# =============================================================================

def create_reception_plan(
    store: DocumentStore,
    farm_id: str,
    data: Mapping[str, Any],
    user_id: Optional[str] = None,
) -> ReceptionPlan:
    """Create a plan in ``planning`` with no items.

    A blank ``shipmentReference`` is replaced with a generated one.

    Raises:
        RecordValidationError: Missing date, source, country, supplier or room
    """
    verdict = validate_reception_plan(data)
    if not verdict.is_valid:
        raise RecordValidationError("reception plan", verdict.messages())

    plan_id = store.new_id()
    payload = {k: v for k, v in data.items() if k not in _PLAN_PROTECTED}
    payload.update({
        "planId": plan_id,
        "farmId": farm_id,
        "status": PlanStatus.PLANNING.value,
        "itemCount": 0,
        "receivedCount": 0,
        "isLocked": False,
        "createdBy": user_id,
    })
    if not (payload.get("shipmentReference") or "").strip():
        payload["shipmentReference"] = generate_shipment_reference()

    plan = _model(ReceptionPlan, "reception plan", payload)
    store.set(_plans(farm_id), plan_id, plan.to_document())

    with with_correlation(farm_id=farm_id, plan_id=plan_id):
        logger.info(
            "Reception plan created",
            extra_fields={"reference": plan.shipment_reference, "source": plan.source.value},
        )
    return plan


def get_plan(store: DocumentStore, farm_id: str, plan_id: str) -> ReceptionPlan:
    """Raises PlanNotFound when the plan does not exist."""
    doc = store.get(_plans(farm_id), plan_id)
    if doc is None:
        raise PlanNotFound(plan_id)
    return ReceptionPlan.model_validate(doc)


def list_plans(
    store: DocumentStore,
    farm_id: str,
    status: Optional[Union[str, PlanStatus]] = None,
) -> List[ReceptionPlan]:
    """Plans of a farm, latest expected date first, optionally of one status."""
    where = {"status": PlanStatus(status).value} if status else None
    docs = store.query(_plans(farm_id), where=where, order_by="expectedDate", descending=True)
    return [ReceptionPlan.model_validate(doc) for doc in docs]


def update_plan(
    store: DocumentStore,
    farm_id: str,
    plan_id: str,
    updates: Mapping[str, Any],
) -> ReceptionPlan:
    """Change plan header fields while the plan is still editable.

    Status, counters and timestamps are managed by the state machine and
    are ignored here.

    Raises:
        PlanNotFound: No such plan
        PlanLocked: The plan is locked or later
        RecordValidationError: The updated plan would be invalid
    """
    plan = get_plan(store, farm_id, plan_id)
    ensure_editable(plan_id, plan.status)

    merged = plan.to_document()
    merged.update({k: v for k, v in updates.items() if k not in _PLAN_PROTECTED})
    merged["updatedAt"] = _now()

    verdict = validate_reception_plan(merged)
    if not verdict.is_valid:
        raise RecordValidationError("reception plan", verdict.messages())
    updated = _model(ReceptionPlan, "reception plan", merged)

    store.set(_plans(farm_id), plan_id, updated.to_document())
    with with_correlation(farm_id=farm_id, plan_id=plan_id):
        logger.info("Reception plan updated", extra_fields={"fields": sorted(updates)})
    return updated


def delete_plan(store: DocumentStore, farm_id: str, plan_id: str) -> int:
    """Delete a plan together with all its items; returns the number of items removed."""
    get_plan(store, farm_id, plan_id)
    items = store.query(_items(farm_id), where={"planId": plan_id})

    batch = store.batch()
    for item in items:
        batch.delete(_items(farm_id), item["itemId"])
    batch.delete(_plans(farm_id), plan_id)

    with with_correlation(farm_id=farm_id, plan_id=plan_id):
        _commit(store, batch, "delete reception plan")
        logger.info("Reception plan deleted", extra_fields={"items": len(items)})
    return len(items)


def previous_countries(store: DocumentStore, farm_id: str) -> List[str]:
    """Distinct countries of origin used by the farm's plans, sorted."""
    return _distinct(store.query(_plans(farm_id)), "countryOfOrigin")


def previous_suppliers(store: DocumentStore, farm_id: str) -> List[str]:
    return _distinct(store.query(_plans(farm_id)), "supplierName")


def _distinct(docs: Iterable[Mapping[str, Any]], field_name: str) -> List[str]:
    return sorted({doc[field_name] for doc in docs if doc.get(field_name)})


# =============================================================================
# Items
# =============================================================================

def get_item(store: DocumentStore, farm_id: str, item_id: str) -> ReceptionItem:
    """Raises ItemNotFound when the item does not exist."""
    doc = store.get(_items(farm_id), item_id)
    if doc is None:
        raise ItemNotFound(item_id)
    return ReceptionItem.model_validate(doc)


def list_items(store: DocumentStore, farm_id: str, plan_id: str) -> List[ReceptionItem]:
    """Items of a plan in the order they were added."""
    docs = store.query(_items(farm_id), where={"planId": plan_id})
    return [ReceptionItem.model_validate(doc) for doc in docs]


def _fill_aquarium(store: DocumentStore, farm_id: str, payload: Dict[str, Any]) -> None:
    """Copy number and room from the target aquarium when the caller left them blank."""
    aquarium_id = payload.get("targetAquariumId")
    if not aquarium_id:
        return
    aquarium = store.get(farm_collection(farm_id, AQUARIUMS), aquarium_id)
    if aquarium is None:
        raise DocumentNotFound(farm_collection(farm_id, AQUARIUMS), aquarium_id)
    if not payload.get("targetAquariumNumber"):
        payload["targetAquariumNumber"] = aquarium.get("aquariumNumber", "")
    if not payload.get("targetRoom"):
        payload["targetRoom"] = aquarium.get("room", "")


def _assignment_required(plan: ReceptionPlan) -> bool:
    """Items of a finalized plan must keep a target aquarium."""
    return PlanStatus(plan.status) == PlanStatus.FINALIZED


def _new_item(
    store: DocumentStore,
    farm_id: str,
    plan_id: str,
    data: Mapping[str, Any],
    require_aquarium: bool = False,
) -> ReceptionItem:
    verdict = validate_reception_item(data, require_aquarium=require_aquarium)
    if not verdict.is_valid:
        raise RecordValidationError("reception item", verdict.messages())

    payload = {k: v for k, v in data.items() if k not in _ITEM_PROTECTED}
    payload.update({
        "itemId": store.new_id(),
        "planId": plan_id,
        "farmId": farm_id,
        "status": ItemStatus.PLANNED.value,
    })
    _fill_aquarium(store, farm_id, payload)
    return _model(ReceptionItem, "reception item", payload)


def add_item(
    store: DocumentStore,
    farm_id: str,
    plan_id: str,
    data: Mapping[str, Any],
) -> ReceptionItem:
    """Add a planned item to an editable plan and bump its item count.

    The target aquarium may be left unassigned while the plan is still being
    planned; a finalized plan only accepts assigned items.

    Raises:
        PlanNotFound: No such plan
        PlanLocked: The plan is locked or later
        RecordValidationError: Missing hebrewName or size, quantity <= 0, or
            no target aquarium on a finalized plan
    """
    plan = get_plan(store, farm_id, plan_id)
    ensure_editable(plan_id, plan.status)
    item = _new_item(store, farm_id, plan_id, data, require_aquarium=_assignment_required(plan))

    batch = store.batch()
    batch.set(_items(farm_id), item.item_id, item.to_document())
    batch.update(_plans(farm_id), plan_id, {"itemCount": plan.item_count + 1, "updatedAt": _now()})

    with with_correlation(farm_id=farm_id, plan_id=plan_id, item_id=item.item_id):
        _commit(store, batch, "add reception item")
        logger.info("Reception item added", extra_fields={"name": item.hebrew_name, "size": item.size})
    return item


def add_extracted_items(
    store: DocumentStore,
    farm_id: str,
    plan_id: str,
    records: Sequence[ExtractedLike],
) -> List[ReceptionItem]:
    """Attach extracted line items to a plan as unassigned planned items.

    Records failing shipment validation are skipped. The hebrew name falls
    back to the common name, then the scientific name; the quantity is the
    derived total quantity.

    Raises:
        PlanLocked: The plan is locked or later
        RecordValidationError: The plan is finalized, so unassigned items are refused
    """
    plan = get_plan(store, farm_id, plan_id)
    ensure_editable(plan_id, plan.status)
    if _assignment_required(plan):
        raise RecordValidationError("reception item", ["Target aquarium is required"])

    items: List[ReceptionItem] = []
    for raw in records:
        record = raw if isinstance(raw, CandidateRecord) else CandidateRecord.from_source(raw)
        if not validate(record).is_valid:
            continue
        items.append(_new_item(store, farm_id, plan_id, {
            "hebrewName": record.common_name or record.scientific_name,
            "scientificName": record.scientific_name or "",
            "size": record.size,
            "boxNumber": record.box_number,
            "boxPortion": record.box_portion or "",
            "code": record.code or "",
            "quantity": effective_quantity(record),
        }))

    if not items:
        return []

    batch = store.batch()
    for item in items:
        batch.set(_items(farm_id), item.item_id, item.to_document())
    batch.update(_plans(farm_id), plan_id, {"itemCount": plan.item_count + len(items), "updatedAt": _now()})

    with with_correlation(farm_id=farm_id, plan_id=plan_id):
        _commit(store, batch, "add extracted items")
        logger.info(
            "Extracted items added to plan",
            extra_fields={"added": len(items), "skipped": len(records) - len(items)},
        )
    return items


def update_item(
    store: DocumentStore,
    farm_id: str,
    item_id: str,
    updates: Mapping[str, Any],
) -> ReceptionItem:
    """Edit a planned item of an editable plan.

    Raises:
        ItemNotFound: No such item
        PlanLocked: The item's plan is locked or later
        RecordValidationError: The updated item would be invalid
    """
    item = get_item(store, farm_id, item_id)
    plan = get_plan(store, farm_id, item.plan_id)
    ensure_editable(plan.plan_id, plan.status)

    merged = item.to_document()
    changes = {k: v for k, v in updates.items() if k not in _ITEM_PROTECTED}
    if "targetAquariumId" in changes:
        merged["targetAquariumNumber"] = ""
        merged["targetRoom"] = ""
    merged.update(changes)
    merged["updatedAt"] = _now()

    verdict = validate_reception_item(merged, require_aquarium=_assignment_required(plan))
    if not verdict.is_valid:
        raise RecordValidationError("reception item", verdict.messages())
    _fill_aquarium(store, farm_id, merged)
    updated = _model(ReceptionItem, "reception item", merged)

    store.set(_items(farm_id), item_id, updated.to_document())
    with with_correlation(farm_id=farm_id, plan_id=plan.plan_id, item_id=item_id):
        logger.info("Reception item updated", extra_fields={"fields": sorted(changes)})
    return updated


def delete_item(store: DocumentStore, farm_id: str, item_id: str) -> None:
    """Remove an item from an editable plan and decrement its item count."""
    item = get_item(store, farm_id, item_id)
    plan = get_plan(store, farm_id, item.plan_id)
    ensure_editable(plan.plan_id, plan.status)

    batch = store.batch()
    batch.delete(_items(farm_id), item_id)
    batch.update(_plans(farm_id), plan.plan_id, {
        "itemCount": max(0, plan.item_count - 1),
        "updatedAt": _now(),
    })

    with with_correlation(farm_id=farm_id, plan_id=plan.plan_id, item_id=item_id):
        _commit(store, batch, "delete reception item")
        logger.info("Reception item deleted")


# =============================================================================
# Lifecycle
# =============================================================================

def transition_plan(
    store: DocumentStore,
    farm_id: str,
    plan_id: str,
    target: Union[str, PlanStatus],
) -> ReceptionPlan:
    """Move a plan to ``target``, enforcing the state machine and its gates.

    - finalized (from planning) and locked require a complete plan: at least
      one item and every item assigned to an aquarium
    - completed requires every item received or cancelled
    - locked and later states set ``isLocked``; going back to finalized clears it

    Raises:
        PlanNotFound: No such plan
        InvalidTransition: The state machine forbids the move
        PlanIncomplete: A gate failed
    """
    plan = get_plan(store, farm_id, plan_id)
    target = check_plan_transition(plan.status, target)
    now = _now()
    changes: Dict[str, Any] = {"status": target.value, "updatedAt": now}

    if target in (PlanStatus.FINALIZED, PlanStatus.LOCKED) and plan.status != PlanStatus.LOCKED:
        require_plan_complete(list_items(store, farm_id, plan_id))
    if target == PlanStatus.COMPLETED:
        require_all_settled(list_items(store, farm_id, plan_id))

    if target == PlanStatus.FINALIZED:
        changes["isLocked"] = False
        if plan.status != PlanStatus.LOCKED:
            changes["finalizedAt"] = now
    elif target == PlanStatus.LOCKED:
        changes.update({"isLocked": True, "lockedAt": now})
    elif target == PlanStatus.COMPLETED:
        changes.update({"isLocked": True, "completedAt": now})
    elif target == PlanStatus.IN_PROGRESS:
        changes["isLocked"] = True

    store.update(_plans(farm_id), plan_id, changes)
    with with_correlation(farm_id=farm_id, plan_id=plan_id):
        logger.info(
            "Reception plan status changed",
            extra_fields={"from": plan.status.value, "to": target.value},
        )
    return get_plan(store, farm_id, plan_id)


def finalize_plan(store: DocumentStore, farm_id: str, plan_id: str) -> ReceptionPlan:
    return transition_plan(store, farm_id, plan_id, PlanStatus.FINALIZED)


def lock_plan(store: DocumentStore, farm_id: str, plan_id: str) -> ReceptionPlan:
    """Lock a finalized plan; its items can no longer change."""
    return transition_plan(store, farm_id, plan_id, PlanStatus.LOCKED)


def unlock_plan(store: DocumentStore, farm_id: str, plan_id: str) -> ReceptionPlan:
    """Return a locked plan to ``finalized`` so its items can be edited again."""
    plan = get_plan(store, farm_id, plan_id)
    if plan.status != PlanStatus.LOCKED:
        raise InvalidTransition("plan", plan.status.value, PlanStatus.FINALIZED.value)
    return transition_plan(store, farm_id, plan_id, PlanStatus.FINALIZED)


def _status_after(items: Sequence[ReceptionItem]) -> PlanStatus:
    """Completed once every item is settled and at least one was received."""
    settled = all(item.status in SETTLED_ITEM_STATES for item in items)
    received = any(item.status == ItemStatus.RECEIVED for item in items)
    return PlanStatus.COMPLETED if settled and received else PlanStatus.IN_PROGRESS


def receive_item(store: DocumentStore, farm_id: str, item_id: str) -> ReceptionItem:
    """Confirm physical receipt of a planned item.

    In one batch: the item becomes ``received``, its quantity is added to the
    target aquarium (which becomes ``occupied``), and the plan's received
    count is incremented. The plan moves to ``completed`` when nothing is
    left planned, otherwise to ``in-progress``.

    Raises:
        ItemNotFound: No such item
        ItemAlreadyReceived: The item was received before
        InvalidTransition: The item is cancelled, or the plan is not locked or in progress
        PlanIncomplete: The item has no target aquarium
        DocumentNotFound: The target aquarium does not exist
        TransactionWriteFailure: The batch failed; nothing was written
    """
    item = get_item(store, farm_id, item_id)
    if item.status == ItemStatus.RECEIVED:
        raise ItemAlreadyReceived(item_id)
    check_item_transition(item.status, ItemStatus.RECEIVED)

    plan = get_plan(store, farm_id, item.plan_id)
    if plan.status not in RECEIVING_STATES:
        raise InvalidTransition("plan", plan.status.value, PlanStatus.IN_PROGRESS.value)
    if not item.target_aquarium_id:
        raise PlanIncomplete([f"Item {item_id} has no target aquarium assigned"])

    aquariums = farm_collection(farm_id, AQUARIUMS)
    aquarium = store.require(aquariums, item.target_aquarium_id)
    now = utc_now()

    received_items = list(aquarium.get("receivedItems") or [])
    received_items.append(ReceivedAquariumItem(
        item_id=item_id,
        plan_id=plan.plan_id,
        quantity=item.quantity,
        date_added=now,
    ).to_document())

    remaining = [
        other if other.item_id != item_id else item.model_copy(update={"status": ItemStatus.RECEIVED})
        for other in list_items(store, farm_id, plan.plan_id)
    ]
    next_status = _status_after(remaining)

    plan_changes: Dict[str, Any] = {
        "receivedCount": plan.received_count + 1,
        "status": next_status.value,
        "isLocked": True,
        "updatedAt": now.isoformat(),
    }
    if next_status == PlanStatus.COMPLETED:
        plan_changes["completedAt"] = now.isoformat()

    batch = store.batch()
    batch.update(aquariums, item.target_aquarium_id, {
        "receivedItems": received_items,
        "totalFish": int(aquarium.get("totalFish") or 0) + item.quantity,
        "status": AquariumStatus.OCCUPIED.value,
        "updatedAt": now.isoformat(),
    })
    batch.update(_items(farm_id), item_id, {
        "status": ItemStatus.RECEIVED.value,
        "receivedAt": now.isoformat(),
        "updatedAt": now.isoformat(),
    })
    batch.update(_plans(farm_id), plan.plan_id, plan_changes)

    with with_correlation(farm_id=farm_id, plan_id=plan.plan_id, item_id=item_id, stage="receive"):
        _commit(store, batch, "receive item")
        logger.info(
            "Reception item received",
            extra_fields={
                "aquarium_id": item.target_aquarium_id,
                "quantity": item.quantity,
                "plan_status": next_status.value,
            },
        )
    return get_item(store, farm_id, item_id)


def cancel_item(store: DocumentStore, farm_id: str, item_id: str) -> ReceptionItem:
    """Cancel a planned item; a receiving plan with nothing left planned completes."""
    item = get_item(store, farm_id, item_id)
    check_item_transition(item.status, ItemStatus.CANCELLED)
    plan = get_plan(store, farm_id, item.plan_id)
    if plan.status in (PlanStatus.COMPLETED, PlanStatus.CANCELLED):
        raise InvalidTransition("item", item.status.value, ItemStatus.CANCELLED.value)

    now = _now()
    batch = store.batch()
    batch.update(_items(farm_id), item_id, {"status": ItemStatus.CANCELLED.value, "updatedAt": now})

    if plan.status == PlanStatus.IN_PROGRESS:
        remaining = [
            other if other.item_id != item_id else item.model_copy(update={"status": ItemStatus.CANCELLED})
            for other in list_items(store, farm_id, plan.plan_id)
        ]
        if _status_after(remaining) == PlanStatus.COMPLETED:
            batch.update(_plans(farm_id), plan.plan_id, {
                "status": PlanStatus.COMPLETED.value,
                "completedAt": now,
                "updatedAt": now,
            })

    with with_correlation(farm_id=farm_id, plan_id=plan.plan_id, item_id=item_id):
        _commit(store, batch, "cancel item")
        logger.info("Reception item cancelled")
    return get_item(store, farm_id, item_id)
