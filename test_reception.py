"""
Reception Planning Test

Validates reception plans end to end against a throwaway SQLite store:
1. Plan and item state machines
2. Completeness gates (finalize/lock) and the settled gate (complete)
3. Receiving items into aquariums, plan auto-progression
4. Work requirements rollup
5. Shipment reference format
"""

import re
from datetime import datetime

import pytest

from core.errors import (
    DocumentNotFound,
    InvalidTransition,
    ItemAlreadyReceived,
    PlanIncomplete,
    PlanLocked,
    PlanNotFound,
    RecordValidationError,
)
from core.models.canonical import ItemStatus, PlanStatus, ReceptionItem
from inventory.aquariums import create_aquarium, get_aquarium
from reception import service
from reception.plan import (
    all_items_settled,
    can_transition,
    check_item_transition,
    check_plan_transition,
    generate_shipment_reference,
    validate_plan_complete,
)
from reception.requirements import UNASSIGNED_ROOM, calculate_work_requirements
from storage.documents import SQLiteDocumentStore


FARM = "farm-1"
USER = "user-1"

REFERENCE = re.compile(r"^משלוח-\d{4}-\d{4}-\d{6}$")

PLAN = {
    "expectedDate": "2024-03-01",
    "source": "manual",
    "countryOfOrigin": "Singapore",
    "supplierName": "Aqua Exports",
    "targetRoom": "reception",
}


@pytest.fixture
def store(tmp_path):
    return SQLiteDocumentStore(tmp_path / "test.db")


@pytest.fixture
def aquarium(store):
    return create_aquarium(store, FARM, {"aquariumNumber": "12", "volume": 80, "room": "main"})


@pytest.fixture
def plan(store):
    return service.create_reception_plan(store, FARM, PLAN, user_id=USER)


def _item(aquarium_id=None, **fields):
    data = {"hebrewName": "גופי", "size": "M", "quantity": 30}
    if aquarium_id:
        data["targetAquariumId"] = aquarium_id
    data.update(fields)
    return data


def _locked_plan(store, plan, aquarium, count=1):
    items = [service.add_item(store, FARM, plan.plan_id, _item(aquarium.aquarium_id)) for _ in range(count)]
    service.finalize_plan(store, FARM, plan.plan_id)
    service.lock_plan(store, FARM, plan.plan_id)
    return items


class TestStateMachine:

    @pytest.mark.parametrize("current,target", [
        ("planning", "proforma_received"),
        ("planning", "finalized"),
        ("proforma_received", "finalized"),
        ("finalized", "locked"),
        ("locked", "finalized"),
        ("locked", "in-progress"),
        ("in-progress", "completed"),
        ("in-progress", "cancelled"),
    ])
    def test_allowed(self, current, target):
        assert can_transition(current, target)
        assert check_plan_transition(current, target) == PlanStatus(target)

    @pytest.mark.parametrize("current,target", [
        ("planning", "locked"),
        ("finalized", "planning"),
        ("in-progress", "locked"),
        ("completed", "in-progress"),
        ("cancelled", "planning"),
        ("completed", "cancelled"),
    ])
    def test_forbidden(self, current, target):
        assert not can_transition(current, target)
        with pytest.raises(InvalidTransition) as exc_info:
            check_plan_transition(current, target)
        assert exc_info.value.entity == "plan"

    def test_items_never_go_back(self):
        assert check_item_transition("planned", "received") == ItemStatus.RECEIVED
        with pytest.raises(InvalidTransition):
            check_item_transition("received", "planned")
        with pytest.raises(InvalidTransition):
            check_item_transition("cancelled", "received")


class TestPlanCompleteness:

    def test_one_unassigned_item(self):
        result = validate_plan_complete([{"targetAquariumId": "A1"}, {"targetAquariumId": None}])
        assert result["valid"] is False
        assert "1" in result["errors"][0]

    def test_no_items(self):
        result = validate_plan_complete([])
        assert result == {"valid": False, "errors": ["Plan has no items"]}

    def test_models_and_mappings(self):
        items = [
            ReceptionItem(plan_id="p", farm_id=FARM, hebrew_name="גופי", size="M", target_aquarium_id="A1"),
            {"target_aquarium_id": "A2"},
        ]
        assert validate_plan_complete(items)["valid"] is True

    def test_all_items_settled(self):
        assert all_items_settled([{"status": "received"}, {"status": "cancelled"}])
        assert not all_items_settled([{"status": "received"}, {"status": "planned"}])


class TestShipmentReference:

    def test_pattern(self):
        assert REFERENCE.match(generate_shipment_reference())

    def test_date_part(self):
        reference = generate_shipment_reference(datetime(2024, 3, 7))
        assert reference.startswith("משלוח-2024-0307-")

    def test_successive_calls_differ(self):
        references = {generate_shipment_reference() for _ in range(50)}
        assert len(references) == 50


class TestPlans:

    def test_create_defaults(self, store, plan):
        assert plan.status == PlanStatus.PLANNING
        assert plan.item_count == 0
        assert plan.received_count == 0
        assert plan.is_locked is False
        assert plan.created_by == USER
        assert REFERENCE.match(plan.shipment_reference)

    def test_create_keeps_given_reference(self, store):
        plan = service.create_reception_plan(store, FARM, {**PLAN, "shipmentReference": "PF-22"})
        assert plan.shipment_reference == "PF-22"

    def test_create_ignores_managed_fields(self, store):
        plan = service.create_reception_plan(store, FARM, {**PLAN, "status": "completed", "itemCount": 9})
        assert plan.status == PlanStatus.PLANNING
        assert plan.item_count == 0

    def test_create_invalid(self, store):
        with pytest.raises(RecordValidationError) as exc_info:
            service.create_reception_plan(store, FARM, {"source": "manual"})
        assert "Supplier name is required" in exc_info.value.messages

    def test_get_missing(self, store):
        with pytest.raises(PlanNotFound):
            service.get_plan(store, FARM, "nope")

    def test_list_latest_first_and_filter(self, store):
        service.create_reception_plan(store, FARM, {**PLAN, "expectedDate": "2024-01-10"})
        later = service.create_reception_plan(store, FARM, {**PLAN, "expectedDate": "2024-06-10"})
        plans = service.list_plans(store, FARM)
        assert plans[0].plan_id == later.plan_id
        assert service.list_plans(store, FARM, "completed") == []
        assert len(service.list_plans(store, FARM, PlanStatus.PLANNING)) == 2

    def test_update_while_editable(self, store, plan):
        updated = service.update_plan(store, FARM, plan.plan_id, {"notes": "call before"})
        assert updated.notes == "call before"
        assert service.get_plan(store, FARM, plan.plan_id).notes == "call before"

    def test_update_rejects_blank_supplier(self, store, plan):
        with pytest.raises(RecordValidationError):
            service.update_plan(store, FARM, plan.plan_id, {"supplierName": " "})

    def test_delete_removes_items(self, store, plan):
        service.add_item(store, FARM, plan.plan_id, _item())
        service.add_item(store, FARM, plan.plan_id, _item())
        assert service.delete_plan(store, FARM, plan.plan_id) == 2
        assert service.list_items(store, FARM, plan.plan_id) == []
        with pytest.raises(PlanNotFound):
            service.get_plan(store, FARM, plan.plan_id)

    def test_suggestions(self, store):
        service.create_reception_plan(store, FARM, {**PLAN, "countryOfOrigin": "Thailand"})
        service.create_reception_plan(store, FARM, PLAN)
        service.create_reception_plan(store, FARM, PLAN)
        assert service.previous_countries(store, FARM) == ["Singapore", "Thailand"]
        assert service.previous_suppliers(store, FARM) == ["Aqua Exports"]


class TestItems:

    def test_add_fills_aquarium_details(self, store, plan, aquarium):
        item = service.add_item(store, FARM, plan.plan_id, _item(aquarium.aquarium_id))
        assert item.status == ItemStatus.PLANNED
        assert item.target_aquarium_number == "12"
        assert item.target_room == "main"
        assert service.get_plan(store, FARM, plan.plan_id).item_count == 1

    def test_add_draft_without_aquarium(self, store, plan):
        item = service.add_item(store, FARM, plan.plan_id, _item())
        assert item.target_aquarium_id is None

    def test_add_unknown_aquarium(self, store, plan):
        with pytest.raises(DocumentNotFound):
            service.add_item(store, FARM, plan.plan_id, _item("missing-tank"))
        assert service.get_plan(store, FARM, plan.plan_id).item_count == 0

    def test_add_invalid(self, store, plan):
        with pytest.raises(RecordValidationError):
            service.add_item(store, FARM, plan.plan_id, {"size": "M", "quantity": 0})

    def test_update_reassigns_aquarium(self, store, plan, aquarium):
        other = create_aquarium(store, FARM, {"aquariumNumber": "3", "volume": 40, "room": "quarantine"})
        item = service.add_item(store, FARM, plan.plan_id, _item(aquarium.aquarium_id))
        updated = service.update_item(store, FARM, item.item_id, {"targetAquariumId": other.aquarium_id})
        assert updated.target_aquarium_number == "3"
        assert updated.target_room == "quarantine"

    def test_delete_decrements_count(self, store, plan):
        item = service.add_item(store, FARM, plan.plan_id, _item())
        service.delete_item(store, FARM, item.item_id)
        assert service.get_plan(store, FARM, plan.plan_id).item_count == 0

    def test_add_extracted_items_skips_invalid(self, store, plan):
        records = [
            {"scientificName": "Betta splendens", "commonName": "בטה", "size": "M", "boxNumber": 0,
             "bagCount": 2, "quantityPerBag": 5},
            {"scientificName": "", "size": "M", "boxNumber": 1},
            {"scientificName": "Poecilia reticulata", "size": "S", "boxNumber": 4, "code": "PR-1"},
        ]
        items = service.add_extracted_items(store, FARM, plan.plan_id, records)

        assert [i.hebrew_name for i in items] == ["בטה", "Poecilia reticulata"]
        assert items[0].quantity == 10
        assert items[0].box_number == "0"
        assert items[1].code == "PR-1"
        assert all(i.target_aquarium_id is None for i in items)
        assert service.get_plan(store, FARM, plan.plan_id).item_count == 2


class TestLifecycle:

    def test_finalize_requires_items(self, store, plan):
        with pytest.raises(PlanIncomplete) as exc_info:
            service.finalize_plan(store, FARM, plan.plan_id)
        assert exc_info.value.errors == ["Plan has no items"]

    def test_finalize_requires_assignment(self, store, plan, aquarium):
        service.add_item(store, FARM, plan.plan_id, _item(aquarium.aquarium_id))
        service.add_item(store, FARM, plan.plan_id, _item())
        with pytest.raises(PlanIncomplete) as exc_info:
            service.finalize_plan(store, FARM, plan.plan_id)
        assert "1 item(s)" in exc_info.value.errors[0]

    def test_lock_and_unlock(self, store, plan, aquarium):
        _locked_plan(store, plan, aquarium)
        locked = service.get_plan(store, FARM, plan.plan_id)
        assert locked.status == PlanStatus.LOCKED
        assert locked.is_locked
        assert locked.locked_at is not None
        assert locked.finalized_at is not None

        unlocked = service.unlock_plan(store, FARM, plan.plan_id)
        assert unlocked.status == PlanStatus.FINALIZED
        assert unlocked.is_locked is False

    def test_unlock_requires_locked(self, store, plan):
        with pytest.raises(InvalidTransition):
            service.unlock_plan(store, FARM, plan.plan_id)

    def test_items_frozen_after_lock(self, store, plan, aquarium):
        (item,) = _locked_plan(store, plan, aquarium)
        with pytest.raises(PlanLocked):
            service.add_item(store, FARM, plan.plan_id, _item(aquarium.aquarium_id))
        with pytest.raises(PlanLocked):
            service.update_item(store, FARM, item.item_id, {"quantity": 5})
        with pytest.raises(PlanLocked):
            service.delete_item(store, FARM, item.item_id)
        with pytest.raises(PlanLocked):
            service.update_plan(store, FARM, plan.plan_id, {"notes": "x"})

    def test_finalized_plan_only_accepts_assigned_items(self, store, plan, aquarium):
        item = service.add_item(store, FARM, plan.plan_id, _item(aquarium.aquarium_id))
        service.finalize_plan(store, FARM, plan.plan_id)

        with pytest.raises(RecordValidationError):
            service.add_item(store, FARM, plan.plan_id, _item())
        with pytest.raises(RecordValidationError):
            service.update_item(store, FARM, item.item_id, {"targetAquariumId": None})
        with pytest.raises(RecordValidationError):
            service.add_extracted_items(store, FARM, plan.plan_id, [
                {"scientificName": "Betta splendens", "size": "M", "boxNumber": 1},
            ])

        added = service.add_item(store, FARM, plan.plan_id, _item(aquarium.aquarium_id))
        assert added.target_aquarium_id == aquarium.aquarium_id
        assert service.get_plan(store, FARM, plan.plan_id).item_count == 2
        service.lock_plan(store, FARM, plan.plan_id)

    def test_complete_requires_settled_items(self, store, plan, aquarium):
        _locked_plan(store, plan, aquarium)
        with pytest.raises(PlanIncomplete):
            service.transition_plan(store, FARM, plan.plan_id, "completed")

    def test_cancel_plan(self, store, plan):
        cancelled = service.transition_plan(store, FARM, plan.plan_id, PlanStatus.CANCELLED)
        assert cancelled.status == PlanStatus.CANCELLED
        with pytest.raises(InvalidTransition):
            service.transition_plan(store, FARM, plan.plan_id, PlanStatus.PLANNING)


class TestReceiving:

    def test_receive_single_item_completes_plan(self, store, plan, aquarium):
        (item,) = _locked_plan(store, plan, aquarium)

        received = service.receive_item(store, FARM, item.item_id)

        assert received.status == ItemStatus.RECEIVED
        assert received.received_at is not None

        tank = get_aquarium(store, FARM, aquarium.aquarium_id)
        assert tank.total_fish == 30
        assert tank.status.value == "occupied"
        assert [r.item_id for r in tank.received_items] == [item.item_id]
        assert tank.received_items[0].plan_id == plan.plan_id

        done = service.get_plan(store, FARM, plan.plan_id)
        assert done.received_count == 1
        assert done.status == PlanStatus.COMPLETED
        assert done.completed_at is not None

    def test_partial_receipt_is_in_progress(self, store, plan, aquarium):
        first, second = _locked_plan(store, plan, aquarium, count=2)

        service.receive_item(store, FARM, first.item_id)
        assert service.get_plan(store, FARM, plan.plan_id).status == PlanStatus.IN_PROGRESS
        assert get_aquarium(store, FARM, aquarium.aquarium_id).total_fish == 30

        service.receive_item(store, FARM, second.item_id)
        done = service.get_plan(store, FARM, plan.plan_id)
        assert done.status == PlanStatus.COMPLETED
        assert done.received_count == 2
        assert get_aquarium(store, FARM, aquarium.aquarium_id).total_fish == 60

    def test_receive_twice(self, store, plan, aquarium):
        first, _ = _locked_plan(store, plan, aquarium, count=2)
        service.receive_item(store, FARM, first.item_id)
        with pytest.raises(ItemAlreadyReceived):
            service.receive_item(store, FARM, first.item_id)
        assert get_aquarium(store, FARM, aquarium.aquarium_id).total_fish == 30

    def test_receive_requires_locked_plan(self, store, plan, aquarium):
        item = service.add_item(store, FARM, plan.plan_id, _item(aquarium.aquarium_id))
        with pytest.raises(InvalidTransition):
            service.receive_item(store, FARM, item.item_id)
        assert service.get_item(store, FARM, item.item_id).status == ItemStatus.PLANNED

    def test_cancel_last_planned_item_completes_plan(self, store, plan, aquarium):
        first, second = _locked_plan(store, plan, aquarium, count=2)
        service.receive_item(store, FARM, first.item_id)

        cancelled = service.cancel_item(store, FARM, second.item_id)

        assert cancelled.status == ItemStatus.CANCELLED
        assert service.get_plan(store, FARM, plan.plan_id).status == PlanStatus.COMPLETED

    def test_cancelled_item_cannot_be_received(self, store, plan, aquarium):
        first, _ = _locked_plan(store, plan, aquarium, count=2)
        service.cancel_item(store, FARM, first.item_id)
        with pytest.raises(InvalidTransition):
            service.receive_item(store, FARM, first.item_id)


class TestWorkRequirements:

    ITEMS = [
        {"hebrewName": "גופי", "size": "M", "targetRoom": "main"},
        {"hebrewName": "בטה", "size": "M", "targetRoom": "main"},
        {"scientificName": "Paracheirodon innesi", "size": "S", "targetRoom": "quarantine"},
        {"hebrewName": "דיסקוס", "size": "L"},
    ]

    def test_buckets(self):
        requirements = calculate_work_requirements(self.ITEMS)

        assert requirements.by_size["M"].count == 2
        assert requirements.by_size["M"].items == ["גופי", "בטה"]
        assert requirements.by_size["S"].items == ["Paracheirodon innesi"]
        assert requirements.by_room["main"].sizes == {"M": 2}
        assert requirements.by_room[UNASSIGNED_ROOM].count == 1

    def test_totals(self):
        requirements = calculate_work_requirements(self.ITEMS)
        assert requirements.total_items == len(self.ITEMS)
        assert sum(room.count for room in requirements.by_room.values()) == len(self.ITEMS)
        assert sum(size.count for size in requirements.by_size.values()) == len(self.ITEMS)

    def test_one_aquarium_per_line(self):
        # Lines sharing a tank still count one aquarium each
        items = [dict(item, targetAquariumId="A1") for item in self.ITEMS]
        requirements = calculate_work_requirements(items)
        assert requirements.total_aquariums_needed == len(items)

    def test_empty(self):
        requirements = calculate_work_requirements([])
        assert requirements.total_items == 0
        assert requirements.total_aquariums_needed == 0
        assert requirements.by_size == {}
        assert requirements.by_room == {}

    def test_document_shape(self):
        doc = calculate_work_requirements(self.ITEMS[:1]).to_document()
        assert doc["totalAquariumsNeeded"] == 1
        assert doc["bySize"]["M"]["items"] == ["גופי"]
        assert doc["byRoom"]["main"]["sizes"] == {"M": 1}
