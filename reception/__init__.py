"""Reception planning: plan state machine, reception service and work requirements."""

from reception.plan import (
    PLAN_TRANSITIONS,
    ITEM_TRANSITIONS,
    EDITABLE_STATES,
    RECEIVING_STATES,
    can_transition,
    generate_shipment_reference,
    validate_plan_complete,
)
from reception.requirements import calculate_work_requirements
from reception.service import (
    create_reception_plan,
    get_plan,
    list_plans,
    update_plan,
    delete_plan,
    previous_countries,
    previous_suppliers,
    get_item,
    list_items,
    add_item,
    add_extracted_items,
    update_item,
    delete_item,
    transition_plan,
    finalize_plan,
    lock_plan,
    unlock_plan,
    receive_item,
    cancel_item,
)

__all__ = [
    "PLAN_TRANSITIONS",
    "ITEM_TRANSITIONS",
    "EDITABLE_STATES",
    "RECEIVING_STATES",
    "can_transition",
    "generate_shipment_reference",
    "validate_plan_complete",
    "calculate_work_requirements",
    "create_reception_plan",
    "get_plan",
    "list_plans",
    "update_plan",
    "delete_plan",
    "previous_countries",
    "previous_suppliers",
    "get_item",
    "list_items",
    "add_item",
    "add_extracted_items",
    "update_item",
    "delete_item",
    "transition_plan",
    "finalize_plan",
    "lock_plan",
    "unlock_plan",
    "receive_item",
    "cancel_item",
]
