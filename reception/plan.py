"""Reception plan state machine.

Plans move ``planning -> (proforma_received) -> finalized -> locked ->
in-progress -> completed``; any non-terminal state may be cancelled and a
locked plan may be unlocked back to ``finalized``. Items move
``planned -> received`` or ``planned -> cancelled`` and never back.

These are pure functions over plan/item records; the reception service
applies them and persists the result.
"""

import threading
import time
from datetime import datetime
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Union

from pydantic import BaseModel

from core.errors import InvalidTransition, PlanIncomplete, PlanLocked
from core.models.canonical import ItemStatus, PlanStatus


# =============================================================================
# Transition Tables
# =============================================================================

PLAN_TRANSITIONS: Dict[PlanStatus, FrozenSet[PlanStatus]] = {
    PlanStatus.PLANNING: frozenset({
        PlanStatus.PROFORMA_RECEIVED, PlanStatus.FINALIZED, PlanStatus.CANCELLED,
    }),
    PlanStatus.PROFORMA_RECEIVED: frozenset({PlanStatus.FINALIZED, PlanStatus.CANCELLED}),
    PlanStatus.FINALIZED: frozenset({PlanStatus.LOCKED, PlanStatus.CANCELLED}),
    PlanStatus.LOCKED: frozenset({
        PlanStatus.FINALIZED, PlanStatus.IN_PROGRESS, PlanStatus.COMPLETED, PlanStatus.CANCELLED,
    }),
    PlanStatus.IN_PROGRESS: frozenset({PlanStatus.COMPLETED, PlanStatus.CANCELLED}),
    PlanStatus.COMPLETED: frozenset(),
    PlanStatus.CANCELLED: frozenset(),
}

ITEM_TRANSITIONS: Dict[ItemStatus, FrozenSet[ItemStatus]] = {
    ItemStatus.PLANNED: frozenset({ItemStatus.RECEIVED, ItemStatus.CANCELLED}),
    ItemStatus.RECEIVED: frozenset(),
    ItemStatus.CANCELLED: frozenset(),
}

# Items may be added, edited or removed only in these states
EDITABLE_STATES = frozenset({
    PlanStatus.PLANNING, PlanStatus.PROFORMA_RECEIVED, PlanStatus.FINALIZED,
})

# Items may be physically received only in these states
RECEIVING_STATES = frozenset({PlanStatus.LOCKED, PlanStatus.IN_PROGRESS})

TERMINAL_STATES = frozenset({PlanStatus.COMPLETED, PlanStatus.CANCELLED})

SETTLED_ITEM_STATES = frozenset({ItemStatus.RECEIVED, ItemStatus.CANCELLED})


def can_transition(current: Union[str, PlanStatus], target: Union[str, PlanStatus]) -> bool:
    return PlanStatus(target) in PLAN_TRANSITIONS[PlanStatus(current)]


def check_plan_transition(current: Union[str, PlanStatus], target: Union[str, PlanStatus]) -> PlanStatus:
    """Return the target status, or raise InvalidTransition."""
    current, target = PlanStatus(current), PlanStatus(target)
    if target not in PLAN_TRANSITIONS[current]:
        raise InvalidTransition("plan", current.value, target.value)
    return target


def check_item_transition(current: Union[str, ItemStatus], target: Union[str, ItemStatus]) -> ItemStatus:
    current, target = ItemStatus(current), ItemStatus(target)
    if target not in ITEM_TRANSITIONS[current]:
        raise InvalidTransition("item", current.value, target.value)
    return target


def ensure_editable(plan_id: str, status: Union[str, PlanStatus]) -> None:
    """Raise PlanLocked unless items of a plan in ``status`` may still change."""
    status = PlanStatus(status)
    if status not in EDITABLE_STATES:
        raise PlanLocked(plan_id, status.value)


# =============================================================================
# Plan Gates
# =============================================================================

def _get(item: Any, camel: str, snake: str) -> Any:
    if isinstance(item, BaseModel):
        return getattr(item, snake, None)
    if isinstance(item, Mapping):
        return item.get(camel, item.get(snake))
    return getattr(item, snake, None)


def validate_plan_complete(items: Iterable[Any]) -> Dict[str, Any]:
    """Check that a plan has items and every item is assigned an aquarium.

    Returns:
        ``{"valid": bool, "errors": [str]}``; the error for unassigned items
        carries their count.
    """
    items = list(items)
    errors: List[str] = []

    if not items:
        errors.append("Plan has no items")
    else:
        unassigned = sum(
            1 for item in items
            if not _get(item, "targetAquariumId", "target_aquarium_id")
        )
        if unassigned:
            errors.append(f"{unassigned} item(s) have no target aquarium assigned")

    return {"valid": not errors, "errors": errors}


def require_plan_complete(items: Iterable[Any]) -> None:
    """Raise PlanIncomplete when ``validate_plan_complete`` fails."""
    result = validate_plan_complete(items)
    if not result["valid"]:
        raise PlanIncomplete(result["errors"])


def all_items_settled(items: Iterable[Any]) -> bool:
    """True when every item is received or cancelled."""
    return all(
        ItemStatus(_get(item, "status", "status")) in SETTLED_ITEM_STATES
        for item in items
    )


def require_all_settled(items: Iterable[Any]) -> None:
    items = list(items)
    pending = sum(
        1 for item in items
        if ItemStatus(_get(item, "status", "status")) not in SETTLED_ITEM_STATES
    )
    if pending:
        raise PlanIncomplete([f"{pending} item(s) are still planned"])


# =============================================================================
# Shipment Reference
# =============================================================================

_reference_lock = threading.Lock()
_last_reference_ms = 0


def _next_millis() -> int:
    """Strictly increasing millisecond counter for this process."""
    global _last_reference_ms
    with _reference_lock:
        now_ms = int(time.time() * 1000)
        _last_reference_ms = max(now_ms, _last_reference_ms + 1)
        return _last_reference_ms


def generate_shipment_reference(now: Optional[datetime] = None) -> str:
    """Human reference for a plan: ``משלוח-YYYY-MMDD-<last 6 digits of ms counter>``."""
    now = now or datetime.now()
    suffix = str(_next_millis())[-6:]
    return f"משלוח-{now.year:04d}-{now.month:02d}{now.day:02d}-{suffix}"
