"""Reception plan endpoints.

Plans, their items, the lifecycle actions (finalize, lock, unlock, status,
receive, cancel) and the work requirements report.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from api.deps import get_store, get_user_id
from core.errors import ItemNotFound
from core.models.canonical import PlanStatus, ReceptionItem
from reception import service
from reception.plan import validate_plan_complete
from reception.requirements import calculate_work_requirements
from storage.documents import DocumentStore


router = APIRouter()


class StatusRequest(BaseModel):
    """Request to move a plan to another status."""
    status: PlanStatus


class ExtractedItemsRequest(BaseModel):
    """Extracted candidate lines (camelCase) to attach as planned items."""
    items: List[Dict[str, Any]] = []


def _plan_item(store: DocumentStore, farm_id: str, plan_id: str, item_id: str) -> ReceptionItem:
    item = service.get_item(store, farm_id, item_id)
    if item.plan_id != plan_id:
        raise ItemNotFound(item_id)
    return item


# =============================================================================
# Plans
# =============================================================================

@router.post("", status_code=201)
def create_plan(
    farm_id: str,
    data: Dict[str, Any],
    store: DocumentStore = Depends(get_store),
    user_id: Optional[str] = Depends(get_user_id),
) -> Dict[str, Any]:
    return service.create_reception_plan(store, farm_id, data, user_id=user_id).to_document()


@router.get("")
def list_plans(
    farm_id: str,
    status: Optional[PlanStatus] = None,
    store: DocumentStore = Depends(get_store),
) -> List[Dict[str, Any]]:
    """Plans, latest expected date first."""
    return [plan.to_document() for plan in service.list_plans(store, farm_id, status)]


@router.get("/suggestions")
def plan_suggestions(farm_id: str, store: DocumentStore = Depends(get_store)) -> Dict[str, List[str]]:
    """Countries and suppliers used by earlier plans."""
    return {
        "countries": service.previous_countries(store, farm_id),
        "suppliers": service.previous_suppliers(store, farm_id),
    }


@router.get("/{plan_id}")
def get_plan(farm_id: str, plan_id: str, store: DocumentStore = Depends(get_store)) -> Dict[str, Any]:
    return service.get_plan(store, farm_id, plan_id).to_document()


@router.patch("/{plan_id}")
def update_plan(
    farm_id: str,
    plan_id: str,
    updates: Dict[str, Any],
    store: DocumentStore = Depends(get_store),
) -> Dict[str, Any]:
    return service.update_plan(store, farm_id, plan_id, updates).to_document()


@router.delete("/{plan_id}", status_code=204)
def delete_plan(farm_id: str, plan_id: str, store: DocumentStore = Depends(get_store)) -> Response:
    service.delete_plan(store, farm_id, plan_id)
    return Response(status_code=204)


# =============================================================================
# Lifecycle
# =============================================================================

@router.post("/{plan_id}/finalize")
def finalize_plan(farm_id: str, plan_id: str, store: DocumentStore = Depends(get_store)) -> Dict[str, Any]:
    return service.finalize_plan(store, farm_id, plan_id).to_document()


@router.post("/{plan_id}/lock")
def lock_plan(farm_id: str, plan_id: str, store: DocumentStore = Depends(get_store)) -> Dict[str, Any]:
    return service.lock_plan(store, farm_id, plan_id).to_document()


@router.post("/{plan_id}/unlock")
def unlock_plan(farm_id: str, plan_id: str, store: DocumentStore = Depends(get_store)) -> Dict[str, Any]:
    return service.unlock_plan(store, farm_id, plan_id).to_document()


@router.post("/{plan_id}/status")
def change_status(
    farm_id: str,
    plan_id: str,
    request: StatusRequest,
    store: DocumentStore = Depends(get_store),
) -> Dict[str, Any]:
    return service.transition_plan(store, farm_id, plan_id, request.status).to_document()


@router.get("/{plan_id}/validation")
def plan_validation(farm_id: str, plan_id: str, store: DocumentStore = Depends(get_store)) -> Dict[str, Any]:
    """Whether the plan has items and every item has a target aquarium."""
    service.get_plan(store, farm_id, plan_id)
    return validate_plan_complete(service.list_items(store, farm_id, plan_id))


@router.get("/{plan_id}/work-requirements")
def work_requirements(farm_id: str, plan_id: str, store: DocumentStore = Depends(get_store)) -> Dict[str, Any]:
    """Per-size and per-room rollup of the plan's items."""
    service.get_plan(store, farm_id, plan_id)
    return calculate_work_requirements(service.list_items(store, farm_id, plan_id)).to_document()


# =============================================================================
# Items
# =============================================================================

@router.get("/{plan_id}/items")
def list_items(farm_id: str, plan_id: str, store: DocumentStore = Depends(get_store)) -> List[Dict[str, Any]]:
    service.get_plan(store, farm_id, plan_id)
    return [item.to_document() for item in service.list_items(store, farm_id, plan_id)]


@router.post("/{plan_id}/items", status_code=201)
def add_item(
    farm_id: str,
    plan_id: str,
    data: Dict[str, Any],
    store: DocumentStore = Depends(get_store),
) -> Dict[str, Any]:
    return service.add_item(store, farm_id, plan_id, data).to_document()


@router.post("/{plan_id}/items/extracted", status_code=201)
def add_extracted_items(
    farm_id: str,
    plan_id: str,
    request: ExtractedItemsRequest,
    store: DocumentStore = Depends(get_store),
) -> List[Dict[str, Any]]:
    """Attach valid extracted lines as unassigned planned items."""
    items = service.add_extracted_items(store, farm_id, plan_id, request.items)
    return [item.to_document() for item in items]


@router.patch("/{plan_id}/items/{item_id}")
def update_item(
    farm_id: str,
    plan_id: str,
    item_id: str,
    updates: Dict[str, Any],
    store: DocumentStore = Depends(get_store),
) -> Dict[str, Any]:
    _plan_item(store, farm_id, plan_id, item_id)
    return service.update_item(store, farm_id, item_id, updates).to_document()


@router.delete("/{plan_id}/items/{item_id}", status_code=204)
def delete_item(
    farm_id: str,
    plan_id: str,
    item_id: str,
    store: DocumentStore = Depends(get_store),
) -> Response:
    _plan_item(store, farm_id, plan_id, item_id)
    service.delete_item(store, farm_id, item_id)
    return Response(status_code=204)


@router.post("/{plan_id}/items/{item_id}/receive")
def receive_item(
    farm_id: str,
    plan_id: str,
    item_id: str,
    store: DocumentStore = Depends(get_store),
) -> Dict[str, Any]:
    """Confirm receipt: the item's fish go into its target aquarium."""
    _plan_item(store, farm_id, plan_id, item_id)
    return service.receive_item(store, farm_id, item_id).to_document()


@router.post("/{plan_id}/items/{item_id}/cancel")
def cancel_item(
    farm_id: str,
    plan_id: str,
    item_id: str,
    store: DocumentStore = Depends(get_store),
) -> Dict[str, Any]:
    _plan_item(store, farm_id, plan_id, item_id)
    return service.cancel_item(store, farm_id, item_id).to_document()
