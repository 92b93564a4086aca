"""Aquarium endpoints."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Response

from api.deps import get_store
from inventory.aquariums import (
    create_aquarium,
    delete_aquarium,
    get_aquarium,
    get_aquariums,
    get_aquariums_by_room,
    get_empty_aquariums,
    get_fish_in_aquarium,
    update_aquarium,
)
from storage.documents import DocumentStore


router = APIRouter()


@router.post("", status_code=201)
def create_aquarium_route(
    farm_id: str,
    data: Dict[str, Any],
    store: DocumentStore = Depends(get_store),
) -> Dict[str, Any]:
    """Create an aquarium from camelCase fields (aquariumNumber, volume, room, ...)."""
    return create_aquarium(store, farm_id, data).to_document()


@router.get("")
def list_aquariums(
    farm_id: str,
    room: Optional[str] = None,
    empty: bool = Query(False, description="Only aquariums with status 'empty'"),
    store: DocumentStore = Depends(get_store),
) -> List[Dict[str, Any]]:
    """Aquariums ordered by number, optionally filtered by room or emptiness."""
    if empty:
        aquariums = get_empty_aquariums(store, farm_id)
        if room:
            aquariums = [a for a in aquariums if a.room == room]
    elif room:
        aquariums = get_aquariums_by_room(store, farm_id, room)
    else:
        aquariums = get_aquariums(store, farm_id)
    return [aquarium.to_document() for aquarium in aquariums]


@router.get("/{aquarium_id}")
def get_aquarium_route(
    farm_id: str,
    aquarium_id: str,
    store: DocumentStore = Depends(get_store),
) -> Dict[str, Any]:
    return get_aquarium(store, farm_id, aquarium_id).to_document()


@router.patch("/{aquarium_id}")
def update_aquarium_route(
    farm_id: str,
    aquarium_id: str,
    updates: Dict[str, Any],
    store: DocumentStore = Depends(get_store),
) -> Dict[str, Any]:
    return update_aquarium(store, farm_id, aquarium_id, updates).to_document()


@router.delete("/{aquarium_id}", status_code=204)
def delete_aquarium_route(
    farm_id: str,
    aquarium_id: str,
    store: DocumentStore = Depends(get_store),
) -> Response:
    delete_aquarium(store, farm_id, aquarium_id)
    return Response(status_code=204)


@router.get("/{aquarium_id}/fish")
def list_aquarium_fish(
    farm_id: str,
    aquarium_id: str,
    store: DocumentStore = Depends(get_store),
) -> List[Dict[str, Any]]:
    """Fish in the aquarium from both inventory collections, tagged by source."""
    get_aquarium(store, farm_id, aquarium_id)
    return [entry.to_document() for entry in get_fish_in_aquarium(store, farm_id, aquarium_id)]
