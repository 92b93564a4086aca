"""Aquarium inventory.

Aquariums live in ``farms/{farmId}/aquariums``. Fish currently in a tank
are found in two places: the farm's ``fish_instances`` (created by shipment
imports) and the legacy top-level ``farmFish`` collection. Reads merge both
and tag every entry with its source; nothing here writes to ``farmFish``.
"""

import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError

from core.errors import RecordValidationError
from core.models.canonical import Aquarium, AquariumFishEntry, AquariumStatus
from core.observability.logging import get_logger, with_correlation
from storage.documents import (
    AQUARIUMS,
    FISH_INSTANCES,
    LEGACY_FARM_FISH,
    DocumentStore,
    farm_collection,
)
from validation.rules import validate_aquarium


logger = get_logger(__name__)

SOURCE_RECEPTION = "reception"
SOURCE_LEGACY = "local"

_IMMUTABLE_FIELDS = ("aquariumId", "farmId", "createdAt")


def _number_key(aquarium: Aquarium) -> int:
    """Sort key: the leading integer of the aquarium number, 0 when there is none."""
    match = re.match(r"\s*(\d+)", aquarium.aquarium_number or "")
    return int(match.group(1)) if match else 0


def _build(data: Mapping[str, Any]) -> Aquarium:
    verdict = validate_aquarium(data)
    if not verdict.is_valid:
        raise RecordValidationError("aquarium", verdict.messages())
    try:
        return Aquarium.model_validate(dict(data))
    except ValidationError as e:
        raise RecordValidationError(
            "aquarium", [f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors()]
        ) from e


def create_aquarium(store: DocumentStore, farm_id: str, data: Mapping[str, Any]) -> Aquarium:
    """Create an aquarium.

    Defaults: shelf bottom, status empty, occupancy 0, no fish.

    Raises:
        RecordValidationError: Missing number or room, or volume not > 0
    """
    aquarium_id = store.new_id()
    payload = dict(data)
    payload.update({"aquariumId": aquarium_id, "farmId": farm_id})
    aquarium = _build(payload)

    store.set(farm_collection(farm_id, AQUARIUMS), aquarium_id, aquarium.to_document())
    with with_correlation(farm_id=farm_id):
        logger.info(
            "Aquarium created",
            extra_fields={"aquarium_id": aquarium_id, "aquarium_number": aquarium.aquarium_number},
        )
    return aquarium


def get_aquarium(store: DocumentStore, farm_id: str, aquarium_id: str) -> Aquarium:
    """Raises DocumentNotFound when the aquarium does not exist."""
    return Aquarium.model_validate(store.require(farm_collection(farm_id, AQUARIUMS), aquarium_id))


def _list(store: DocumentStore, farm_id: str, where: Optional[Dict[str, Any]] = None) -> List[Aquarium]:
    docs = store.query(farm_collection(farm_id, AQUARIUMS), where=where)
    return sorted((Aquarium.model_validate(doc) for doc in docs), key=_number_key)


def get_aquariums(store: DocumentStore, farm_id: str) -> List[Aquarium]:
    """All aquariums, ordered by aquarium number as a number ("2" before "10")."""
    return _list(store, farm_id)


def get_aquariums_by_room(store: DocumentStore, farm_id: str, room: str) -> List[Aquarium]:
    return _list(store, farm_id, {"room": room})


def get_empty_aquariums(store: DocumentStore, farm_id: str) -> List[Aquarium]:
    return _list(store, farm_id, {"status": AquariumStatus.EMPTY.value})


def update_aquarium(
    store: DocumentStore,
    farm_id: str,
    aquarium_id: str,
    updates: Mapping[str, Any],
) -> Aquarium:
    """Apply camelCase field updates and re-validate the whole aquarium.

    Raises:
        DocumentNotFound: No such aquarium
        RecordValidationError: The updated aquarium would be invalid
    """
    collection = farm_collection(farm_id, AQUARIUMS)
    current = store.require(collection, aquarium_id)
    changes = {k: v for k, v in updates.items() if k not in _IMMUTABLE_FIELDS}
    merged = dict(current)
    merged.update(changes)
    merged["updatedAt"] = datetime.now(timezone.utc).isoformat()
    aquarium = _build(merged)

    store.set(collection, aquarium_id, aquarium.to_document())
    with with_correlation(farm_id=farm_id):
        logger.info(
            "Aquarium updated",
            extra_fields={"aquarium_id": aquarium_id, "fields": sorted(changes)},
        )
    return aquarium


def delete_aquarium(store: DocumentStore, farm_id: str, aquarium_id: str) -> None:
    """Raises DocumentNotFound when the aquarium does not exist."""
    collection = farm_collection(farm_id, AQUARIUMS)
    store.require(collection, aquarium_id)
    store.delete(collection, aquarium_id)
    with with_correlation(farm_id=farm_id):
        logger.info("Aquarium deleted", extra_fields={"aquarium_id": aquarium_id})


def get_fish_in_aquarium(store: DocumentStore, farm_id: str, aquarium_id: str) -> List[AquariumFishEntry]:
    """Fish currently in an aquarium, from both inventory collections.

    Entries from ``fish_instances`` are tagged ``reception``; entries from the
    legacy ``farmFish`` collection are tagged ``local``.
    """
    entries: List[AquariumFishEntry] = []

    for doc in store.query(farm_collection(farm_id, FISH_INSTANCES), where={"aquariumId": aquarium_id}):
        entries.append(AquariumFishEntry(
            source=SOURCE_RECEPTION,
            id=doc.get("instanceId", ""),
            scientific_name=doc.get("scientificName"),
            common_name=doc.get("commonName"),
            size=doc.get("size"),
            quantity=int(doc.get("currentQuantity") or 0),
            data=doc,
        ))

    for doc in store.query(LEGACY_FARM_FISH, where={"farmId": farm_id, "aquariumId": aquarium_id}):
        entries.append(AquariumFishEntry(
            source=SOURCE_LEGACY,
            id=doc.get("fishId", ""),
            scientific_name=doc.get("scientificName"),
            common_name=doc.get("hebrewName") or doc.get("commonName"),
            size=doc.get("size"),
            quantity=int(doc.get("quantity") or 0),
            data=doc,
        ))

    return entries
