"""Work requirements: what a set of reception items needs on arrival day."""

from typing import Any, Iterable, Mapping

from pydantic import BaseModel

from core.models.canonical import RoomBucket, SizeBucket, WorkRequirements


UNKNOWN_SIZE = "unknown"
UNASSIGNED_ROOM = "unassigned"


def _value(item: Any, camel: str, snake: str) -> Any:
    if isinstance(item, BaseModel):
        return getattr(item, snake, None)
    if isinstance(item, Mapping):
        return item.get(camel, item.get(snake))
    return getattr(item, snake, None)


def _display_name(item: Any) -> str:
    return (
        _value(item, "hebrewName", "hebrew_name")
        or _value(item, "scientificName", "scientific_name")
        or ""
    )


def calculate_work_requirements(items: Iterable[Any]) -> WorkRequirements:
    """Fold reception items into per-size and per-room buckets.

    ``total_aquariums_needed`` equals the number of items: one aquarium is
    assumed per line, even when lines could share a tank.
    """
    requirements = WorkRequirements()

    for item in items:
        size = _value(item, "size", "size") or UNKNOWN_SIZE
        room = _value(item, "targetRoom", "target_room") or UNASSIGNED_ROOM

        size_bucket = requirements.by_size.setdefault(size, SizeBucket())
        size_bucket.count += 1
        size_bucket.items.append(_display_name(item))

        room_bucket = requirements.by_room.setdefault(room, RoomBucket())
        room_bucket.count += 1
        room_bucket.sizes[size] = room_bucket.sizes.get(size, 0) + 1

        requirements.total_items += 1

    requirements.total_aquariums_needed = requirements.total_items
    return requirements
