"""Farms and their typed settings.

A farm document (``farms/{farmId}``) carries a ``settings`` map with the
currency, language, timezone, aquarium rooms and aquarium statuses the farm
uses. Settings are validated when written, so readers can trust them.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from core.errors import InvalidFarmSettings
from core.models.canonical import FarmSettings
from core.observability.logging import get_logger, with_correlation
from storage.documents import FARMS, DocumentStore
from validation.rules import validate_farm_settings


logger = get_logger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def create_farm(
    store: DocumentStore,
    name: str,
    owner_id: str,
    settings: Optional[FarmSettings] = None,
) -> str:
    """Create a farm owned by ``owner_id`` and return its id.

    Raises:
        InvalidFarmSettings: ``settings`` fail validation
    """
    settings = settings or FarmSettings()
    problems = validate_farm_settings(settings)
    if problems:
        raise InvalidFarmSettings(problems)

    farm_id = store.new_id()
    now = _now()
    store.set(FARMS, farm_id, {
        "farmId": farm_id,
        "name": name,
        "ownerId": owner_id,
        "memberIds": [owner_id],
        "memberRoles": {owner_id: "owner"},
        "settings": settings.to_document(),
        "createdAt": now,
        "updatedAt": now,
    })
    with with_correlation(farm_id=farm_id):
        logger.info("Farm created", extra_fields={"name": name})
    return farm_id


def get_farm(store: DocumentStore, farm_id: str) -> Dict[str, Any]:
    """Raises DocumentNotFound when the farm does not exist."""
    return store.require(FARMS, farm_id)


def load_farm_settings(store: DocumentStore, farm_id: str) -> FarmSettings:
    """Settings of a farm; defaults when the farm or its settings are absent."""
    farm = store.get(FARMS, farm_id)
    if not farm or not isinstance(farm.get("settings"), dict):
        return FarmSettings()
    return FarmSettings.model_validate(farm["settings"])


def save_farm_settings(store: DocumentStore, farm_id: str, settings: FarmSettings) -> FarmSettings:
    """Validate and store farm settings.

    Raises:
        InvalidFarmSettings: Duplicate or empty ids, empty labels, bad colors
    """
    problems = validate_farm_settings(settings)
    if problems:
        with with_correlation(farm_id=farm_id):
            logger.warning("Farm settings rejected", extra_fields={"problems": problems})
        raise InvalidFarmSettings(problems)

    if store.get(FARMS, farm_id) is None:
        store.set(FARMS, farm_id, {"farmId": farm_id, "settings": settings.to_document(), "updatedAt": _now()})
    else:
        store.update(FARMS, farm_id, {"settings": settings.to_document(), "updatedAt": _now()})

    with with_correlation(farm_id=farm_id):
        logger.info(
            "Farm settings saved",
            extra_fields={"rooms": len(settings.rooms), "statuses": len(settings.statuses)},
        )
    return settings
