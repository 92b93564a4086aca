"""Inventory: shipment import, aquariums and farm settings."""

from inventory.shipments import (
    import_shipment,
    get_shipments,
    get_shipment,
    get_shipment_fish,
    generate_missing_code,
)
from inventory.aquariums import (
    create_aquarium,
    get_aquarium,
    get_aquariums,
    get_aquariums_by_room,
    get_empty_aquariums,
    update_aquarium,
    delete_aquarium,
    get_fish_in_aquarium,
)
from inventory.farms import (
    create_farm,
    get_farm,
    load_farm_settings,
    save_farm_settings,
)

__all__ = [
    "import_shipment",
    "get_shipments",
    "get_shipment",
    "get_shipment_fish",
    "generate_missing_code",
    "create_aquarium",
    "get_aquarium",
    "get_aquariums",
    "get_aquariums_by_room",
    "get_empty_aquariums",
    "update_aquarium",
    "delete_aquarium",
    "get_fish_in_aquarium",
    "create_farm",
    "get_farm",
    "load_farm_settings",
    "save_farm_settings",
]
