"""Record validators for shipment lines, aquariums, reception plans and farm settings."""

from validation.rules import (
    validate,
    validate_candidate,
    validate_aquarium,
    validate_reception_plan,
    validate_reception_item,
    validate_farm_settings,
)

__all__ = [
    "validate",
    "validate_candidate",
    "validate_aquarium",
    "validate_reception_plan",
    "validate_reception_item",
    "validate_farm_settings",
]
