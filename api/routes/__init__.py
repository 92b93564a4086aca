"""API Routes Package."""

from api.routes import health, farms, shipments, aquariums, reception

__all__ = [
    "health",
    "farms",
    "shipments",
    "aquariums",
    "reception",
]
