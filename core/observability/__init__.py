"""
Observability Module for the fish intake pipeline

Provides structured logging with correlation IDs (farm, shipment, plan,
workflow) shared by services, activities and the HTTP layer.
"""

from core.observability.logging import (
    get_logger,
    configure_logging,
    CorrelationContext,
    with_correlation,
)

__all__ = [
    "get_logger",
    "configure_logging",
    "CorrelationContext",
    "with_correlation",
]
