"""Workflow definitions module."""

from workflows.shipment_intake_workflow import (
    ShipmentIntakeWorkflow,
    ShipmentIntakeInput,
    ShipmentIntakeOutput,
)

__all__ = ["ShipmentIntakeWorkflow", "ShipmentIntakeInput", "ShipmentIntakeOutput"]
