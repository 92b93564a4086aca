"""
Shipment Intake Workflow

Orchestrates one intake: EXTRACT -> IMPORT (new shipment) or ATTACH
(planned items of an existing reception plan).

An unsuccessful extraction ends the workflow with the extraction error;
rows that failed validation are reported but never persisted.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from temporalio import workflow
from temporalio.common import RetryPolicy
from temporalio.exceptions import ActivityError

with workflow.unsafe.imports_passed_through():
    from activities.extract import (
        extract_document_activity,
        ExtractDocumentInput,
    )
    from activities.persist import (
        import_shipment_activity,
        add_plan_items_activity,
        ImportShipmentInput,
        AddPlanItemsInput,
    )


# Margin on top of the oracle's own bounded wait
EXTRACT_TIMEOUT_MARGIN_SECONDS = 30

# Errors that a retry cannot fix
NON_RETRYABLE_ERRORS = [
    "Unauthenticated",
    "MissingFarm",
    "EmptyImport",
    "PlanNotFound",
    "PlanLocked",
    "RecordValidationError",
    "DocumentNotFound",
]


# =============================================================================
# Workflow Input/Output
# =============================================================================

class IntakeStage(str, Enum):
    EXTRACT = "EXTRACT"
    IMPORT = "IMPORT"
    ATTACH = "ATTACH"
    DONE = "DONE"


class IntakeStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass
class ShipmentIntakeInput:
    """Input for the shipment intake workflow.

    Attributes:
        farm_id: Farm receiving the fish
        user_id: Operator who started the intake
        text: Pasted free text (used when file_path is empty)
        file_path: Absolute path to the uploaded document
        plan_id: When set, attach lines to this reception plan instead of importing
        supplier: Supplier override (else the extracted supplier)
        date_received: ISO date override (else the extracted date)
        notes: Shipment notes
        strategy: Force "grid" or "oracle"
        oracle_timeout_seconds: Oracle bounded wait, used to size the activity timeout
    """
    farm_id: str
    user_id: str
    text: Optional[str] = None
    file_path: Optional[str] = None
    plan_id: Optional[str] = None
    supplier: Optional[str] = None
    date_received: Optional[str] = None
    notes: Optional[str] = None
    strategy: Optional[str] = None
    oracle_timeout_seconds: float = 45.0


@dataclass
class ShipmentIntakeOutput:
    """Output from the shipment intake workflow"""
    farm_id: str
    status: str
    stage: str
    summary: Dict[str, Any] = field(default_factory=dict)
    invalid_rows: List[Dict[str, Any]] = field(default_factory=list)
    shipment_id: Optional[str] = None
    total_fish: int = 0
    plan_id: Optional[str] = None
    item_ids: List[str] = field(default_factory=list)
    error_message: Optional[str] = None


def split_rows(result: Dict[str, Any]) -> Dict[str, List[Dict[str, Any]]]:
    """Partition serialized extraction rows into valid records and invalid rows."""
    valid: List[Dict[str, Any]] = []
    invalid: List[Dict[str, Any]] = []
    for row in result.get("data", []):
        if row.get("verdict", {}).get("isValid"):
            valid.append(row["record"])
        else:
            invalid.append(row)
    return {"valid": valid, "invalid": invalid}


# =============================================================================
# Shipment Intake Workflow
# =============================================================================

@workflow.defn
class ShipmentIntakeWorkflow:
    """
    Per-document intake workflow.

    1. EXTRACT - Turn the document into validated candidate lines
    2. IMPORT  - Persist valid lines as a shipment with fish instances
       or
       ATTACH  - Add valid lines to a reception plan as planned items
    """

    def __init__(self):
        self.stage = IntakeStage.EXTRACT

    @workflow.query
    def current_stage(self) -> str:
        return self.stage.value

    @workflow.run
    async def run(self, input: ShipmentIntakeInput) -> ShipmentIntakeOutput:
        """Execute the intake workflow."""
        workflow.logger.info(f"Starting shipment intake for farm {input.farm_id}")

        output = ShipmentIntakeOutput(
            farm_id=input.farm_id,
            status=IntakeStatus.IN_PROGRESS.value,
            stage=self.stage.value,
            plan_id=input.plan_id,
        )

        extract_options = {
            "start_to_close_timeout": timedelta(
                seconds=input.oracle_timeout_seconds + EXTRACT_TIMEOUT_MARGIN_SECONDS
            ),
            "retry_policy": RetryPolicy(
                maximum_attempts=3,
                initial_interval=timedelta(seconds=2),
                maximum_interval=timedelta(seconds=30),
                backoff_coefficient=2.0,
            ),
        }

        store_options = {
            "start_to_close_timeout": timedelta(seconds=30),
            "retry_policy": RetryPolicy(
                maximum_attempts=3,
                initial_interval=timedelta(seconds=1),
                backoff_coefficient=2.0,
                non_retryable_error_types=NON_RETRYABLE_ERRORS,
            ),
        }

        try:
            # =================================================================
            # Stage: EXTRACT
            # =================================================================
            extracted = await workflow.execute_activity(
                extract_document_activity,
                ExtractDocumentInput(
                    farm_id=input.farm_id,
                    text=input.text,
                    file_path=input.file_path,
                    strategy=input.strategy,
                ),
                **extract_options,
            )
            output.summary = extracted.result.get("summary", {})

            if not extracted.success:
                workflow.logger.warning(f"Extraction failed: {extracted.error}")
                output.status = IntakeStatus.FAILED.value
                output.error_message = extracted.error
                return output

            rows = split_rows(extracted.result)
            output.invalid_rows = rows["invalid"]
            workflow.logger.info(
                f"Extracted {len(rows['valid'])} valid / {len(rows['invalid'])} invalid rows"
            )

            # =================================================================
            # Stage: ATTACH (reception plan)
            # =================================================================
            if input.plan_id:
                self.stage = IntakeStage.ATTACH
                attached = await workflow.execute_activity(
                    add_plan_items_activity,
                    AddPlanItemsInput(
                        farm_id=input.farm_id,
                        plan_id=input.plan_id,
                        items=rows["valid"],
                    ),
                    **store_options,
                )
                output.item_ids = attached.item_ids

            # =================================================================
            # Stage: IMPORT (new shipment)
            # =================================================================
            else:
                self.stage = IntakeStage.IMPORT
                meta = extracted.result.get("extractedMeta", {})
                imported = await workflow.execute_activity(
                    import_shipment_activity,
                    ImportShipmentInput(
                        farm_id=input.farm_id,
                        user_id=input.user_id,
                        items=rows["valid"],
                        supplier=input.supplier or meta.get("supplier"),
                        date_received=input.date_received or meta.get("dateReceived"),
                        notes=input.notes,
                    ),
                    **store_options,
                )
                output.shipment_id = imported.shipment_id
                output.total_fish = imported.total_fish

            self.stage = IntakeStage.DONE
            output.status = IntakeStatus.COMPLETED.value
            output.stage = self.stage.value
            workflow.logger.info(f"Shipment intake completed for farm {input.farm_id}")
            return output

        except ActivityError as e:
            cause = e.cause or e
            workflow.logger.error(f"Shipment intake failed at {self.stage.value}: {cause}")
            output.status = IntakeStatus.FAILED.value
            output.stage = self.stage.value
            output.error_message = str(cause)
            return output
