"""Worker for the fish intake pipeline.

Connects to Temporal, then polls the configured task queue
(``TEMPORAL_TASK_QUEUE``, default ``fish-intake``) for intake workflows and
their activities.

Run with --queue <name> to override the queue.
"""

import argparse
import asyncio
import sys
from pathlib import Path

from temporalio.worker import Worker

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core.config import load_settings
from core.observability.logging import configure_logging, get_logger
from temporal_client import get_temporal_client
from workflows.shipment_intake_workflow import ShipmentIntakeWorkflow
from activities.extract import extract_document_activity
from activities.persist import import_shipment_activity, add_plan_items_activity


logger = get_logger(__name__)

WORKFLOWS = [ShipmentIntakeWorkflow]

ACTIVITIES = [
    extract_document_activity,
    import_shipment_activity,
    add_plan_items_activity,
]


def build_worker(client, task_queue: str) -> Worker:
    return Worker(
        client,
        task_queue=task_queue,
        workflows=WORKFLOWS,
        activities=ACTIVITIES,
    )


async def run_worker(queue: str = None):
    """Start a worker listening on ``queue``.

    Args:
        queue: Task queue to poll (default: TEMPORAL_TASK_QUEUE setting)

    Raises:
        Exception: If connection to Temporal fails
    """
    settings = load_settings()
    task_queue = queue or settings.temporal_task_queue

    try:
        client = await get_temporal_client(settings)
        logger.info("Connected to Temporal", extra_fields={"namespace": client.namespace})

        worker = build_worker(client, task_queue)
        logger.info(
            "Worker running (Ctrl+C to stop)",
            extra_fields={
                "task_queue": task_queue,
                "workflows": len(WORKFLOWS),
                "activities": len(ACTIVITIES),
            },
        )
        await worker.run()

    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")
    except Exception:
        logger.exception("Worker error")
        raise


def main():
    """Entry point for worker with CLI args."""
    settings = load_settings()
    configure_logging(level=settings.log_level, json_format=settings.log_json)

    parser = argparse.ArgumentParser(description="Fish Intake Temporal Worker")
    parser.add_argument(
        "--queue", "-q",
        default=settings.temporal_task_queue,
        help=f"Task queue to poll (default: {settings.temporal_task_queue})",
    )

    args = parser.parse_args()
    asyncio.run(run_worker(queue=args.queue))


if __name__ == "__main__":
    main()
