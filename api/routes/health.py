"""Health check endpoints."""

from datetime import datetime, timezone
from typing import Dict

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from api.deps import get_store
from core import __version__
from core.errors import StoreError
from storage.documents import FARMS, DocumentStore


router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: str
    version: str
    services: Dict[str, str]


@router.get("/health", response_model=HealthResponse)
def health_check(store: DocumentStore = Depends(get_store)) -> HealthResponse:
    """Health check endpoint."""
    try:
        store.query(FARMS, where={"farmId": "__health__"})
        storage = "up"
    except StoreError:
        storage = "down"

    return HealthResponse(
        status="healthy" if storage == "up" else "degraded",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=__version__,
        services={
            "api": "up",
            "storage": storage,
        },
    )


@router.get("/live")
async def liveness_check(response: Response) -> Dict[str, str]:
    """Liveness probe."""
    return {"status": "alive"}
