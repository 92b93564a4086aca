"""Shipment endpoints.

Extract shipment lines from an uploaded document or pasted text, import
them as a shipment, and read shipments back.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel, Field

from api.deps import get_oracle, get_store, get_user_id
from core.errors import UnsupportedDocument
from core.models.canonical import ShipmentMetadata
from extraction.documents import Document
from extraction.oracle import ExtractionOracle
from extraction.runner import extract
from inventory.shipments import (
    get_shipment,
    get_shipment_fish,
    get_shipments,
    import_shipment,
)
from storage.documents import DocumentStore


router = APIRouter()


class ImportRequest(BaseModel):
    """Request to import validated lines as a shipment."""
    supplier: Optional[str] = None
    date_received: Optional[str] = Field(None, alias="dateReceived")
    notes: Optional[str] = None
    items: List[Dict[str, Any]] = []

    model_config = {"populate_by_name": True}


@router.post("/extract")
async def extract_shipment(
    farm_id: str,
    file: Optional[UploadFile] = File(None),
    text: Optional[str] = Form(None),
    strategy: Optional[str] = Form(None),
    oracle: Optional[ExtractionOracle] = Depends(get_oracle),
) -> Dict[str, Any]:
    """Extract candidate lines from an uploaded file or pasted text.

    Answers 200 with an ExtractionResult whenever a file or text was sent;
    ``success`` is false when the document could not be read or the
    extraction service failed.
    """
    if file is not None:
        document = Document(
            filename=file.filename or "upload",
            content=await file.read(),
            media_type=file.content_type,
        )
    elif text is not None and text.strip():
        document = Document.from_text(text)
    else:
        raise UnsupportedDocument("Provide a file or pasted text")

    result = await extract(document, oracle=oracle, strategy=strategy)
    return result.to_document()


@router.post("", status_code=201)
def import_shipment_route(
    farm_id: str,
    request: ImportRequest,
    store: DocumentStore = Depends(get_store),
    user_id: Optional[str] = Depends(get_user_id),
) -> Dict[str, Any]:
    """Import lines as one shipment with its fish instances (all or nothing)."""
    metadata = ShipmentMetadata(
        supplier=request.supplier,
        date_received=request.date_received,
        notes=request.notes,
    )
    outcome = import_shipment(store, farm_id, metadata, request.items, user_id)
    return outcome.to_document()


@router.get("")
def list_shipments(farm_id: str, store: DocumentStore = Depends(get_store)) -> List[Dict[str, Any]]:
    """Shipments of the farm, most recently received first."""
    return [shipment.to_document() for shipment in get_shipments(store, farm_id)]


@router.get("/{shipment_id}")
def get_shipment_route(
    farm_id: str,
    shipment_id: str,
    store: DocumentStore = Depends(get_store),
) -> Dict[str, Any]:
    return get_shipment(store, farm_id, shipment_id).to_document()


@router.get("/{shipment_id}/fish")
def list_shipment_fish(
    farm_id: str,
    shipment_id: str,
    store: DocumentStore = Depends(get_store),
) -> List[Dict[str, Any]]:
    """Fish instances created by a shipment."""
    get_shipment(store, farm_id, shipment_id)
    return [fish.to_document() for fish in get_shipment_fish(store, farm_id, shipment_id)]
