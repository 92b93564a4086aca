"""Farm settings endpoints."""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from api.deps import get_store
from core.models.canonical import FarmSettings
from inventory.farms import load_farm_settings, save_farm_settings
from storage.documents import DocumentStore


router = APIRouter()


@router.get("/{farm_id}/settings")
def get_settings(farm_id: str, store: DocumentStore = Depends(get_store)) -> Dict[str, Any]:
    """Farm settings, or the defaults when the farm has none."""
    return load_farm_settings(store, farm_id).to_document()


@router.put("/{farm_id}/settings")
def put_settings(
    farm_id: str,
    data: Dict[str, Any],
    store: DocumentStore = Depends(get_store),
) -> Dict[str, Any]:
    """Replace farm settings; rejected with 400 when invalid."""
    settings = FarmSettings.model_validate(data)
    return save_farm_settings(store, farm_id, settings).to_document()
