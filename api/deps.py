"""Request dependencies shared by the routers.

Tests replace these through ``app.dependency_overrides``.
"""

from typing import Optional

from fastapi import Header

from core.config import load_settings
from extraction.oracle import ExtractionOracle, OpenAIExtractionOracle
from storage.documents import DocumentStore, open_store


def get_store() -> DocumentStore:
    """Document store configured by ``FISHFARM_DB_PATH``."""
    return open_store()


def get_oracle() -> Optional[ExtractionOracle]:
    return OpenAIExtractionOracle.from_settings(load_settings())


def get_user_id(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    """Caller identity from the ``X-User-Id`` header; None when absent."""
    if x_user_id is None or not x_user_id.strip():
        return None
    return x_user_id.strip()
