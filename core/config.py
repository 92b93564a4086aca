"""Environment-driven settings.

Values are read from the process environment after loading ``.env`` at the
repository root, the same way the Temporal client factory does.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


REPO_ROOT = Path(__file__).resolve().parents[1]
ENV_PATH = REPO_ROOT / ".env"

if ENV_PATH.exists():
    load_dotenv(ENV_PATH)


DEFAULT_DB_PATH = REPO_ROOT / "fishfarm.db"
DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the intake pipeline."""
    db_path: Path = DEFAULT_DB_PATH
    openai_api_key: Optional[str] = None
    extraction_model: str = "gpt-4o"
    oracle_timeout_seconds: float = 45.0
    oracle_max_tokens: int = 4096
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    log_level: str = "INFO"
    log_json: bool = False
    temporal_endpoint: Optional[str] = None
    temporal_namespace: str = "default"
    temporal_api_key: Optional[str] = None
    temporal_task_queue: str = "fish-intake"


def load_settings() -> Settings:
    """Build Settings from the current environment.

    Returns:
        A frozen Settings instance; unset keys keep their defaults.
    """
    db_path = os.getenv("FISHFARM_DB_PATH")
    return Settings(
        db_path=Path(db_path) if db_path else DEFAULT_DB_PATH,
        openai_api_key=os.getenv("OPENAI_API_KEY") or None,
        extraction_model=os.getenv("EXTRACTION_MODEL") or "gpt-4o",
        oracle_timeout_seconds=_env_float("ORACLE_TIMEOUT_SECONDS", 45.0),
        oracle_max_tokens=_env_int("ORACLE_MAX_TOKENS", 4096),
        max_upload_bytes=_env_int("MAX_UPLOAD_BYTES", DEFAULT_MAX_UPLOAD_BYTES),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        log_json=_env_bool("LOG_JSON"),
        temporal_endpoint=os.getenv("TEMPORAL_ENDPOINT") or None,
        temporal_namespace=os.getenv("TEMPORAL_NAMESPACE") or "default",
        temporal_api_key=os.getenv("TEMPORAL_API_KEY") or None,
        temporal_task_queue=os.getenv("TEMPORAL_TASK_QUEUE") or "fish-intake",
    )
