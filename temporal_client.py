"""Temporal client factory.

Creates connections to Temporal (Cloud or a local dev server) using the
settings loaded from the environment.
"""

from typing import Optional

from temporalio.client import Client

from core.config import Settings, load_settings


async def get_temporal_client(settings: Optional[Settings] = None) -> Client:
    """Create and return a connected Temporal client.

    Reads configuration from settings (environment):
    - TEMPORAL_ENDPOINT: Temporal endpoint (e.g., "temporal.example.com:7233")
    - TEMPORAL_NAMESPACE: Namespace (e.g., "default")
    - TEMPORAL_API_KEY: API key for Temporal Cloud; when unset, connect
      without TLS (local dev server)

    Returns:
        Configured Temporal client

    Raises:
        ValueError: If TEMPORAL_ENDPOINT is missing
    """
    settings = settings or load_settings()

    if not settings.temporal_endpoint:
        raise ValueError(
            "TEMPORAL_ENDPOINT environment variable not set. "
            "Set to your Temporal endpoint (e.g., 'localhost:7233')"
        )

    if not settings.temporal_api_key:
        return await Client.connect(
            settings.temporal_endpoint,
            namespace=settings.temporal_namespace,
        )

    # Temporal Cloud: TLS with system certificates plus API key
    return await Client.connect(
        target_host=settings.temporal_endpoint,
        namespace=settings.temporal_namespace,
        tls=True,
        api_key=settings.temporal_api_key,
    )
