"""Configuration for the ingestion pipeline and query engine.

All settings can be overridden via environment variables with PIPELINE_ prefix.
Example: PIPELINE_INSERT_BATCH_SIZE=10000
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PipelineConfig(BaseSettings):
    """Ingestion pipeline configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PIPELINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    insert_batch_size: int = Field(
        default=50_000,
        ge=1,
        description="Entries per storage write",
    )
    stream_capacity: int = Field(
        default=1,
        ge=1,
        description="Buffered entries per typed stream before a send waits",
    )

    # Deadlines (None disables)
    fetch_timeout_seconds: float | None = Field(
        default=3600.0,
        gt=0,
        description="Deadline for a single source's fetch stage",
    )
    rpc_timeout_seconds: float | None = Field(
        default=30.0,
        gt=0,
        description="Deadline for a single RPC call during a query",
    )
