"""Configuration for the Google Safe Browsing lookup.

All settings can be overridden via environment variables with SAFEBROWSING_ prefix.
Example: SAFEBROWSING_API_KEYS=key1,key2
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SafeBrowsingConfig(BaseSettings):
    """Safe Browsing v4 Lookup API configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SAFEBROWSING_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    api_keys: str | None = Field(
        default=None,
        description="Comma-separated API keys, rotated per request",
    )
    api_url: str = Field(
        default="https://safebrowsing.googleapis.com/v4/threatMatches:find",
        description="threatMatches:find endpoint",
    )
    client_id: str = Field(default="blacklist-cache")
    client_version: str = Field(default="0.1.0")

    threat_types: list[str] = Field(
        default=[
            "MALWARE",
            "SOCIAL_ENGINEERING",
            "UNWANTED_SOFTWARE",
            "POTENTIALLY_HARMFUL_APPLICATION",
        ],
    )
    platform_types: list[str] = Field(default=["ANY_PLATFORM"])

    # The API accepts at most 500 threat entries per request
    batch_size: int = Field(default=500, ge=1, le=500)
    timeout_seconds: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=2, ge=0, le=10)

    @property
    def enabled(self) -> bool:
        """True when at least one API key is configured."""
        return bool(self.api_keys and self.api_keys.strip(" ,"))
