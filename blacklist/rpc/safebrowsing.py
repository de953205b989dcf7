"""
Google Safe Browsing URL lookups.

Uses the v4 Lookup API (threatMatches:find). URLs are sent in batches of
`batch_size`; every matched URL becomes one StorageResult listing the
threat types it matched.
"""

import logging
from collections.abc import Sequence
from typing import Any

from blacklist.entries.schemas import URL, EntryType, StorageResult
from blacklist.rpc.base import RPC
from blacklist.rpc.config import SafeBrowsingConfig
from blacklist.sources.http_client import APIKeyRotator, HTTPClient, RetryConfig

logger = logging.getLogger(__name__)

LIST_NAME = "google-safebrowsing"


class SafeBrowsingRPC(RPC):
    """
    URL checks against Google Safe Browsing.

    Example:
        rpc = SafeBrowsingRPC(SafeBrowsingConfig(api_keys="key"))
        hits = await rpc.check("http://malware.testing.google.test/testing/malware/")
    """

    def __init__(self, config: SafeBrowsingConfig | None = None):
        self._config = config or SafeBrowsingConfig()
        self._keys = APIKeyRotator.from_env_var(self._config.api_keys)
        if self._keys is None:
            raise ValueError("Safe Browsing requires at least one API key (SAFEBROWSING_API_KEYS)")
        self._retry_config = RetryConfig(max_retries=self._config.max_retries)

    @property
    def name(self) -> str:
        return LIST_NAME

    @property
    def entry_type(self) -> EntryType:
        return URL

    async def check(self, *indexes: str) -> dict[str, StorageResult]:
        """
        Look up `indexes` and return the hits.

        Raises:
            HTTPClientError: When a request fails after retries
        """
        urls = list(dict.fromkeys(indexes))
        hits: dict[str, set[str]] = {}

        async with HTTPClient(self._retry_config, timeout=self._config.timeout_seconds) as client:
            for start in range(0, len(urls), self._config.batch_size):
                batch = urls[start:start + self._config.batch_size]
                response = await client.post(
                    self._config.api_url,
                    json_body=self._request_body(batch),
                    api_key_rotator=self._keys,
                    api_key_param="key",
                )
                for url, threat_type in _parse_matches(response.json()):
                    hits.setdefault(url, set()).add(threat_type)

        logger.debug("Safe Browsing matched %d of %d urls", len(hits), len(urls))
        return {
            url: StorageResult(
                index=url,
                list_name=LIST_NAME,
                extra_data={"threat_types": sorted(threat_types)},
            )
            for url, threat_types in hits.items()
        }

    def _request_body(self, urls: Sequence[str]) -> dict[str, Any]:
        return {
            "client": {
                "clientId": self._config.client_id,
                "clientVersion": self._config.client_version,
            },
            "threatInfo": {
                "threatTypes": self._config.threat_types,
                "platformTypes": self._config.platform_types,
                "threatEntryTypes": ["URL"],
                "threatEntries": [{"url": url} for url in urls],
            },
        }


def _parse_matches(data: dict[str, Any]) -> list[tuple[str, str]]:
    """Extract (url, threat type) pairs. An empty response body means no matches."""
    matches = []
    for match in data.get("matches", []):
        url = match.get("threat", {}).get("url")
        threat_type = match.get("threatType")
        if url and threat_type:
            matches.append((url, threat_type))
    return matches
