"""
Line-separated blacklist feeds.

Covers the common "one value per line" format: plain-text downloads,
ZIP-wrapped text files and local custom lists. Blank lines and '#' comments
are skipped.
"""

import logging
from collections.abc import AsyncIterator, Callable
from datetime import timedelta
from pathlib import Path

from blacklist.entries.schemas import HOSTNAME, IP, EntryType
from blacklist.queues.error_sink import ErrorReporter
from blacklist.queues.streams import EntryTypeMap
from blacklist.sources.base import BlacklistSource
from blacklist.sources.http_client import HTTPClient, RetryConfig, fetch_lines, fetch_zipped_lines
from blacklist.sources.schemas import Metadata

logger = logging.getLogger(__name__)

LineSource = Callable[[], AsyncIterator[str]]

ONE_DAY = timedelta(days=1)

FEODO_URL = "https://feodotracker.abuse.ch/downloads/ipblocklist.txt"
DNS_BH_URL = "http://www.malware-domains.com/files/justdomains.zip"


def url_lines(
    url: str,
    zipped: bool = False,
    retry_config: RetryConfig | None = None,
    timeout: float = 120.0,
) -> LineSource:
    """Build a LineSource that downloads `url` on each fetch."""

    async def lines() -> AsyncIterator[str]:
        async with HTTPClient(retry_config, timeout=timeout) as client:
            reader = fetch_zipped_lines if zipped else fetch_lines
            async for line in reader(client, url):
                yield line

    return lines


def file_lines(path: Path | str) -> LineSource:
    """Build a LineSource that reads a local file on each fetch."""

    async def lines() -> AsyncIterator[str]:
        with open(path, encoding="utf-8", errors="replace") as f:
            for line in f:
                yield line

    return lines


class LineSeparatedList(BlacklistSource):
    """
    A single-type feed with one index per line.

    Args:
        entry_type: Type of every entry in the feed
        name: Unique source name
        cache_time: How long fetched data stays fresh
        line_source: Callable returning the feed's lines for one fetch
    """

    def __init__(
        self,
        entry_type: EntryType,
        name: str,
        cache_time: timedelta,
        line_source: LineSource,
    ):
        super().__init__(Metadata(name=name, types=(entry_type,), cache_time=cache_time))
        self._entry_type = entry_type
        self._line_source = line_source

    async def fetch_data(self, streams: EntryTypeMap, errors: ErrorReporter) -> None:
        stream = streams[self._entry_type]
        count = 0
        async for raw in self._line_source():
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            await stream.send(self.entry(line))
            count += 1
        stream.close()
        logger.debug(f"{self.name}: emitted {count} {self._entry_type} entries")


def feodo_tracker_list(retry_config: RetryConfig | None = None) -> LineSeparatedList:
    """abuse.ch Feodo Tracker botnet C2 IP blocklist."""
    return LineSeparatedList(
        IP,
        "feodo tracker",
        ONE_DAY,
        url_lines(FEODO_URL, retry_config=retry_config),
    )


def dns_bh_list(retry_config: RetryConfig | None = None) -> LineSeparatedList:
    """DNS-BH malware domain list (ZIP-wrapped)."""
    return LineSeparatedList(
        HOSTNAME,
        "dns-bh",
        ONE_DAY,
        url_lines(DNS_BH_URL, zipped=True, retry_config=retry_config),
    )


def file_list(
    entry_type: EntryType,
    name: str,
    path: Path | str,
    cache_time: timedelta = ONE_DAY,
) -> LineSeparatedList:
    """A custom list kept in a local file."""
    return LineSeparatedList(entry_type, name, cache_time, file_lines(path))
