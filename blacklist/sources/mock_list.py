"""
Mock source for testing and development.

Emits 100 synthetic IPv4 addresses (0.0.0.0 through 99.0.0.0) and a fixed
set of well-known hostnames. Its cache time is zero, so every update
refetches it.
"""

import ipaddress
from datetime import timedelta

from blacklist.entries.schemas import HOSTNAME, IP
from blacklist.queues.error_sink import ErrorReporter
from blacklist.queues.streams import EntryTypeMap
from blacklist.sources.base import BlacklistSource
from blacklist.sources.schemas import Metadata

DUMMY_IP_COUNT = 100

DUMMY_HOSTNAMES = [
    "163.com",
    "1688.com",
    "accuweather.com",
    "alexa.com",
    "blog.com",
    "bloomberg.com",
    "booking.com",
    "boston.com",
    "cdc.gov",
    "craigslist.org",
    "creativecommons.org",
    "dailymail.co.uk",
    "dell.com",
    "disqus.com",
    "ebay.co.uk",
    "eventbrite.com",
    "feedburner.com",
    "github.io",
    "google.cn",
    "hp.com",
    "irs.gov",
    "live.com",
    "marketwatch.com",
    "mit.edu",
    "mozilla.org",
    "noaa.gov",
    "ovh.net",
    "stanford.edu",
    "taobao.com",
    "youtu.be",
]


class DummyList(BlacklistSource):
    """IP + hostname mock list with no caching."""

    def __init__(self, name: str = "Dummy"):
        super().__init__(
            Metadata(name=name, types=(IP, HOSTNAME), cache_time=timedelta(0))
        )

    async def fetch_data(self, streams: EntryTypeMap, errors: ErrorReporter) -> None:
        ips = streams[IP]
        for i in range(DUMMY_IP_COUNT):
            # first octet counts up: 0.0.0.0, 1.0.0.0, ...
            address = ipaddress.IPv4Address(i.to_bytes(4, "little"))
            await ips.send(self.entry(str(address)))
        ips.close()

        hostnames = streams[HOSTNAME]
        for hostname in DUMMY_HOSTNAMES:
            await hostnames.send(self.entry(hostname))
        hostnames.close()
