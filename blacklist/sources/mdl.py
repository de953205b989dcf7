"""
Malware Domain List (MDL) adapter.

One CSV feed carries both URLs and the IPs they resolved to, so this source
declares two entry types and fills both streams from a single pass.

Fields are split on '","' rather than ',' because free-text fields may
contain commas. Relevant columns:
    0 date, 1 url ('-' when the host column holds the url), 2 host/ip,
    4 description, 8 country
"""

from datetime import timedelta

from blacklist.entries.schemas import IP, URL
from blacklist.queues.error_sink import ErrorReporter
from blacklist.queues.streams import EntryTypeMap
from blacklist.sources.base import BlacklistSource, FeedFormatError
from blacklist.sources.http_client import RetryConfig
from blacklist.sources.line_separated import ONE_DAY, LineSource, url_lines
from blacklist.sources.schemas import Metadata

MDL_URL = "http://www.malwaredomainlist.com/mdlcsv.php"

_MIN_FIELDS = 9


class MalwareDomainList(BlacklistSource):
    """IP and URL blacklist from malwaredomainlist.com."""

    def __init__(
        self,
        line_source: LineSource | None = None,
        cache_time: timedelta = ONE_DAY,
        retry_config: RetryConfig | None = None,
    ):
        super().__init__(Metadata(name="mdl", types=(IP, URL), cache_time=cache_time))
        self._line_source = line_source or url_lines(MDL_URL, retry_config=retry_config)

    async def fetch_data(self, streams: EntryTypeMap, errors: ErrorReporter) -> None:
        ips, urls = streams[IP], streams[URL]
        seen: set[str] = set()

        async for line in self._line_source():
            if not line:
                continue

            fields = line.split('","')
            if len(fields) < _MIN_FIELDS:
                errors.report(
                    FeedFormatError(
                        "malformed line from MDL; missing field",
                        source_name=self.name,
                        line=line,
                    )
                )
                continue

            extra = {
                "date": fields[0].lstrip('"'),
                "type": fields[4],
                "country": fields[8].rstrip(",").strip('"'),
            }

            if fields[1] == "-":
                # host column holds the url
                url = "http://" + fields[2]
                if url in seen:
                    continue
            else:
                url = "http://" + fields[1]
                if url in seen:
                    continue
                ip = fields[2]
                if ip not in seen:
                    await ips.send(self.entry(ip, extra))
                    seen.add(ip)

            await urls.send(self.entry(url, extra))
            seen.add(url)

        ips.close()
        urls.close()
