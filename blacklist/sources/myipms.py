"""
myip.ms full blacklist adapter.

The feed is a ZIP-wrapped text file of the form:

    1.0.146.162    # 2017-04-27, host.example, USA, 1234

Whitespace is dropped, the comment hash becomes a field separator, and the
first five fields become the entry (IP, date, host, country, id).
"""

from datetime import timedelta

from blacklist.entries.schemas import IP
from blacklist.queues.error_sink import ErrorReporter
from blacklist.queues.streams import EntryTypeMap
from blacklist.sources.base import BlacklistSource, FeedFormatError
from blacklist.sources.http_client import RetryConfig
from blacklist.sources.line_separated import ONE_DAY, LineSource, url_lines
from blacklist.sources.schemas import Metadata

MYIPMS_URL = "https://myip.ms/files/blacklist/general/full_blacklist_database.zip"

_MIN_FIELDS = 5


class MyIPmsList(BlacklistSource):
    """IP blacklist published by myip.ms."""

    def __init__(
        self,
        line_source: LineSource | None = None,
        cache_time: timedelta = ONE_DAY,
        retry_config: RetryConfig | None = None,
    ):
        super().__init__(Metadata(name="myip.ms", types=(IP,), cache_time=cache_time))
        self._line_source = line_source or url_lines(
            MYIPMS_URL, zipped=True, retry_config=retry_config
        )

    async def fetch_data(self, streams: EntryTypeMap, errors: ErrorReporter) -> None:
        stream = streams[IP]
        async for raw in self._line_source():
            line = "".join(raw.split())
            if not line or line.startswith("#"):
                continue

            fields = line.replace("#", ",").split(",")
            if len(fields) < _MIN_FIELDS:
                errors.report(
                    FeedFormatError(
                        "malformed line from myip.ms; missing field",
                        source_name=self.name,
                        line=raw,
                    )
                )
                continue

            try:
                record_id = int(fields[4])
            except ValueError:
                record_id = -1

            await stream.send(
                self.entry(
                    fields[0],
                    {
                        "date": fields[1],
                        "host": fields[2],
                        "country": fields[3],
                        "id": record_id,
                    },
                )
            )
        stream.close()
