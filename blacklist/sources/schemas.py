"""Data models for feed sources."""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone

from blacklist.entries.schemas import EntryType

# Marks a registry row whose cache has never been fully built
NEVER_UPDATED = datetime.fromtimestamp(0, tz=timezone.utc)


def _utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


@dataclass
class Metadata:
    """
    Persisted bookkeeping record for a feed source.

    `name` is the unique key. `types` is a set kept in declaration order; it
    must not change once the source has registered entries, except through
    a full remove and re-add.
    """

    name: str
    types: tuple[EntryType, ...]
    cache_time: timedelta
    last_update: datetime = NEVER_UPDATED

    def __post_init__(self) -> None:
        self.types = tuple(dict.fromkeys(self.types))
        if self.last_update.tzinfo is None:
            self.last_update = self.last_update.replace(tzinfo=timezone.utc)

    def with_last_update(self, last_update: datetime) -> "Metadata":
        """Return a copy with a different last_update."""
        return replace(self, last_update=last_update)

    @property
    def expires_at(self) -> datetime:
        return self.last_update + self.cache_time


def should_fetch(meta: Metadata, now: datetime | None = None) -> bool:
    """
    TTL gate: True once the cached data has outlived its cache time.

    Fresh while now <= last_update + cache_time, stale afterwards.
    """
    now = now or _utc_now()
    return now > meta.expires_at
