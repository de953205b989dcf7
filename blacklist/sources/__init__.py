"""Sources: pluggable blacklist feed adapters."""

from blacklist.sources.base import BlacklistSource, FeedFormatError, FetchError, FetchTimeoutError
from blacklist.sources.line_separated import (
    LineSeparatedList,
    dns_bh_list,
    feodo_tracker_list,
    file_list,
)
from blacklist.sources.mdl import MalwareDomainList
from blacklist.sources.mock_list import DummyList
from blacklist.sources.myipms import MyIPmsList
from blacklist.sources.registry import SourceRegistry, UnknownSourceError, default_source_registry
from blacklist.sources.schemas import NEVER_UPDATED, Metadata, should_fetch

__all__ = [
    "NEVER_UPDATED",
    "BlacklistSource",
    "DummyList",
    "FeedFormatError",
    "FetchError",
    "FetchTimeoutError",
    "LineSeparatedList",
    "MalwareDomainList",
    "Metadata",
    "MyIPmsList",
    "SourceRegistry",
    "UnknownSourceError",
    "default_source_registry",
    "dns_bh_list",
    "feodo_tracker_list",
    "file_list",
    "should_fetch",
]
