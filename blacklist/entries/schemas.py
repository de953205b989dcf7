"""
Entry and type model for the blacklist cache.

CRITICAL: StorageResult is the shape that crosses the storage boundary and is
returned from both cached lookups and RPCs. Storage handles and RPCs MUST
produce this exact structure.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, field_validator

if TYPE_CHECKING:
    from blacklist.sources.base import BlacklistSource

# Entry type names double as storage table suffixes
_TYPE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_]{0,47}$")

# Tagged variant for extra data values carried alongside an entry
ExtraValue = str | int | list[str]


@dataclass(frozen=True)
class EntryType:
    """
    A category of blacklistable value (hostname, IP, URL, ...).

    The set of types is open: new types are made usable by registering a
    validator for them on an EntryTypeRegistry.
    """

    name: str

    def __post_init__(self) -> None:
        if not _TYPE_NAME_PATTERN.match(self.name):
            raise ValueError(
                f"Entry type name must match {_TYPE_NAME_PATTERN.pattern}: {self.name!r}"
            )

    def __str__(self) -> str:
        return self.name


HOSTNAME = EntryType("hostname")
IP = EntryType("ip")
URL = EntryType("url")


class StorageResult(BaseModel):
    """
    Persisted, query-facing projection of an Entry.

    Decoupled from the live source object so it can be stored and returned
    uniformly from cached lookups and RPCs.
    """

    index: str = Field(..., min_length=1, description="The blacklisted value")
    list_name: str = Field(..., min_length=1, description="Name of the reporting source")
    extra_data: dict[str, ExtraValue] = Field(
        default_factory=dict,
        description="Source-specific details (dates, countries, threat types)",
    )

    model_config = {"frozen": True}

    @field_validator("extra_data", mode="before")
    @classmethod
    def copy_extra_data(cls, v: Any) -> Any:
        """Copy list values so stored results never alias an entry's data."""
        if isinstance(v, Mapping):
            return {k: list(val) if isinstance(val, (list, tuple)) else val for k, val in v.items()}
        return v


@dataclass(frozen=True)
class Entry:
    """A single blacklisted value emitted by a source's fetch stage."""

    index: str
    source: "BlacklistSource" = field(repr=False, compare=False)
    extra_data: Mapping[str, ExtraValue] = field(default_factory=dict)

    @property
    def list_name(self) -> str:
        return self.source.get_metadata().name

    def to_storage_result(self) -> StorageResult:
        """Convert to the storage-safe variant."""
        return StorageResult(
            index=self.index,
            list_name=self.list_name,
            extra_data=dict(self.extra_data),
        )
