"""Entry and type model - typed identifiers and their validators."""

from blacklist.entries.schemas import (
    HOSTNAME,
    IP,
    URL,
    Entry,
    EntryType,
    ExtraValue,
    StorageResult,
)
from blacklist.entries.validators import (
    EntryTypeRegistry,
    EntryValidationError,
    UnknownEntryTypeError,
    validate_hostname,
    validate_ip,
    validate_url,
)

__all__ = [
    "HOSTNAME",
    "IP",
    "URL",
    "Entry",
    "EntryType",
    "EntryTypeRegistry",
    "EntryValidationError",
    "ExtraValue",
    "StorageResult",
    "UnknownEntryTypeError",
    "validate_hostname",
    "validate_ip",
    "validate_url",
]
