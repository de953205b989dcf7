"""
Per-type index validators and the registry that binds them to entry types.

A validator takes a raw index string and raises EntryValidationError when the
value is malformed for its type. The registry is an explicit object owned by
the composition root; there is no module-level mutable state.
"""

import ipaddress
from collections.abc import Callable, Iterator
from urllib.parse import urlsplit

from blacklist.entries.schemas import HOSTNAME, IP, URL, EntryType

Validator = Callable[[str], None]

MAX_HOSTNAME_LENGTH = 253
MAX_LABEL_LENGTH = 63
MAX_PORT = 65535


class EntryValidationError(ValueError):
    """Raised when an index is malformed for its declared entry type."""

    def __init__(
        self,
        message: str,
        index: str | None = None,
        entry_type: EntryType | None = None,
        source_name: str | None = None,
    ):
        super().__init__(message)
        self.index = index
        self.entry_type = entry_type
        self.source_name = source_name


class UnknownEntryTypeError(LookupError):
    """Raised when no validator is registered for an entry type."""

    def __init__(self, entry_type: EntryType, source_name: str | None = None):
        super().__init__(f"No validator registered for entry type '{entry_type}'")
        self.entry_type = entry_type
        self.source_name = source_name


def _is_hostname_char(char: str) -> bool:
    return char.isascii() and (char.isalnum() or char in "-._")


def validate_hostname(hostname: str) -> None:
    """
    Validate a DNS hostname.

    Allows letters, digits, '-', '.' and '_'. Each dot-separated label must
    be 1-63 characters and must not start or end with '-'.
    """
    if not 1 <= len(hostname) <= MAX_HOSTNAME_LENGTH:
        raise EntryValidationError(
            f"hostnames must be between 1 and {MAX_HOSTNAME_LENGTH} characters long"
        )

    for char in hostname:
        if not _is_hostname_char(char):
            raise EntryValidationError(f"invalid char {char!r} found in hostname label")

    for label in hostname.split("."):
        if not 1 <= len(label) <= MAX_LABEL_LENGTH:
            raise EntryValidationError(
                f"hostname labels must be between 1 and {MAX_LABEL_LENGTH} characters long"
            )
        if label.startswith("-"):
            raise EntryValidationError("hostname labels must not start with a minus sign")
        if label.endswith("-"):
            raise EntryValidationError("hostname labels must not end with a minus sign")


def validate_ip(value: str) -> None:
    """Validate an IPv4 or IPv6 address."""
    try:
        ipaddress.ip_address(value)
    except ValueError as e:
        raise EntryValidationError("failed to parse ip address") from e


def _split_host_port(host_port: str) -> tuple[str, str | None]:
    """Split 'host[:port]' or '[v6]:port' into host and raw port string."""
    if host_port.startswith("["):
        host, bracket, rest = host_port[1:].partition("]")
        if not bracket or (rest and not rest.startswith(":")):
            raise EntryValidationError("malformed bracketed host in url")
        return host, rest[1:] if rest else None

    host, sep, port = host_port.partition(":")
    return host, port if sep else None


def validate_url(value: str) -> None:
    """
    Validate an absolute URL.

    Requires a scheme and a host. The host must be a valid hostname or IP
    address and an explicit port must be numeric and within range.
    """
    try:
        parts = urlsplit(value)
    except ValueError as e:
        raise EntryValidationError(f"unable to parse url: {e}") from e

    if not parts.scheme or not parts.netloc:
        raise EntryValidationError("url must be absolute with a scheme and host")

    # Drop any userinfo before the host
    host_port = parts.netloc.rpartition("@")[2]
    host, port = _split_host_port(host_port)

    if port is not None:
        if not port.isdigit():
            raise EntryValidationError("port specifier found but unable to parse port in url")
        if int(port) > MAX_PORT:
            raise EntryValidationError("invalid port number specified in url")

    for check in (validate_hostname, validate_ip):
        try:
            check(host)
            return
        except EntryValidationError:
            continue
    raise EntryValidationError("invalid host for url")


class EntryTypeRegistry:
    """
    Maps entry types to their validators.

    Usage:
        registry = EntryTypeRegistry.with_defaults()
        registry.register(EntryType("asn"), validate_asn)
        registry.validate(IP, "10.0.0.1")
    """

    def __init__(self) -> None:
        self._validators: dict[EntryType, Validator] = {}

    @classmethod
    def with_defaults(cls) -> "EntryTypeRegistry":
        """Create a registry holding the built-in hostname, IP and URL types."""
        registry = cls()
        registry.register(HOSTNAME, validate_hostname)
        registry.register(IP, validate_ip)
        registry.register(URL, validate_url)
        return registry

    def register(self, entry_type: EntryType, validator: Validator) -> None:
        """Register (or replace) the validator for an entry type."""
        self._validators[entry_type] = validator

    def validator_for(self, entry_type: EntryType) -> Validator:
        try:
            return self._validators[entry_type]
        except KeyError:
            raise UnknownEntryTypeError(entry_type) from None

    def validate(self, entry_type: EntryType, index: str) -> None:
        """Validate an index, raising EntryValidationError if malformed."""
        self.validator_for(entry_type)(index)

    def __contains__(self, entry_type: object) -> bool:
        return entry_type in self._validators

    def __iter__(self) -> Iterator[EntryType]:
        return iter(self._validators)

    def get(self, name: str) -> EntryType:
        """Look up a registered entry type by name."""
        for entry_type in self._validators:
            if entry_type.name == name:
                return entry_type
        raise UnknownEntryTypeError(EntryType(name))
