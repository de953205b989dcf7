"""
Explicit source factory registry.

The composition root (the CLI) owns a SourceRegistry and builds the
configured source set from it by name. Nothing here is process-global.
"""

from collections.abc import Callable, Iterable

from blacklist.sources.base import BlacklistSource
from blacklist.sources.http_client import RetryConfig
from blacklist.sources.line_separated import dns_bh_list, feodo_tracker_list
from blacklist.sources.mdl import MalwareDomainList
from blacklist.sources.mock_list import DummyList
from blacklist.sources.myipms import MyIPmsList

SourceFactory = Callable[[], BlacklistSource]


class UnknownSourceError(LookupError):
    """Raised when a configured source name has no registered factory."""

    def __init__(self, source_name: str):
        super().__init__(f"Could not find a source named '{source_name}'")
        self.source_name = source_name


class SourceRegistry:
    """Name -> factory mapping for the available feed sources."""

    def __init__(self) -> None:
        self._factories: dict[str, SourceFactory] = {}

    def register(self, name: str, factory: SourceFactory) -> None:
        if name in self._factories:
            raise ValueError(f"Source '{name}' is already registered")
        self._factories[name] = factory

    def names(self) -> list[str]:
        return sorted(self._factories)

    def create(self, name: str) -> BlacklistSource:
        try:
            factory = self._factories[name]
        except KeyError:
            raise UnknownSourceError(name) from None
        return factory()

    def create_many(
        self,
        names: Iterable[str],
        on_unknown: Callable[[Exception], None],
    ) -> list[BlacklistSource]:
        """Build sources for `names`, reporting unknown names instead of failing."""
        sources = []
        for name in names:
            try:
                sources.append(self.create(name))
            except UnknownSourceError as e:
                on_unknown(e)
        return sources


def default_source_registry(retry_config: RetryConfig | None = None) -> SourceRegistry:
    """Registry of the built-in feeds."""
    registry = SourceRegistry()
    registry.register("feodo tracker", lambda: feodo_tracker_list(retry_config))
    registry.register("dns-bh", lambda: dns_bh_list(retry_config))
    registry.register("myip.ms", lambda: MyIPmsList(retry_config=retry_config))
    registry.register("mdl", lambda: MalwareDomainList(retry_config=retry_config))
    registry.register("Dummy", DummyList)
    return registry
