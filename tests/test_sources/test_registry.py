"""Tests for the source factory registry."""

import pytest

from blacklist.sources.line_separated import LineSeparatedList
from blacklist.sources.mock_list import DummyList
from blacklist.sources.registry import SourceRegistry, UnknownSourceError, default_source_registry


class TestSourceRegistry:
    """Tests for SourceRegistry."""

    def test_default_registry_names(self):
        """Should register every built-in feed."""
        registry = default_source_registry()

        assert registry.names() == ["Dummy", "dns-bh", "feodo tracker", "mdl", "myip.ms"]

    def test_create_builds_new_instances(self):
        registry = default_source_registry()

        first = registry.create("feodo tracker")
        second = registry.create("feodo tracker")

        assert isinstance(first, LineSeparatedList)
        assert first is not second
        assert first.name == "feodo tracker"

    def test_create_unknown_raises(self):
        registry = SourceRegistry()

        with pytest.raises(UnknownSourceError) as exc_info:
            registry.create("nope")

        assert exc_info.value.source_name == "nope"

    def test_create_many_reports_unknown(self, reporter):
        """Unknown names are reported and skipped."""
        registry = default_source_registry()

        sources = registry.create_many(["Dummy", "missing", "mdl"], reporter.report)

        assert [s.name for s in sources] == ["Dummy", "mdl"]
        [error] = reporter.of_type(UnknownSourceError)
        assert error.source_name == "missing"

    def test_register_duplicate_rejected(self):
        registry = SourceRegistry()
        registry.register("Dummy", DummyList)

        with pytest.raises(ValueError):
            registry.register("Dummy", DummyList)
