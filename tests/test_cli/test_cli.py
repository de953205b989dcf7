"""Tests for the blacklist CLI."""

import pytest
from click.testing import CliRunner

from blacklist.cli import main
from blacklist.config.settings import get_settings


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def memory_env(monkeypatch):
    """Run every command against the in-memory backend with the mock source."""
    monkeypatch.setenv("STORAGE_BACKEND", "memory")
    monkeypatch.setenv("SOURCES", "Dummy")
    monkeypatch.delenv("SAFEBROWSING_API_KEYS", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSources:
    """Test the `sources` command."""

    def test_lists_sources_marking_enabled(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["sources"])

        assert result.exit_code == 0, result.output
        assert "* Dummy" in result.output
        assert "  feodo tracker" in result.output


class TestUpdate:
    """Test the `update` command."""

    def test_update_registers_sources(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["update"])

        assert result.exit_code == 0, result.output
        assert "Update Results" in result.output
        assert "Registered: Dummy" in result.output
        assert "without errors" in result.output

    def test_update_with_file_list(self, runner: CliRunner, tmp_path) -> None:
        path = tmp_path / "hosts.txt"
        path.write_text("bad.test\nevil.test\n")

        result = runner.invoke(main, ["update", "--file-list", "local", "hostname", str(path)])

        assert result.exit_code == 0, result.output
        assert "local" in result.output

    def test_update_rejects_unknown_type(self, runner: CliRunner, tmp_path) -> None:
        path = tmp_path / "asns.txt"
        path.write_text("AS15169\n")

        result = runner.invoke(main, ["update", "--file-list", "asns", "asn", str(path)])

        assert result.exit_code == 2
        assert "--file-list" in result.output

    def test_update_exits_nonzero_on_errors(self, runner: CliRunner, monkeypatch) -> None:
        """Unknown source names are reported and fail the run."""
        monkeypatch.setenv("SOURCES", "Dummy,no-such-feed")
        get_settings.cache_clear()

        result = runner.invoke(main, ["update"])

        assert result.exit_code == 1
        assert "UnknownSourceError: 1" in result.output


class TestCheck:
    """Test the `check` command."""

    def test_check_prints_results(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["check", "ip", "10.0.0.1"])

        assert result.exit_code == 0, result.output
        assert '"10.0.0.1": []' in result.output

    def test_check_unknown_type(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["check", "asn", "AS15169"])

        assert result.exit_code == 2
        assert "ENTRY_TYPE" in result.output

    def test_check_requires_indexes(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["check", "ip"])

        assert result.exit_code == 2
