"""Tests for the chapterbell CLI."""

from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from chapterbell.cli import main
from chapterbell.config.settings import get_settings

TARGETS_TOML = """
[[targets]]
name = "Test Manga"
source = "https://comic-rss.com/test.rss"
mode = "rss"
delay = 2

[[targets]]
name = "Other Manga"
source = "https://comic-json.com/test.json"
mode = "json"

[targets.keys]
chapters = "comic.episodes"
number = "volume"
title = "title"
date = "publish_start"
url = "page_url"
"""


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def quiet_logging():
    with patch("chapterbell.cli.setup_logging"):
        yield


@pytest.fixture
def clean_settings(monkeypatch):
    """Fresh settings without a bot token."""
    monkeypatch.delenv("DISCORD_TOKEN", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestTargetsCommand:
    """Tests for `chapterbell targets`."""

    def test_lists_targets(self, runner, tmp_path):
        path = tmp_path / "targets.toml"
        path.write_text(TARGETS_TOML)

        result = runner.invoke(main, ["targets", "--targets-file", str(path)])

        assert result.exit_code == 0
        assert "2 targets" in result.output
        assert "Test Manga [rss, delay 2d]" in result.output
        assert "Other Manga [json]" in result.output

    def test_invalid_file_exits_nonzero(self, runner, tmp_path):
        path = tmp_path / "targets.toml"
        path.write_text('[[targets]]\nname = "x"\nsource = "y"\nmode = "json"\n')

        result = runner.invoke(main, ["targets", "--targets-file", str(path)])

        assert result.exit_code == 1


class TestRunCommand:
    """Tests for `chapterbell run`."""

    def test_missing_targets_file(self, runner, tmp_path, clean_settings):
        with patch("chapterbell.cli.bind_context") as bind:
            result = runner.invoke(
                main, ["run", "--once", "--targets-file", str(tmp_path / "none.toml")]
            )

        assert result.exit_code == 1
        assert "Missing config file" in result.output
        bind.assert_called_once_with(run_mode="once")

    def test_once_without_token_fails(self, runner, tmp_path, clean_settings):
        path = tmp_path / "targets.toml"
        path.write_text(TARGETS_TOML)

        result = runner.invoke(
            main, ["run", "--once", "--memory-store", "--targets-file", str(path)]
        )

        assert result.exit_code == 1
        assert "credentials" in result.output


class TestSetFeedChannelCommand:
    """Tests for `chapterbell set-feed-channel`."""

    def test_writes_through_store(self, runner):
        store = AsyncMock()

        with patch("chapterbell.cli.open_store", AsyncMock(return_value=store)):
            result = runner.invoke(main, ["set-feed-channel", "guild", "feed-1"])

        assert result.exit_code == 0
        store.set_feed_channel.assert_awaited_once_with("guild", "feed-1")
        store.close.assert_awaited_once()
