"""Tests for the internagg command-line interface."""

import pytest

from internagg.cli import build_parser, main, show_stats
from internagg.storage.listing_store import ListingStore


class TestParser:
    """Test argument parsing."""

    def test_sync_queries(self):
        args = build_parser().parse_args(["sync", "-q", "data science", "-q", "finance"])
        assert args.command == "sync"
        assert args.queries == ["data science", "finance"]

    def test_jobs_filters(self):
        args = build_parser().parse_args(["-v", "jobs", "--category", "Finance", "--remote", "--limit", "5"])
        assert args.verbose is True
        assert args.category == "Finance"
        assert args.remote is True
        assert args.limit == 5

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestCommands:
    """Test commands against a temporary store."""

    def test_stats_output(self, store, make_listing, capsys):
        store.upsert_listing(make_listing(stipend=12000))
        show_stats(store)

        output = capsys.readouterr().out
        assert "alpha" in output
        assert "12,000" in output

    def test_purge_command(self, tmp_path, monkeypatch, capsys):
        db_path = tmp_path / "cli.db"
        monkeypatch.setenv("INTERNAGG_DB_PATH", str(db_path))

        main(["purge"])

        assert "Purged 0 expired listings" in capsys.readouterr().out
        assert ListingStore(db_path=db_path).count() == 0
