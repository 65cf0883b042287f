"""Command-line interface for external listing aggregation.

Run via: internagg sync
Or schedule with cron/Task Scheduler.
"""

import argparse
import asyncio
import logging
import sys

from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .collectors.aggregator import JobAggregator
from .config import Settings
from .models.listing import ListingFilters
from .storage.listing_store import ListingStore

console = Console()


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with Rich handler."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _open_store(settings: Settings) -> ListingStore:
    return ListingStore(
        db_path=settings.db_path,
        retention_days=settings.retention_days,
        purge_interval_minutes=settings.purge_interval_minutes,
    )


async def run_sync(settings: Settings, queries: list[str] | None = None) -> int:
    """Run one full sync and print a per-source summary.

    Returns:
        Number of listings synced
    """
    async with JobAggregator.from_settings(settings) as aggregator:
        result = await aggregator.sync_all_platforms(queries)

    stats = result.stats
    if stats is None:
        console.print(f"[yellow]{result.message}[/yellow]")
        return 0

    table = Table(show_header=True, header_style="bold")
    table.add_column("Source")
    table.add_column("Synced", justify="right")
    table.add_column("Errors", justify="right")
    sources = sorted(set(stats.by_source) | {e.source for e in stats.errors if e.source})
    for source in sources:
        errors = sum(1 for e in stats.errors if e.source == source)
        table.add_row(source, str(stats.by_source.get(source, 0)), str(errors))
    console.print(table)

    for error in stats.errors:
        console.print(f"[dim]{error.source} '{error.query}' ({error.kind}): {error.error}[/dim]")
    console.print()
    console.print(
        f"[bold]Sync complete. {stats.total_synced} listings in {stats.duration_seconds}s[/bold]"
    )
    return stats.total_synced


def show_jobs(store: ListingStore, filters: ListingFilters, page: int, limit: int) -> None:
    result = store.query(filters, page=page, limit=limit)
    if not result.data:
        console.print("[yellow]No external listings found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Source")
    table.add_column("Title", max_width=40)
    table.add_column("Company", max_width=25)
    table.add_column("Category")
    table.add_column("Location")
    table.add_column("Stipend", justify="right")
    table.add_column("Posted")

    for listing in result.data:
        stipend = listing.stipend
        table.add_row(
            listing.source,
            listing.title,
            listing.company,
            listing.category,
            listing.location.city or listing.location.type.value,
            f"{stipend.currency} {stipend.amount:,}/{stipend.period.value}" if stipend.amount else "-",
            listing.posted_date.strftime("%Y-%m-%d"),
        )

    console.print(table)
    p = result.pagination
    console.print(f"[dim]Page {p.page}/{p.pages} ({p.total} listings)[/dim]")


def show_stats(store: ListingStore) -> None:
    stats = store.get_stats()
    table = Table(show_header=True, header_style="bold")
    table.add_column("Source")
    table.add_column("Listings", justify="right")
    table.add_column("Avg Stipend", justify="right")
    for source, item in stats["by_source"].items():
        table.add_row(source, str(item["count"]), f"{item['avg_stipend']:,}")
    console.print(table)
    console.print(f"[bold]Total: {stats['total']}[/bold]")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="internagg",
        description="External internship listing aggregator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  internagg sync
  internagg sync -q "data science" -q finance
  internagg jobs --category Finance --limit 20
  internagg stats

Schedule with cron (daily at 02:00):
  0 2 * * * internagg sync
        """,
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync = subparsers.add_parser("sync", help="Fetch listings from every source")
    sync.add_argument(
        "-q", "--query",
        action="append",
        dest="queries",
        help="Search query (repeatable; defaults to the configured queries)",
    )

    jobs = subparsers.add_parser("jobs", help="List stored external listings")
    jobs.add_argument("--source", help="Filter by source (linkedin, indeed, internshala)")
    jobs.add_argument("--category", help="Filter by category (e.g. Finance)")
    jobs.add_argument("--search", help="Free-text search over title, company, description")
    jobs.add_argument("--location", help="Filter by city, state or country")
    jobs.add_argument("--remote", action="store_true", help="Only remote listings")
    jobs.add_argument("--page", type=int, default=1)
    jobs.add_argument("--limit", type=int, default=10)

    subparsers.add_parser("stats", help="Per-source counts and average stipend")
    subparsers.add_parser("purge", help="Delete listings past the retention window")
    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for CLI."""
    args = build_parser().parse_args(argv)
    setup_logging(verbose=args.verbose)

    load_dotenv()
    settings = Settings()

    try:
        if args.command == "sync":
            asyncio.run(run_sync(settings, args.queries))
        elif args.command == "jobs":
            filters = ListingFilters(
                source=args.source,
                category=args.category,
                search=args.search,
                location=args.location,
                remote=args.remote,
            )
            show_jobs(_open_store(settings), filters, args.page, args.limit)
        elif args.command == "stats":
            show_stats(_open_store(settings))
        elif args.command == "purge":
            deleted = _open_store(settings).purge_expired()
            console.print(f"[bold]Purged {deleted} expired listings[/bold]")
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
