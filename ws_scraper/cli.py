"""CLI interface for the ws-tcg.com card scraper."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from ws_scraper.config import AppConfig, load_config
from ws_scraper.errors import ConfigError, ScrapeError
from ws_scraper.expansions import expansion_list
from ws_scraper.pipeline import CardPipeline, FailedPage
from ws_scraper.pool import build_pool
from ws_scraper.products import fetch_products, products_as_dicts
from ws_scraper.reduce import BoosterReducer, aggregate
from ws_scraper.writer import CardWriter, write_boosters, write_json

console = Console()


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    # Set up logging
    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose >= 2:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )

    if not hasattr(args, "func"):
        parser.print_help()
        return

    try:
        args.func(args)
    except ConfigError as exc:
        console.print(f"[red]{exc}[/red]")
        sys.exit(1)
    except ScrapeError as exc:
        console.print(f"[red]Scrape failed: {exc}[/red]")
        sys.exit(1)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ws-scraper",
        description="Collect card data from https://ws-tcg.com/ and https://en.ws-tcg.com/",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug)",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config.yaml (default: config.yaml)",
    )
    parser.add_argument(
        "--lang",
        type=str,
        default=None,
        help="Site language to pull from: en or ja",
    )

    subparsers = parser.add_subparsers(title="commands", dest="command")

    # fetch
    fetch_parser = subparsers.add_parser("fetch", help="Fetch cards")
    fetch_parser.add_argument("--expansion", type=int, default=None, help="Site expansion number")
    fetch_parser.add_argument("-t", "--title", type=int, default=None, help="Site title number (EN only)")
    fetch_parser.add_argument(
        "-n", "--neo",
        type=str,
        default=None,
        help="Set code prefixes separated by '##' (e.g. BD##IM)",
    )
    fetch_parser.add_argument(
        "-e", "--export",
        choices=["card", "booster"],
        default=None,
        help="Write one file per card, or one file per booster",
    )
    fetch_parser.add_argument(
        "-p", "--page-start",
        type=int,
        default=None,
        help="Skip every result page before this one",
    )
    fetch_parser.add_argument("-r", "--reverse", action="store_true", default=None, help="Reverse page order")
    fetch_parser.add_argument(
        "--base-rarity-only",
        action="store_true",
        help="Skip parallel rarities (SP, SSP, SBR, ...)",
    )
    fetch_parser.add_argument("--recent", action="store_true", default=None, help="Fetch all recent products")
    fetch_parser.add_argument("--images", action="store_true", default=None, help="Download card images")
    fetch_parser.add_argument(
        "-f", "--force",
        action="store_true",
        default=None,
        help="Overwrite files that already exist",
    )
    fetch_parser.add_argument("-d", "--card-dir", type=str, default=None, help="Card output directory")
    fetch_parser.add_argument("--booster-dir", type=str, default=None, help="Booster output directory")
    fetch_parser.set_defaults(func=_cmd_fetch)

    # expansions
    expansions_parser = subparsers.add_parser("expansions", help="List expansion numbers")
    expansions_parser.set_defaults(func=_cmd_expansions)

    # products
    products_parser = subparsers.add_parser("products", help="Get products information")
    products_parser.add_argument("-p", "--page", type=int, default=1, help="Products index page to parse")
    products_parser.add_argument(
        "-o", "--output",
        type=Path,
        default=Path("product.json"),
        help="Output file (default: product.json)",
    )
    products_parser.set_defaults(func=_cmd_products)

    return parser


def _load_app_config(args: argparse.Namespace) -> AppConfig:
    """Load config, applying CLI overrides."""
    scrape: Dict[str, Any] = {"language": args.lang}
    output: Dict[str, Any] = {}
    if args.command == "fetch":
        scrape.update(
            expansion=args.expansion,
            title=args.title,
            set_codes=args.neo,
            page_start=args.page_start,
            reverse=args.reverse,
            recent=args.recent,
            images=args.images,
            all_rarities=False if args.base_rarity_only else None,
        )
        output.update(
            export=args.export,
            force=args.force,
            card_dir=args.card_dir,
            booster_dir=args.booster_dir,
        )
    return load_config(args.config, overrides={"scrape": scrape, "output": output})


# ------------------------------------------------------------------
# Command handlers
# ------------------------------------------------------------------


def _cmd_fetch(args: argparse.Namespace) -> None:
    config = _load_app_config(args)
    console.print(f"[bold]Fetching {config.scrape.language} cards[/bold]")
    if config.output.export == "booster":
        asyncio.run(_run_boosters(config))
    else:
        asyncio.run(_run_cards(config))


async def _run_cards(config: AppConfig) -> None:
    writer = CardWriter(config.output.card_dir, config.scrape.language, force=config.output.force)
    pipeline = CardPipeline(
        config.scrape,
        pipeline_config=config.pipeline,
        pool_config=config.pool,
    )
    pipeline.validate()

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TextColumn("{task.completed} cards"),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Cards", total=None)
        async for card in pipeline.stream():
            writer.write(card)
            progress.advance(task)

    console.print(
        f"Cards: [green]{writer.written} written[/green], "
        f"[yellow]{writer.skipped} skipped[/yellow]"
    )
    _print_failed(pipeline.failed_pages)


async def _run_boosters(config: AppConfig) -> None:
    reducer = BoosterReducer()
    pipeline = await aggregate(
        config.scrape,
        reducer,
        pipeline_config=config.pipeline,
        pool_config=config.pool,
    )
    paths = write_boosters(config.output.booster_dir, config.scrape.language, reducer.boosters)
    console.print(f"Wrote [green]{len(paths)}[/green] boosters")
    _print_failed(pipeline.failed_pages)


def _print_failed(failed: List[FailedPage]) -> None:
    if not failed:
        console.print("\n[bold green]Fetch complete![/bold green]")
        return
    table = Table(title="Failed pages")
    table.add_column("URL", style="cyan")
    table.add_column("Attempts", justify="right")
    table.add_column("Reason", style="red")
    for fp in failed:
        table.add_row(fp.url, str(fp.attempts), fp.reason)
    console.print(table)


def _cmd_expansions(args: argparse.Namespace) -> None:
    config = _load_app_config(args)
    expansions = asyncio.run(expansion_list(config.scrape.language, pool_config=config.pool))

    table = Table(title=f"Expansions ({config.scrape.language})")
    table.add_column("Number", justify="right", style="cyan")
    table.add_column("Title", style="green")
    for number in sorted(expansions):
        table.add_row(str(number), expansions[number])
    console.print(table)


def _cmd_products(args: argparse.Namespace) -> None:
    config = _load_app_config(args)
    products = asyncio.run(_run_products(config, args.page))
    write_json(args.output, products_as_dicts(products))
    console.print(f"Wrote {len(products)} products to {args.output}")


async def _run_products(config: AppConfig, page: int):
    pool = build_pool(config.pool)
    try:
        return await fetch_products(page, pool, config.pipeline)
    finally:
        await pool.close()
