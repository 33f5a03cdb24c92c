"""Command-line interface for the cotton finder."""

import argparse
import logging
import sys
from typing import List, Optional

from cotton_finder.assistant import AssistantService
from cotton_finder.catalog import CatalogRepository
from cotton_finder.config import (
    CATEGORY_URLS,
    COTTON_THRESHOLD,
    DB_PATH,
    DEFAULT_QUERY_LIMIT,
    DEFAULT_SEARCH_LIMIT,
    load_target_counts,
)
from cotton_finder.db import DocumentStore
from cotton_finder.errors import ConfigurationError, IngestionError, StoreUnavailable
from cotton_finder.export import (
    category_summary,
    export_catalog_to_csv,
    products_to_dataframe,
    save_products_json,
)
from cotton_finder.logging_config import get_logger, setup_logging
from cotton_finder.models import Product
from cotton_finder.pipeline import IngestionPipeline
from cotton_finder.scraper import HttpPageFetcher
from cotton_finder.shutdown import get_shutdown_handler
from cotton_finder.workflows import scrape_all_categories, scrape_curated_urls, search_and_save

__all__ = ["main", "parse_args", "show_stats", "print_products"]

logger = get_logger("cli")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Find 90%+ cotton clothing: scrape, store and search products",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Scheduled scrape of every category (counts from a config file)
  python -m cotton_finder.cli --mode categories --config config/scraping-config.json

  # Scrape the hand-picked product list
  python -m cotton_finder.cli --mode curated

  # Search-triggered scrape
  python -m cotton_finder.cli --mode search --query "linen shirt" --limit 10

  # Query the catalog without scraping
  python -m cotton_finder.cli --find --category tops --max-price 50

  # Export the pants to CSV
  python -m cotton_finder.cli --export-csv data/pants.csv --category pants

  # Ask the assistant
  python -m cotton_finder.cli --ask "Do you have a white cotton tee under $30?"
        """,
    )

    # Scraping
    parser.add_argument(
        "--mode",
        choices=["categories", "curated", "search"],
        help="categories: scheduled scrape; curated: hand-picked URLs; search: scrape for --query",
    )
    parser.add_argument("--query", help="Search text (for --mode search and --find)")
    parser.add_argument(
        "--limit",
        type=int,
        help=f"Max products (default: {DEFAULT_SEARCH_LIMIT} for search, {DEFAULT_QUERY_LIMIT} for --find)",
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        help="JSON file with target_counts for --mode categories",
    )
    parser.add_argument(
        "--no-delay",
        action="store_true",
        help="Don't wait between product fetches",
    )
    parser.add_argument(
        "--output-json",
        metavar="PATH",
        help="Also write the accepted products of a scrape to this JSON file",
    )

    # Database options
    parser.add_argument(
        "--db",
        default=DB_PATH,
        help=f"SQLite database path (default: {DB_PATH})",
    )

    # Catalog queries
    parser.add_argument("--find", action="store_true", help="Query the catalog and exit")
    parser.add_argument("--category", help="Category filter for --find and --export-csv")
    parser.add_argument(
        "--min-cotton",
        type=int,
        default=COTTON_THRESHOLD,
        help=f"Minimum cotton percentage for --find (default: {COTTON_THRESHOLD})",
    )
    parser.add_argument("--max-price", type=float, help="Maximum price for --find")

    # Export and info
    parser.add_argument("--export-csv", metavar="PATH", help="Export the catalog to CSV")
    parser.add_argument("--stats", action="store_true", help="Show catalog statistics and exit")
    parser.add_argument(
        "--list-categories",
        action="store_true",
        help="List stored and scrapeable categories and exit",
    )

    # Assistant
    parser.add_argument("--ask", metavar="QUESTION", help="Ask the assistant about the catalog")

    return parser.parse_args(argv)


def print_products(products: List[Product]) -> None:
    if not products:
        print("No products found")
        return
    for i, p in enumerate(products, 1):
        price = f"${p.price:.2f}" if p.price is not None else "n/a"
        print(f"  {i}. {p.name} - {price} ({p.cotton_percentage}% cotton) [{p.category}, {p.gender}]")
        print(f"     {p.url}")


def show_stats(repository: CatalogRepository, db_path: str) -> None:
    """Display catalog statistics."""
    print(f"\n{'='*50}")
    print(f"Database: {db_path}")
    print(f"{'='*50}")

    print(f"\nTotal products: {repository.count()}")

    products = repository.query(min_cotton_percent=0, limit=None)
    qualified = sum(1 for p in products if p.is_cotton_qualified)
    curated = sum(1 for p in products if p.is_curated)
    print(f"Cotton-qualified: {qualified}")
    print(f"Curated: {curated}")

    summary = category_summary(products_to_dataframe(products))
    if summary.empty:
        print("\nNo products yet")
    else:
        print("\nProducts by gender and category:")
        print(summary.to_string())
    print()


def _run_scrape(args: argparse.Namespace, repository: CatalogRepository) -> int:
    delay = {"delay_range": (0.0, 0.0), "curated_delay_range": (0.0, 0.0)} if args.no_delay else {}
    pipeline = IngestionPipeline(HttpPageFetcher(), **delay)

    handler = get_shutdown_handler()
    handler.reset()
    handler.install()
    try:
        if args.mode == "categories":
            summary = scrape_all_categories(
                pipeline, repository, load_target_counts(args.config), cancel_token=handler
            )
            products = summary["products"]
        elif args.mode == "curated":
            summary = scrape_curated_urls(pipeline, repository, cancel_token=handler)
            products = summary["products"]
        else:
            if not args.query:
                print("--mode search requires --query")
                return 2
            products = search_and_save(
                args.query,
                pipeline,
                repository,
                limit=args.limit or DEFAULT_SEARCH_LIMIT,
                cancel_token=handler,
            )
            print(f"\nFound {len(products)} products for \"{args.query}\":")
            print_products(products)
    except IngestionError as e:
        logger.error(str(e))
        return 1
    finally:
        handler.cleanup()
        handler.uninstall()

    if args.output_json:
        save_products_json(products, args.output_json)
        print(f"Saved {len(products)} products to {args.output_json}")

    print(f"\nTotal products in database: {repository.count()}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI."""
    args = parse_args(argv)
    setup_logging(level=logging.INFO)

    store = DocumentStore(args.db)
    repository = CatalogRepository(store)

    try:
        store.init()

        if args.list_categories:
            print("Stored categories:")
            for category in repository.list_categories():
                print(f"  {category}")
            print("\nScrapeable listings:")
            for category, urls in CATEGORY_URLS.items():
                print(f"  {category}: {', '.join(sorted(urls))}")
            return 0

        if args.stats:
            show_stats(repository, args.db)
            return 0

        if args.export_csv:
            rows = export_catalog_to_csv(repository, args.export_csv, category=args.category)
            print(f"Exported {rows} products to {args.export_csv}")
            return 0

        if args.find:
            products = repository.query(
                category=args.category,
                min_cotton_percent=args.min_cotton,
                search_text=args.query,
                max_price=args.max_price,
                limit=args.limit or DEFAULT_QUERY_LIMIT,
            )
            print_products(products)
            return 0

        if args.ask:
            service = AssistantService.from_config(repository)
            try:
                response = service.ask(args.ask)
            except ConfigurationError as e:
                print(f"Assistant unavailable: {e}")
                return 1
            print(response["answer"])
            return 0

        if args.mode:
            return _run_scrape(args, repository)

    except StoreUnavailable as e:
        logger.error(str(e))
        return 1

    print("Nothing to do. Pass --mode, --find, --ask, --stats or --export-csv (see --help)")
    return 2


if __name__ == "__main__":
    sys.exit(main())
