"""Command-line interface for the scraper."""

import argparse
import dataclasses
import json
import logging
import sys
from typing import List, Optional

from productscrape.config import MAX_BATCH_URLS, ScraperConfig
from productscrape.errors import ScrapeError
from productscrape.export import export_records_to_xlsx, records_from_result, save_records_to_csv
from productscrape.logging_config import setup_logging
from productscrape.models import ListResult, ProductRecord
from productscrape.scraper import Scraper

__all__ = ["main", "parse_args", "scrape_all"]


def scrape_all(scraper: Scraper, urls: List[str]) -> tuple:
    """Scrape URLs one after another.

    Returns:
        (records, errors) where errors is a list of (url, ScrapeError)
    """
    records: List[ProductRecord] = []
    errors = []
    for i, url in enumerate(urls, start=1):
        print(f"[{i}/{len(urls)}] {url}", file=sys.stderr)
        try:
            result = scraper.handle(url)
        except ScrapeError as e:
            print(f"  ERROR ({e.kind.value}): {e.message}", file=sys.stderr)
            errors.append((url, e))
            continue
        if isinstance(result, ListResult):
            print(
                f"  {len(result)} items, success ratio {result.success_ratio:.0%}",
                file=sys.stderr,
            )
        records.extend(records_from_result(result))
    return records, errors


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Scrape product, search, category and store pages into product records",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Scrape one product page and print JSON
  python -m productscrape.cli "https://www.amazon.com/dp/B0TESTPRD01"

  # Expand a search page (max 5 items) into a CSV file
  python -m productscrape.cli "https://www.amazon.com/s?k=shoes" --max-items 5 --format csv --output shoes.csv

  # Several URLs into one workbook
  python -m productscrape.cli URL1 URL2 --format xlsx --output products.xlsx
        """,
    )
    parser.add_argument("urls", nargs="+", help=f"URLs to scrape (max {MAX_BATCH_URLS})")
    parser.add_argument(
        "--format",
        choices=["json", "csv", "xlsx"],
        default="json",
        help="Output format (default: json)",
    )
    parser.add_argument("--output", "-o", help="Output file (default: stdout; required for xlsx)")
    parser.add_argument("--max-items", type=int, default=None, help="Maximum items per listing page")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--no-log-file", action="store_true", help="Do not write JSONL log files")

    args = parser.parse_args(argv)
    if len(args.urls) > MAX_BATCH_URLS:
        parser.error(f"At most {MAX_BATCH_URLS} URLs can be scraped per run")
    if args.format == "xlsx" and not args.output:
        parser.error("--output is required for xlsx")
    if args.max_items is not None and args.max_items < 1:
        parser.error("--max-items must be at least 1")
    return args


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        log_to_file=not args.no_log_file,
    )

    config = ScraperConfig.from_env()
    if args.max_items is not None:
        config = dataclasses.replace(config, max_list_items=args.max_items)

    records, errors = scrape_all(Scraper(config), args.urls)

    if args.format == "json":
        payload = json.dumps([r.to_dict() for r in records], indent=2, ensure_ascii=False)
        if args.output:
            with open(args.output, "w", encoding="utf-8") as f:
                f.write(payload + "\n")
        else:
            print(payload)
    elif args.format == "csv":
        if args.output:
            save_records_to_csv(records, args.output)
        else:
            save_records_to_csv(records, sys.stdout)
    else:
        export_records_to_xlsx(records, args.output)

    if args.output:
        print(f"Wrote {len(records)} records to {args.output}", file=sys.stderr)
    return 1 if errors and not records else 0


if __name__ == "__main__":
    sys.exit(main())
