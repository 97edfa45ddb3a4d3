"""Tests for the command-line entry point."""

import csv
import io
import json
from unittest.mock import patch

import pytest

from productscrape.cli import main, parse_args, scrape_all
from productscrape.errors import FetchError
from productscrape.models import ProductRecord

RECORD = ProductRecord(url="https://www.amazon.com/dp/B0TESTPRD1", title="Acme Trail Shoe", item_id="B0TESTPRD1")


class TestParseArgs:
    def test_defaults(self):
        args = parse_args(["https://www.amazon.com/dp/B0TESTPRD1"])
        assert args.format == "json"
        assert args.output is None
        assert args.max_items is None

    def test_too_many_urls(self):
        with pytest.raises(SystemExit):
            parse_args([f"https://www.amazon.com/dp/B0ITEM{n:04d}" for n in range(16)])

    def test_xlsx_requires_output(self):
        with pytest.raises(SystemExit):
            parse_args(["https://www.amazon.com/dp/B0TESTPRD1", "--format", "xlsx"])

    def test_max_items_must_be_positive(self):
        with pytest.raises(SystemExit):
            parse_args(["https://www.amazon.com/dp/B0TESTPRD1", "--max-items", "0"])


class TestScrapeAll:
    def test_collects_records_and_errors(self):
        with patch("productscrape.cli.Scraper") as scraper_cls:
            scraper = scraper_cls.return_value
            scraper.handle.side_effect = [RECORD, FetchError("down")]

            records, errors = scrape_all(scraper, ["u1", "u2"])

        assert records == [RECORD]
        assert [url for url, _ in errors] == ["u2"]


class TestMain:
    def test_json_to_stdout(self, capsys):
        with patch("productscrape.cli.Scraper") as scraper_cls:
            scraper_cls.return_value.handle.return_value = RECORD
            code = main([RECORD.url, "--no-log-file"])

        assert code == 0
        data = json.loads(capsys.readouterr().out)
        assert data[0]["itemId"] == "B0TESTPRD1"

    def test_csv_to_stdout(self, capsys):
        with patch("productscrape.cli.Scraper") as scraper_cls:
            scraper_cls.return_value.handle.return_value = RECORD
            main([RECORD.url, "--format", "csv", "--no-log-file"])

        rows = list(csv.reader(io.StringIO(capsys.readouterr().out)))
        assert rows[1][0] == "Acme Trail Shoe"

    def test_max_items_reaches_config(self):
        with patch("productscrape.cli.Scraper") as scraper_cls:
            scraper_cls.return_value.handle.return_value = RECORD
            main([RECORD.url, "--max-items", "3", "--no-log-file"])

        config = scraper_cls.call_args.args[0]
        assert config.max_list_items == 3

    def test_all_failed_returns_one(self, tmp_path):
        output = tmp_path / "out.json"
        with patch("productscrape.cli.Scraper") as scraper_cls:
            scraper_cls.return_value.handle.side_effect = FetchError("down")
            code = main([RECORD.url, "--output", str(output), "--no-log-file"])

        assert code == 1
        assert json.loads(output.read_text(encoding="utf-8")) == []
