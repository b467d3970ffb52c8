"""Tests for date, text and logging helpers."""

import logging
from unittest.mock import patch

import pytest

from citefetch.utils.datetime import extract_year, format_date_parts, normalize_date, utc_now_iso
from citefetch.utils.logging import LOG_FORMAT, get_logger, setup_logging
from citefetch.utils.text import clean_html, clean_text


class TestNormalizeDate:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("2024-03-01", "2024-03-01T00:00:00Z"),
            ("2024-03-01T10:30:00Z", "2024-03-01T10:30:00Z"),
            ("2024-03-01T12:30:00+02:00", "2024-03-01T10:30:00Z"),
            ("March 5, 2023", "2023-03-05T00:00:00Z"),
            ("5 March 2023", "2023-03-05T00:00:00Z"),
            ("2023/03/05", "2023-03-05T00:00:00Z"),
        ],
    )
    def test_formats(self, raw, expected):
        assert normalize_date(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "yesterday", "31/31/2020"])
    def test_unparsable(self, raw):
        assert normalize_date(raw) is None


class TestDateParts:
    def test_full_and_partial(self):
        assert format_date_parts([2015, 5, 28]) == "2015-05-28"
        assert format_date_parts([2015, 5]) == "2015-05"
        assert format_date_parts([2015]) == "2015"

    def test_missing(self):
        assert format_date_parts(None) is None
        assert format_date_parts([]) is None
        assert format_date_parts([None]) is None

    def test_extract_year(self):
        assert extract_year("March 1996") == "1996"
        assert extract_year("1985, 2nd ed.") == "1985"
        assert extract_year("n.d.") is None

    def test_utc_now_iso(self):
        stamp = utc_now_iso()
        assert stamp.endswith("Z")
        assert len(stamp) == len("2024-01-01T00:00:00.000Z")


class TestText:
    def test_clean_text(self):
        assert clean_text("  a \n\t b ") == "a b"
        assert clean_text("   ") is None
        assert clean_text(None) is None

    def test_clean_html(self):
        assert clean_html("<p>Fish &amp; <b>chips</b></p>") == "Fish & chips"
        assert clean_html("<jats:p>abcdef</jats:p>", max_len=3) == "abc"
        assert clean_html("<br/>") is None


class TestLogging:
    def test_setup_mutes_http_loggers(self):
        with patch("logging.basicConfig") as basic_config:
            setup_logging()

        assert basic_config.call_args.kwargs["level"] == logging.INFO
        assert basic_config.call_args.kwargs["format"] == LOG_FORMAT
        assert logging.getLogger("urllib3").level == logging.WARNING

    def test_verbose(self):
        with patch("logging.basicConfig") as basic_config:
            setup_logging(verbose=True)

        assert basic_config.call_args.kwargs["level"] == logging.DEBUG
        assert logging.getLogger("urllib3").level == logging.NOTSET

    def test_get_logger_namespaces(self):
        assert get_logger().name == "citefetch"
        assert get_logger("smoke").name == "citefetch.smoke"
        assert get_logger("citefetch.pipeline.scrape").name == "citefetch.pipeline.scrape"
