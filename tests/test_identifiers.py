"""Tests for DOI and ISBN validation."""

import pytest

from citefetch.core.exceptions import InvalidChecksumError, InvalidIdentifierError
from citefetch.sources.identifiers import normalize_doi, validate_doi, validate_isbn


class TestDoi:
    def test_bare_doi(self):
        assert validate_doi("10.1000/xyz123") == "10.1000/xyz123"

    @pytest.mark.parametrize(
        "raw",
        [
            "https://doi.org/10.1038/nphys1170",
            "http://dx.doi.org/10.1038/nphys1170",
            "  10.1038/nphys1170  ",
        ],
    )
    def test_resolver_prefix_and_whitespace(self, raw):
        assert validate_doi(raw) == "10.1038/nphys1170"

    def test_complex_suffix(self):
        doi = "10.1002/(SICI)1097-4636(199706)35:4<487::AID-JBM9>3.0.CO;2-H"
        with pytest.raises(InvalidIdentifierError):
            validate_doi(doi)
        assert validate_doi("10.1016/S0140-6736(20)30183-5") == "10.1016/S0140-6736(20)30183-5"

    @pytest.mark.parametrize("raw", ["", "doi:10.1000/x", "11.1000/x", "10.12/x", "10.1000/", "10.1000/has space"])
    def test_rejects_malformed(self, raw):
        with pytest.raises(InvalidIdentifierError) as exc_info:
            validate_doi(raw)
        assert exc_info.value.code == "INVALID_REQUEST"
        assert exc_info.value.status == 400

    def test_normalize_keeps_unprefixed(self):
        assert normalize_doi("10.1/x") == "10.1/x"


class TestIsbn:
    def test_valid_isbn13_with_hyphens(self):
        assert validate_isbn("978-3-16-148410-0") == "9783161484100"

    def test_flipped_check_digit_rejected(self):
        with pytest.raises(InvalidChecksumError):
            validate_isbn("978-3-16-148410-1")

    def test_valid_isbn10(self):
        assert validate_isbn("0-306-40615-2") == "0306406152"

    def test_isbn10_with_x_check_digit(self):
        assert validate_isbn("0-8044-2957-x") == "080442957X"

    def test_isbn10_bad_checksum(self):
        with pytest.raises(InvalidChecksumError) as exc_info:
            validate_isbn("0306406153")
        assert "ISBN-10" in exc_info.value.message

    def test_spaces_are_separators(self):
        assert validate_isbn("978 0 306 40615 7") == "9780306406157"

    @pytest.mark.parametrize("raw", ["", "12345", "979-0-000-00000", "abcdefghij", "1234567890123", "X123456789"])
    def test_rejects_malformed(self, raw):
        with pytest.raises(InvalidIdentifierError) as exc_info:
            validate_isbn(raw)
        assert not isinstance(exc_info.value, InvalidChecksumError)

    def test_checksum_error_is_identifier_error(self):
        with pytest.raises(InvalidIdentifierError):
            validate_isbn("9783161484101")
