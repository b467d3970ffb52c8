"""DOI and ISBN validation."""

import re

from citefetch.core.exceptions import InvalidChecksumError, InvalidIdentifierError

_DOI_URL_PREFIX = re.compile(r"^https?://(?:dx\.)?doi\.org/", re.IGNORECASE)
_DOI_REGEX = re.compile(r"^10\.\d{4,9}/[-._;()/:A-Za-z0-9]+$")

_ISBN_SEPARATORS = re.compile(r"[- ]")
_ISBN10_REGEX = re.compile(r"^\d{9}[\dX]$")
_ISBN13_REGEX = re.compile(r"^97[89]\d{10}$")


def normalize_doi(doi: str) -> str:
    """Strip whitespace and any ``doi.org`` resolver prefix."""
    return _DOI_URL_PREFIX.sub("", doi.strip())


def validate_doi(doi: str) -> str:
    """Return the bare DOI.

    Raises:
        InvalidIdentifierError: Not a DOI.
    """
    cleaned = normalize_doi(doi)
    if not _DOI_REGEX.match(cleaned):
        raise InvalidIdentifierError("Invalid DOI format", details=doi)
    return cleaned


def isbn10_checksum_ok(isbn: str) -> bool:
    total = sum(int(ch) * (10 - i) for i, ch in enumerate(isbn[:9]))
    total += 10 if isbn[9] == "X" else int(isbn[9])
    return total % 11 == 0


def isbn13_checksum_ok(isbn: str) -> bool:
    total = sum(int(ch) * (1 if i % 2 == 0 else 3) for i, ch in enumerate(isbn[:12]))
    return (10 - total % 10) % 10 == int(isbn[12])


def validate_isbn(isbn: str) -> str:
    """Return the ISBN without separators, check digit verified.

    Hyphens and spaces are ignored; a trailing ``x`` is accepted for ISBN-10.

    Raises:
        InvalidIdentifierError: Not an ISBN-10 or ISBN-13.
        InvalidChecksumError: Well-formed but the check digit is wrong.
    """
    cleaned = _ISBN_SEPARATORS.sub("", isbn.strip()).upper()

    if _ISBN10_REGEX.match(cleaned):
        if not isbn10_checksum_ok(cleaned):
            raise InvalidChecksumError("Invalid ISBN-10 checksum", details=isbn)
        return cleaned

    if _ISBN13_REGEX.match(cleaned):
        if not isbn13_checksum_ok(cleaned):
            raise InvalidChecksumError("Invalid ISBN-13 checksum", details=isbn)
        return cleaned

    raise InvalidIdentifierError("Invalid ISBN format", details=isbn)


__all__ = [
    "normalize_doi",
    "validate_doi",
    "validate_isbn",
    "isbn10_checksum_ok",
    "isbn13_checksum_ok",
]
