"""Open Library ISBN lookup."""

import logging
from typing import Any

import requests
from pydantic import BaseModel

from citefetch.core.exceptions import RegistryNotFoundError, RegistryParseError
from citefetch.core.models import Author, ExtractionSource, MetadataResult, WebPageType
from citefetch.utils.datetime import extract_year, utc_now_iso
from citefetch.utils.text import clean_text

from .base import BaseRegistryClient

logger = logging.getLogger(__name__)

OPENLIBRARY_API_URL = "https://openlibrary.org/api/books"
NOTES_MAX_CHARS = 500


class OpenLibraryAuthor(BaseModel):
    name: str
    url: str | None = None


class OpenLibraryPublisher(BaseModel):
    name: str


class OpenLibraryBook(BaseModel):
    """Subset of an Open Library ``jscmd=data`` record."""

    title: str
    authors: list[OpenLibraryAuthor] | None = None
    publishers: list[OpenLibraryPublisher] | None = None
    publish_date: str | None = None
    number_of_pages: int | None = None
    url: str | None = None
    notes: str | dict[str, Any] | None = None


class OpenLibraryClient(BaseRegistryClient):
    """Resolve ISBNs against the Open Library books API."""

    def __init__(
        self,
        base_url: str = OPENLIBRARY_API_URL,
        timeout_s: float = 15.0,
        user_agent: str | None = None,
        session: requests.Session | None = None,
    ):
        super().__init__(timeout_s=timeout_s, user_agent=user_agent, session=session)
        self.base_url = base_url

    @property
    def name(self) -> str:
        return "Open Library"

    def fetch(self, identifier: str) -> MetadataResult:
        """Look up a validated ISBN (separators already stripped).

        Raises:
            RegistryNotFoundError: No record for this ISBN.
            RegistryError: Transport or API failure.
            RegistryParseError: Unexpected response shape.
        """
        key = f"ISBN:{identifier}"
        params = {"bibkeys": key, "format": "json", "jscmd": "data"}
        logger.debug("Fetching ISBN %s from Open Library", identifier)

        # The books API answers 200 with an empty object for unknown ISBNs
        data = self._get_json(self.base_url, identifier, params=params, not_found_on_404=False)
        if not isinstance(data, dict):
            raise RegistryParseError("Failed to parse Open Library response", details=identifier)
        if not data.get(key):
            raise RegistryNotFoundError("ISBN not found", details=identifier)

        book = self._validate(OpenLibraryBook, data[key], identifier)
        return self._to_result(book, identifier)

    def _to_result(self, book: OpenLibraryBook, isbn: str) -> MetadataResult:
        notes = book.notes.get("value") if isinstance(book.notes, dict) else book.notes
        notes = clean_text(notes) if isinstance(notes, str) else None
        return MetadataResult(
            url=book.url or f"https://openlibrary.org/isbn/{isbn}",
            title=clean_text(book.title) or f"ISBN: {isbn}",
            access_date=utc_now_iso(),
            authors=[Author.from_name(a.name) for a in book.authors or [] if a.name.strip()],
            published_date=extract_year(book.publish_date),
            publisher=book.publishers[0].name if book.publishers else None,
            site_name="Open Library",
            description=notes[:NOTES_MAX_CHARS] if notes else None,
            type=WebPageType.ACADEMIC,
            extraction_source=ExtractionSource.REGISTRY,
        )


__all__ = [
    "OpenLibraryClient",
    "OpenLibraryBook",
    "OPENLIBRARY_API_URL",
]
