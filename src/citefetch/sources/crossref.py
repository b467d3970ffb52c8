"""Crossref DOI lookup."""

import logging
from urllib.parse import quote

import requests
from pydantic import BaseModel, ConfigDict, Field

from citefetch.core.models import Author, ExtractionSource, MetadataResult, WebPageType
from citefetch.utils.datetime import format_date_parts, utc_now_iso
from citefetch.utils.text import clean_html, clean_text

from .base import BaseRegistryClient

logger = logging.getLogger(__name__)

CROSSREF_API_URL = "https://api.crossref.org/works"
ABSTRACT_MAX_CHARS = 500


class _CrossrefModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CrossrefAuthor(_CrossrefModel):
    given: str | None = None
    family: str | None = None
    name: str | None = None


class CrossrefDate(_CrossrefModel):
    date_parts: list[list[int | None]] | None = Field(default=None, alias="date-parts")


class CrossrefWork(_CrossrefModel):
    """Subset of a Crossref ``work`` record that we map."""

    title: list[str] | None = None
    author: list[CrossrefAuthor] | None = None
    publisher: str | None = None
    container_title: list[str] | None = Field(default=None, alias="container-title")
    published: CrossrefDate | None = None
    published_print: CrossrefDate | None = Field(default=None, alias="published-print")
    published_online: CrossrefDate | None = Field(default=None, alias="published-online")
    created: CrossrefDate | None = None
    DOI: str | None = None
    URL: str | None = None
    type: str | None = None
    abstract: str | None = None
    language: str | None = None


class CrossrefResponse(_CrossrefModel):
    status: str
    message_type: str = Field(alias="message-type")
    message: CrossrefWork


def _first_date(*dates: CrossrefDate | None) -> str | None:
    for date in dates:
        if date is not None and date.date_parts:
            formatted = format_date_parts(date.date_parts[0])
            if formatted:
                return formatted
    return None


def _authors(entries: list[CrossrefAuthor] | None) -> list[Author]:
    authors = []
    for entry in entries or []:
        if entry.name:
            authors.append(Author(full_name=entry.name))
        elif entry.family:
            full = " ".join(p for p in (entry.given, entry.family) if p)
            authors.append(Author(full_name=full, first_name=entry.given, last_name=entry.family))
    return authors


class CrossrefClient(BaseRegistryClient):
    """Resolve DOIs against the Crossref REST API."""

    def __init__(
        self,
        base_url: str = CROSSREF_API_URL,
        timeout_s: float = 15.0,
        mailto: str | None = None,
        user_agent: str | None = None,
        session: requests.Session | None = None,
    ):
        if user_agent and mailto and "mailto:" not in user_agent:
            # Crossref routes identified clients to its polite pool
            user_agent = f"{user_agent} (mailto:{mailto})"
        super().__init__(timeout_s=timeout_s, user_agent=user_agent, session=session)
        self.base_url = base_url.rstrip("/")
        self.mailto = mailto

    @property
    def name(self) -> str:
        return "Crossref"

    def fetch(self, identifier: str) -> MetadataResult:
        """Look up a validated DOI.

        Raises:
            RegistryNotFoundError: Unknown DOI.
            RegistryError: Transport or API failure.
            RegistryParseError: Unexpected response shape.
        """
        url = f"{self.base_url}/{quote(identifier, safe='')}"
        params = {"mailto": self.mailto} if self.mailto else None
        logger.debug("Fetching DOI %s from Crossref", identifier)

        data = self._get_json(url, identifier, params=params)
        work = self._validate(CrossrefResponse, data, identifier).message
        return self._to_result(work, identifier)

    def _to_result(self, work: CrossrefWork, doi: str) -> MetadataResult:
        title = clean_text(work.title[0]) if work.title else None
        container = clean_text(work.container_title[0]) if work.container_title else None

        return MetadataResult(
            url=work.URL or f"https://doi.org/{doi}",
            title=title or f"DOI: {doi}",
            access_date=utc_now_iso(),
            authors=_authors(work.author),
            published_date=_first_date(
                work.published, work.published_print, work.published_online, work.created
            ),
            publisher=work.publisher,
            site_name=container or work.publisher,
            description=clean_html(work.abstract, max_len=ABSTRACT_MAX_CHARS),
            language=work.language,
            type=WebPageType.ACADEMIC,
            extraction_source=ExtractionSource.REGISTRY,
        )


__all__ = [
    "CrossrefClient",
    "CrossrefResponse",
    "CrossrefWork",
    "CROSSREF_API_URL",
]
