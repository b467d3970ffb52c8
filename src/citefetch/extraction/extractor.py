"""Metadata extraction from rendered HTML.

Each source yields a partial record; fields are merged first-match-wins in
this order: JSON-LD, named meta tags, Open Graph, Twitter cards, page
heuristics. The document ``<title>`` and the URL hostname close the chain.
"""

import json
import logging
from typing import Any
from urllib.parse import urlsplit

from bs4 import BeautifulSoup
from bs4.element import Tag

from citefetch.core.exceptions import CiteFetchError, ExtractionFailedError
from citefetch.core.models import Author, ExtractionSource, MetadataResult, WebPageType
from citefetch.utils.datetime import normalize_date, utc_now_iso
from citefetch.utils.text import clean_text

logger = logging.getLogger(__name__)

ARTICLE_TYPES = frozenset(
    {
        "Article",
        "NewsArticle",
        "BlogPosting",
        "ScholarlyArticle",
        "TechArticle",
        "WebPage",
        "Report",
    }
)

JSON_LD_TYPE_MAP = {
    "NewsArticle": WebPageType.NEWS,
    "BlogPosting": WebPageType.BLOG,
    "ScholarlyArticle": WebPageType.ACADEMIC,
    "Article": WebPageType.ARTICLE,
    "TechArticle": WebPageType.ARTICLE,
}

OG_TYPE_MAP = {
    "article": WebPageType.ARTICLE,
    "website": WebPageType.WEBSITE,
}

Partial = dict[str, Any]


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def _text(value: Any) -> str | None:
    return clean_text(value) if isinstance(value, str) else None


def _is_article(item: Any) -> bool:
    if not isinstance(item, dict):
        return False
    return any(t in ARTICLE_TYPES for t in _as_list(item.get("@type")) if isinstance(t, str))


class MetadataExtractor:
    """Turn one HTML document into a MetadataResult."""

    def extract(self, html: str, url: str) -> MetadataResult:
        """Extract metadata from ``html`` fetched from ``url``.

        Raises:
            ExtractionFailedError: Parsing or assembly failed unexpectedly.
        """
        try:
            return self._extract(html, url)
        except CiteFetchError:
            raise
        except Exception as e:
            logger.warning("Metadata extraction failed for %s: %s", url, e)
            raise ExtractionFailedError("Failed to extract metadata", details=str(e)) from e

    def _extract(self, html: str, url: str) -> MetadataResult:
        soup = BeautifulSoup(html or "", "html.parser")
        hostname = urlsplit(url).hostname or url

        merged = self._merge(
            [
                self._from_json_ld(soup),
                self._from_meta_tags(soup),
                self._from_open_graph(soup),
                self._from_twitter(soup),
                self._from_heuristics(soup),
            ]
        )

        title = merged.get("title")
        source = merged.get("title_source")
        if not title:
            title = clean_text(soup.title.get_text()) if soup.title else None
            source = ExtractionSource.DOCUMENT
        if not title:
            title = hostname
            source = ExtractionSource.DOCUMENT

        language = merged.get("language")
        if not language and soup.html is not None:
            language = clean_text(soup.html.get("lang"))

        logger.debug("Extracted metadata for %s (title from %s)", url, source.value)
        return MetadataResult(
            url=url,
            title=title,
            access_date=utc_now_iso(),
            authors=merged.get("authors", []),
            published_date=merged.get("published_date"),
            modified_date=merged.get("modified_date"),
            publisher=merged.get("publisher"),
            site_name=merged.get("site_name") or hostname,
            description=merged.get("description"),
            language=language,
            type=merged.get("type", WebPageType.WEBSITE),
            extraction_source=source,
        )

    @staticmethod
    def _merge(partials: list[Partial]) -> Partial:
        merged: Partial = {}
        for partial in partials:
            for key, value in partial.items():
                if key == "source" or value in (None, "", []):
                    continue
                if key not in merged:
                    merged[key] = value
                    if key == "title":
                        merged["title_source"] = partial["source"]
        return merged

    # JSON-LD

    def _from_json_ld(self, soup: BeautifulSoup) -> Partial:
        for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
            try:
                data = json.loads(script.string or script.get_text() or "")
            except ValueError:
                logger.debug("Skipping unparsable JSON-LD block")
                continue

            items: list[Any] = []
            for entry in _as_list(data):
                items.append(entry)
                if isinstance(entry, dict):
                    items.extend(_as_list(entry.get("@graph")))

            for item in items:
                if _is_article(item):
                    return self._parse_json_ld_article(item)
        return {"source": ExtractionSource.JSON_LD}

    def _parse_json_ld_article(self, item: dict[str, Any]) -> Partial:
        publisher = item.get("publisher")
        if isinstance(publisher, dict):
            publisher = publisher.get("name")

        types = [t for t in _as_list(item.get("@type")) if isinstance(t, str)]
        page_type = JSON_LD_TYPE_MAP.get(types[0], WebPageType.WEBSITE) if types else None

        return {
            "source": ExtractionSource.JSON_LD,
            "title": _text(item.get("headline")) or _text(item.get("name")),
            "authors": self._parse_json_ld_authors(item.get("author")),
            "published_date": _text(item.get("datePublished")),
            "modified_date": _text(item.get("dateModified")),
            "publisher": _text(publisher),
            "description": _text(item.get("description")),
            "language": _text(item.get("inLanguage")),
            "type": page_type,
        }

    @staticmethod
    def _parse_json_ld_authors(value: Any) -> list[Author]:
        authors = []
        for entry in _as_list(value):
            if isinstance(entry, str) and entry.strip():
                authors.append(Author.from_name(entry))
            elif isinstance(entry, dict) and _text(entry.get("name")):
                authors.append(
                    Author(
                        full_name=_text(entry["name"]),
                        first_name=_text(entry.get("givenName")),
                        last_name=_text(entry.get("familyName")),
                    )
                )
        return authors

    # Meta tags

    @staticmethod
    def _meta(soup: BeautifulSoup, attr: str, name: str) -> str | None:
        tag = soup.find("meta", attrs={attr: lambda v: v is not None and v.lower() == name.lower()})
        if isinstance(tag, Tag):
            return clean_text(tag.get("content"))
        return None

    def _from_meta_tags(self, soup: BeautifulSoup) -> Partial:
        author = self._meta(soup, "name", "author")
        return {
            "source": ExtractionSource.META_TAGS,
            "title": self._meta(soup, "name", "title"),
            "authors": [Author.from_name(author)] if author else [],
            "published_date": self._meta(soup, "name", "article:published_time")
            or self._meta(soup, "property", "article:published_time")
            or self._meta(soup, "name", "date"),
            "modified_date": self._meta(soup, "name", "article:modified_time")
            or self._meta(soup, "property", "article:modified_time"),
            "description": self._meta(soup, "name", "description"),
            "language": self._meta(soup, "name", "language"),
        }

    def _from_open_graph(self, soup: BeautifulSoup) -> Partial:
        og_type = self._meta(soup, "property", "og:type")
        return {
            "source": ExtractionSource.OG_TAGS,
            "title": self._meta(soup, "property", "og:title"),
            "site_name": self._meta(soup, "property", "og:site_name"),
            "description": self._meta(soup, "property", "og:description"),
            "type": OG_TYPE_MAP.get(og_type.lower()) if og_type else None,
        }

    def _from_twitter(self, soup: BeautifulSoup) -> Partial:
        def twitter(name: str) -> str | None:
            return self._meta(soup, "name", f"twitter:{name}") or self._meta(
                soup, "property", f"twitter:{name}"
            )

        creator = twitter("creator")
        creator = creator.lstrip("@") if creator else None
        return {
            "source": ExtractionSource.TWITTER_TAGS,
            "title": twitter("title"),
            "authors": [Author(full_name=creator)] if creator else [],
            "description": twitter("description"),
        }

    # Heuristics

    def _from_heuristics(self, soup: BeautifulSoup) -> Partial:
        title = None
        h1 = soup.find("h1")
        if isinstance(h1, Tag):
            title = clean_text(h1.get_text())
        if not title:
            el = soup.select_one('[class*="title"]')
            title = clean_text(el.get_text()) if el else None

        author_el = soup.select_one('[rel="author"], [class*="author"], [itemprop="author"]')
        author = clean_text(author_el.get_text()) if author_el else None

        published = None
        date_el = soup.select_one('time[datetime], [class*="date"], [itemprop="datePublished"]')
        if date_el is not None:
            published = normalize_date(date_el.get("datetime") or date_el.get_text())

        return {
            "source": ExtractionSource.HEURISTIC,
            "title": title,
            "authors": [Author.from_name(author)] if author else [],
            "published_date": published,
        }


_default_extractor = MetadataExtractor()


def extract_metadata(html: str, url: str) -> MetadataResult:
    """Extract metadata with a shared MetadataExtractor."""
    return _default_extractor.extract(html, url)


__all__ = [
    "MetadataExtractor",
    "extract_metadata",
    "ARTICLE_TYPES",
]
