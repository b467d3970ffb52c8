"""Bibliographic registry clients and identifier validation."""

from .base import BaseRegistryClient
from .crossref import CrossrefClient
from .identifiers import normalize_doi, validate_doi, validate_isbn
from .openlibrary import OpenLibraryClient

__all__ = [
    "BaseRegistryClient",
    "CrossrefClient",
    "OpenLibraryClient",
    "normalize_doi",
    "validate_doi",
    "validate_isbn",
]
