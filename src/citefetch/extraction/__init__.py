"""HTML metadata extraction."""

from .extractor import MetadataExtractor, extract_metadata

__all__ = ["MetadataExtractor", "extract_metadata"]
