"""citefetch: resilient citation metadata acquisition."""

__version__ = "0.1.0"
