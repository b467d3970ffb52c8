"""Logging configuration for citefetch."""

import logging

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Chatty third-party loggers, held at WARNING unless verbose
NOISY_LOGGERS = ("urllib3", "asyncio", "charset_normalizer")


def setup_logging(level: int = logging.INFO, verbose: bool = False) -> None:
    """Configure the root logger for scripts and services embedding citefetch.

    ``verbose`` switches to DEBUG and stops muting the HTTP/asyncio loggers.
    """
    if verbose:
        level = logging.DEBUG
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="%H:%M:%S")
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET if verbose else logging.WARNING)


def get_logger(name: str | None = None) -> logging.Logger:
    """Get a logger under the ``citefetch`` namespace."""
    if not name:
        return logging.getLogger("citefetch")
    if name == "citefetch" or name.startswith("citefetch."):
        return logging.getLogger(name)
    return logging.getLogger(f"citefetch.{name}")


__all__ = ["setup_logging", "get_logger", "LOG_FORMAT"]
