"""Outbound request safety."""

from .url_guard import UrlGuard, is_private_ip, resolve_all

__all__ = ["UrlGuard", "is_private_ip", "resolve_all"]
