"""Base class for bibliographic registry clients."""

import logging
from abc import ABC, abstractmethod
from typing import Any

import requests
from pydantic import BaseModel, ValidationError

from citefetch.core.exceptions import (
    RegistryError,
    RegistryNotFoundError,
    RegistryParseError,
    RegistryTimeoutError,
)
from citefetch.core.models import MetadataResult

logger = logging.getLogger(__name__)


class BaseRegistryClient(ABC):
    """Synchronous registry client on a shared ``requests.Session``.

    Subclasses fetch by identifier and map the registry's JSON to a
    MetadataResult. Transport failures are translated into the citefetch
    error taxonomy here so no ``requests`` exception leaks out.
    """

    def __init__(
        self,
        timeout_s: float = 15.0,
        user_agent: str | None = None,
        session: requests.Session | None = None,
    ):
        self.timeout_s = timeout_s
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        if user_agent:
            self.session.headers.update({"User-Agent": user_agent})

    @property
    @abstractmethod
    def name(self) -> str:
        """Registry name used in logs and error messages."""
        ...

    @abstractmethod
    def fetch(self, identifier: str) -> MetadataResult:
        """Look up an already-validated identifier."""
        ...

    def _get_json(
        self,
        url: str,
        identifier: str,
        params: dict[str, Any] | None = None,
        not_found_on_404: bool = True,
    ) -> Any:
        """GET ``url`` and decode the JSON body.

        Raises:
            RegistryNotFoundError: 404 (when ``not_found_on_404``).
            RegistryTimeoutError: Request timed out.
            RegistryError: Connection failure or non-2xx status.
            RegistryParseError: Body is not JSON.
        """
        try:
            resp = self.session.get(url, params=params, timeout=self.timeout_s)
        except requests.Timeout as exc:
            logger.warning("%s request timed out for %s", self.name, identifier)
            raise RegistryTimeoutError(f"{self.name} request timed out", details=identifier) from exc
        except requests.RequestException as exc:
            logger.warning("%s request failed for %s: %s", self.name, identifier, exc)
            raise RegistryError(f"{self.name} request failed", details=str(exc)) from exc

        if resp.status_code == 404 and not_found_on_404:
            raise RegistryNotFoundError(f"{identifier} not found in {self.name}", details=identifier)
        if not resp.ok:
            logger.warning("%s API error %d for %s", self.name, resp.status_code, identifier)
            raise RegistryError(f"{self.name} API error: {resp.status_code}", details=identifier)

        try:
            return resp.json()
        except ValueError as exc:
            raise RegistryParseError(f"Failed to parse {self.name} response", details=identifier) from exc

    def _validate(self, schema: type[BaseModel], data: Any, identifier: str) -> Any:
        try:
            return schema.model_validate(data)
        except ValidationError as exc:
            logger.warning("%s response failed validation for %s: %s", self.name, identifier, exc)
            raise RegistryParseError(f"Failed to parse {self.name} response", details=identifier) from exc

    def close(self) -> None:
        self.session.close()


__all__ = ["BaseRegistryClient"]
