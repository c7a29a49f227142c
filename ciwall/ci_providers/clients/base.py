from __future__ import annotations

import logging
from base64 import b64encode
from typing import Any, Dict, Optional, Type

import httpx

from ciwall.config import settings

logger = logging.getLogger(__name__)


class VendorError(Exception):
    """Base exception for transport client failures."""


class VendorNotFoundError(VendorError):
    """Raised when the server answers 404 for a vendor-local id."""

    def __init__(self, message: str, key: str | None = None):
        super().__init__(message)
        self.key = key


class VendorTransportError(VendorError):
    """Raised for network failures, unexpected HTTP statuses or bad JSON."""


class JsonApiClient:
    """
    Minimal JSON-over-HTTP client shared by the vendor clients.

    Subclasses call ``_get_json`` with the not-found exception type that a
    404 on that resource should raise.
    """

    vendor = "ci"

    def __init__(
        self,
        base_url: str,
        login: Optional[str] = None,
        password: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._login = login
        self._password = password or ""
        if transport is None:
            transport = httpx.HTTPTransport(retries=settings.HTTP_RETRIES)
        self._http = httpx.Client(
            base_url=self._base_url,
            timeout=timeout or settings.HTTP_TIMEOUT_SECONDS,
            transport=transport,
            headers=self._get_headers(),
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def anonymous(self) -> bool:
        return not self._login or self._login == settings.ANONYMOUS_LOGIN

    def _get_headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if not self.anonymous:
            credentials = f"{self._login}:{self._password}"
            encoded = b64encode(credentials.encode()).decode()
            headers["Authorization"] = f"Basic {encoded}"
        return headers

    def _get_json(
        self,
        path: str,
        not_found: Type[VendorNotFoundError],
        key: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        try:
            response = self._http.get(path, params=params)
        except httpx.TransportError as exc:
            raise VendorTransportError(
                f"{self.vendor} request to {path} failed: {exc}"
            ) from exc

        if response.status_code == 404:
            raise not_found(f"{self.vendor} resource not found: {path}", key=key)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise VendorTransportError(str(exc)) from exc

        try:
            return response.json()
        except ValueError as exc:
            raise VendorTransportError(
                f"{self.vendor} returned malformed JSON for {path}"
            ) from exc

    def close(self) -> None:
        self._http.close()
