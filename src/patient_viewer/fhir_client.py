"""HTTP client for a FHIR R4 REST server.

This module provides the FHIRClient class, which handles:
1. Sending GET/POST requests to one FHIR server base URL
2. Setting the FHIR JSON media type on every request
3. Turning failures into FHIRError values with a kind that callers can
   branch on (not found, transport, validation)

Concept — explicit server binding:
    The user can switch between several FHIR servers at runtime. Instead of
    reading "the current server" from a global, every data-access function
    receives a FHIRClient that is bound to exactly one base URL. Switching
    servers means creating a new client and handing it to the view.

Usage:
    async with FHIRClient("https://cdr.fhirlab.net/fhir") as client:
        bundle = await client.get("/Patient", params={"_count": 10})
"""

from __future__ import annotations

import enum
import logging
from typing import Any

import httpx

from patient_viewer.config import FHIR_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

FHIR_JSON = "application/fhir+json"


class ErrorKind(str, enum.Enum):
    """What went wrong, so views never have to parse error text."""

    NOT_FOUND = "not_found"
    TRANSPORT = "transport"
    VALIDATION = "validation"


class FHIRError(Exception):
    """Raised when a FHIR request fails or its input is invalid.

    Attributes:
        kind: The failure category.
        detail: Human readable description (server body or validation text).
        status_code: HTTP status, or 0 when no response was received.
        field_errors: Per-field messages for VALIDATION errors.
    """

    def __init__(
        self,
        kind: ErrorKind,
        detail: str,
        status_code: int = 0,
        field_errors: dict[str, str] | None = None,
    ) -> None:
        self.kind = kind
        self.detail = detail
        self.status_code = status_code
        self.field_errors = field_errors or {}
        if status_code:
            super().__init__(f"HTTP {status_code}: {detail}")
        else:
            super().__init__(detail)

    @property
    def is_not_found(self) -> bool:
        return self.kind is ErrorKind.NOT_FOUND


class FHIRClient:
    """Async HTTP client bound to a single FHIR server.

    Attributes:
        base_url: The FHIR base URL (e.g., "https://cdr.fhirlab.net/fhir").
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = FHIR_TIMEOUT_SECONDS,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._http = http or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    async def __aenter__(self) -> FHIRClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._http.aclose()

    def url(self, path: str) -> str:
        """Absolute URL for a path relative to the base URL."""
        return f"{self.base_url}/{path.lstrip('/')}"

    # --- Request methods ---

    async def get(
        self,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """GET a resource or a search bundle.

        Args:
            path: Path relative to the base URL (e.g., "/Patient/123").
            params: Optional query parameters.

        Returns:
            The parsed JSON object.

        Raises:
            FHIRError: NOT_FOUND on 404, TRANSPORT on any other failure.
        """
        return await self._request("GET", path, params=params)

    async def post(self, path: str, resource: dict[str, Any]) -> dict[str, Any]:
        """POST a resource and return the server's copy of it.

        Raises:
            FHIRError: On any non-2xx response or network failure.
        """
        return await self._request("POST", path, json_data=resource)

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        url = self.url(path)
        headers = {"Accept": FHIR_JSON}
        if json_data is not None:
            headers["Content-Type"] = FHIR_JSON

        logger.debug("%s %s params=%s", method, url, params)
        try:
            response = await self._http.request(
                method,
                url,
                headers=headers,
                params=params,
                json=json_data,
            )
        except httpx.HTTPError as exc:
            raise FHIRError(
                ErrorKind.TRANSPORT,
                f"Request to {url} failed: {exc}",
            ) from exc

        if response.status_code == 404:
            raise FHIRError(
                ErrorKind.NOT_FOUND,
                f"{method} {path} not found",
                status_code=404,
            )
        if response.status_code >= 400:
            logger.warning(
                "%s %s returned HTTP %d", method, url, response.status_code
            )
            raise FHIRError(
                ErrorKind.TRANSPORT,
                response.text or response.reason_phrase,
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise FHIRError(
                ErrorKind.TRANSPORT,
                f"Response from {url} is not JSON",
                status_code=response.status_code,
            ) from exc
        # Every FHIR response (resource, Bundle, OperationOutcome) is an object.
        if not isinstance(body, dict):
            raise FHIRError(
                ErrorKind.TRANSPORT,
                f"Response from {url} is not a FHIR resource",
                status_code=response.status_code,
            )
        return body


def bundle_resources(bundle: Any) -> list[dict[str, Any]]:
    """Pull the resources out of a search Bundle.

    A bundle with no "entry" key (the usual answer to an empty search)
    yields an empty list. Entries without a resource object are skipped.
    """
    if not isinstance(bundle, dict):
        return []
    entries = bundle.get("entry")
    if not isinstance(entries, list):
        return []
    return [
        e["resource"]
        for e in entries
        if isinstance(e, dict) and isinstance(e.get("resource"), dict)
    ]


def bundle_links(bundle: Any) -> dict[str, str]:
    """Map each bundle link relation ("self", "next", ...) to its URL."""
    if not isinstance(bundle, dict):
        return {}
    links: dict[str, str] = {}
    link_list = bundle.get("link")
    if not isinstance(link_list, list):
        return {}
    for link in link_list:
        if not isinstance(link, dict):
            continue
        relation = link.get("relation")
        url = link.get("url")
        if isinstance(relation, str) and isinstance(url, str):
            links[relation] = url
    return links
