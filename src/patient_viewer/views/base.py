"""Shared view plumbing: status values and "latest request wins" sequencing.

Concept — stale responses:
    A user can click "next page" twice quickly, or switch servers while a
    page is loading. Requests are not cancelled, so an older response may
    arrive after a newer one. Every request therefore gets a sequence
    number, and a response is applied only if its number is still the
    latest one issued by that view.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, TypeVar

from pydantic import ValidationError

from patient_viewer.fhir_client import ErrorKind, FHIRClient, FHIRError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def _fetch_checked(fetch: Callable[[], Awaitable[T]]) -> T:
    """Await fetch, reporting a malformed server response as TRANSPORT."""
    try:
        return await fetch()
    except ValidationError as exc:
        raise FHIRError(
            ErrorKind.TRANSPORT,
            f"Unexpected response shape: {exc.error_count()} invalid field(s)",
        ) from exc


class ViewStatus(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    ERROR = "error"
    NOT_FOUND = "not_found"


class RequestSequencer:
    """Hands out increasing request numbers and remembers the latest."""

    def __init__(self) -> None:
        self._latest = 0

    def next(self) -> int:
        self._latest += 1
        return self._latest

    def is_current(self, token: int) -> bool:
        return token == self._latest


class LoadingView:
    """Base for views that load data from one FHIR server.

    Subclasses implement load() in terms of _run().
    """

    # Views that show a dedicated "not found" screen set this to True.
    tracks_not_found = False

    def __init__(self, client: FHIRClient) -> None:
        self.client = client
        self.status = ViewStatus.IDLE
        self.error: FHIRError | None = None
        self._requests = RequestSequencer()

    @property
    def loading(self) -> bool:
        return self.status is ViewStatus.LOADING

    async def load(self) -> None:
        raise NotImplementedError

    async def retry(self) -> None:
        await self.load()

    async def change_server(self, client: FHIRClient) -> None:
        """Point the view at another server and reload."""
        self.client = client
        await self.load()

    async def _run(
        self,
        fetch: Callable[[], Awaitable[T]],
        apply: Callable[[T], Any],
    ) -> bool:
        """Run fetch and hand its result to apply, unless superseded.

        Returns:
            True if the result (or error) was applied to the view.
        """
        token = self._requests.next()
        self.status = ViewStatus.LOADING
        self.error = None

        try:
            value = await _fetch_checked(fetch)
        except FHIRError as exc:
            if not self._requests.is_current(token):
                logger.debug("Discarding stale error for request %d: %s", token, exc)
                return False
            logger.warning("%s failed: %s", type(self).__name__, exc)
            self.error = exc
            if self.tracks_not_found and exc.is_not_found:
                self.status = ViewStatus.NOT_FOUND
            else:
                self.status = ViewStatus.ERROR
            return True

        if not self._requests.is_current(token):
            logger.debug("Discarding stale response for request %d", token)
            return False
        apply(value)
        self.status = ViewStatus.LOADED
        return True


async def switch_server(
    old_client: FHIRClient,
    new_client: FHIRClient,
    views: Iterable[Any],
) -> None:
    """Close old_client and point every view at new_client."""
    await old_client.close()
    for view in views:
        await view.change_server(new_client)
