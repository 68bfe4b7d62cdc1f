"""Paged, sortable patient table.

Holds the page number, page size, sort column and direction, and an
optional advanced-search filter set. Every user action issues one request
through the services layer; only the latest request's outcome is applied.

A failed request leaves the last successful page, page size and sort in
place, so the table keeps showing what it showed before. retry() replays
the request that failed.

The quick filter box only narrows the rows already loaded; it never asks
the server again. empty_reason tells "nothing on the server" apart from
"nothing matches the filter".
"""

from __future__ import annotations

import logging
from typing import Any

from patient_viewer.config import DEFAULT_PAGE_SIZE
from patient_viewer.fhir_client import ErrorKind, FHIRClient, FHIRError
from patient_viewer.formatting import matches_name
from patient_viewer.paging import PagedResult, page_for_page_size, page_window
from patient_viewer.query import SearchFilters, SortDirection, SortField, sort_param, toggle_sort
from patient_viewer.services.patients import fetch_patients, search_patients
from patient_viewer.views.base import LoadingView

logger = logging.getLogger(__name__)


class PatientListView(LoadingView):
    def __init__(
        self,
        client: FHIRClient,
        page_size: int = DEFAULT_PAGE_SIZE,
        sort_field: SortField = SortField.LAST_UPDATED,
        sort_direction: SortDirection = SortDirection.DESC,
    ) -> None:
        super().__init__(client)
        self.page_number = 1
        self.page_size = page_size
        self.sort_field = sort_field
        self.sort_direction = sort_direction
        self.search_filters: SearchFilters | None = None
        self.result: PagedResult | None = None
        self.filter_text = ""
        self._last_request: dict[str, Any] = {}

    # --- Derived state ---

    @property
    def patients(self) -> list[dict[str, Any]]:
        return self.result.resources if self.result else []

    @property
    def total(self) -> int:
        return self.result.total if self.result else 0

    @property
    def total_pages(self) -> int:
        return self.result.total_pages if self.result else 1

    @property
    def total_estimated(self) -> bool:
        return bool(self.result and self.result.total_estimated)

    @property
    def filtered_patients(self) -> list[dict[str, Any]]:
        text = self.filter_text.strip()
        return [p for p in self.patients if matches_name(p, text)]

    @property
    def empty_reason(self) -> str | None:
        """None when rows are visible, "server" or "filtered" otherwise."""
        if self.loading or self.filtered_patients:
            return None
        if self.patients:
            return "filtered"
        return "server"

    @property
    def page_numbers(self) -> list[int]:
        return page_window(self.page_number, self.total_pages)

    @property
    def searching(self) -> bool:
        return self.search_filters is not None

    # --- Actions ---

    async def load(
        self,
        page_number: int | None = None,
        page_size: int | None = None,
        sort_field: SortField | None = None,
        sort_direction: SortDirection | None = None,
    ) -> None:
        """Fetch a page. Arguments default to the current selection."""
        request = {
            "page_number": page_number or self.page_number,
            "page_size": page_size or self.page_size,
            "sort_field": sort_field or self.sort_field,
            "sort_direction": sort_direction or self.sort_direction,
        }
        self._last_request = request
        client = self.client
        filters = self.search_filters
        sort = sort_param(request["sort_field"], request["sort_direction"])

        async def fetch() -> PagedResult:
            if filters is not None:
                return await search_patients(
                    client,
                    filters,
                    page_size=request["page_size"],
                    page_number=request["page_number"],
                    sort=sort,
                )
            return await fetch_patients(
                client,
                page_size=request["page_size"],
                page_number=request["page_number"],
                sort=sort,
            )

        def apply(result: PagedResult) -> None:
            self.result = result
            self.page_number = result.page_number
            self.page_size = result.page_size
            self.sort_field = request["sort_field"]
            self.sort_direction = request["sort_direction"]
            logger.info(
                "Loaded %d patients (page %d/%d, total %d%s)",
                len(result.resources),
                result.page_number,
                result.total_pages,
                result.total,
                ", estimated" if result.total_estimated else "",
            )

        await self._run(fetch, apply)

    async def retry(self) -> None:
        await self.load(**self._last_request)

    async def go_to_page(self, page: int) -> bool:
        """Load page if it exists and is not already shown."""
        if page < 1 or page > self.total_pages or page == self.page_number:
            return False
        await self.load(page_number=page)
        return True

    async def jump_to_page(self, text: str) -> bool:
        try:
            page = int(text.strip())
        except ValueError:
            return False
        return await self.go_to_page(page)

    async def change_page_size(self, size: int) -> None:
        """Switch page size, staying on the page that holds the first visible row."""
        if size <= 0:
            raise ValueError("page size must be positive")
        page = page_for_page_size(self.page_number, self.page_size, size)
        await self.load(page_number=page, page_size=size)

    async def toggle_sort(self, field: SortField) -> None:
        """Column header click: flip or switch the sort, back to page 1."""
        new_field, new_direction = toggle_sort(self.sort_field, self.sort_direction, field)
        await self.load(page_number=1, sort_field=new_field, sort_direction=new_direction)

    async def change_server(self, client: FHIRClient) -> None:
        self.client = client
        await self.load(page_number=1)

    async def search(self, filters: SearchFilters) -> None:
        """Switch to advanced-search results.

        Raises:
            FHIRError: VALIDATION when no filter has a value. Nothing is
                requested and the current results stay in place.
        """
        if filters.is_empty():
            raise FHIRError(
                ErrorKind.VALIDATION,
                "Please provide at least one search parameter",
            )
        self.search_filters = filters
        await self.load(page_number=1)

    async def clear_search(self) -> None:
        self.search_filters = None
        await self.load(page_number=1)

    def set_filter_text(self, text: str) -> None:
        self.filter_text = text
