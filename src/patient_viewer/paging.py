"""Paged results and total-count reconciliation.

Some FHIR servers answer a paged search with ``"total": 0`` even though the
page itself contains resources. Left alone, the UI would show "0 patients"
and a single page. normalize_bundle() detects that case and repairs the
total:

1. Ask the count-only endpoint (``_summary=count``) for the real number.
2. If that is unavailable or also zero, estimate it from what we can see:
   every earlier page was full, plus the resources on this page, plus one
   more when this page is full (there may be a next page).

The total is only ever corrected upward, and this never raises: a bad total
is a data-quality problem, not a failure.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, Field

from patient_viewer.fhir_client import FHIRError, bundle_links, bundle_resources

logger = logging.getLogger(__name__)

CountLookup = Callable[[], Awaitable[int]]


class PagedResult(BaseModel):
    """One page of resources with uniform paging metadata."""

    resources: list[dict[str, Any]] = Field(default_factory=list)
    total: int = 0
    page_size: int
    page_number: int = 1
    total_pages: int = 1
    links: dict[str, str] = Field(default_factory=dict)
    # True when total is a lower-bound guess rather than a server figure.
    total_estimated: bool = False

    @property
    def has_next(self) -> bool:
        return self.page_number < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page_number > 1


def total_pages(total: int, page_size: int) -> int:
    if page_size <= 0:
        raise ValueError("page_size must be positive")
    return max(1, math.ceil(max(0, total) / page_size))


def observed_minimum(page_number: int, page_size: int, resource_count: int) -> int:
    """Smallest total consistent with seeing resource_count items on this page."""
    return (max(1, page_number) - 1) * page_size + resource_count


def estimate_total(page_number: int, page_size: int, resource_count: int) -> int:
    """Guess a total when the server will not give one.

    A full page adds one extra record so the pager offers a next page. The
    result is approximate by nature.
    """
    estimate = observed_minimum(page_number, page_size, resource_count)
    if resource_count >= page_size:
        estimate += 1
    return estimate


def reported_total(bundle: Any) -> int:
    """The bundle's own total, or 0 when missing or not a usable number."""
    if not isinstance(bundle, dict):
        return 0
    total = bundle.get("total")
    if isinstance(total, bool) or not isinstance(total, (int, float)):
        return 0
    if total < 0 or math.isnan(total):
        return 0
    return int(total)


async def reconcile_total(
    reported: int,
    page_number: int,
    page_size: int,
    resource_count: int,
    count_lookup: CountLookup | None = None,
) -> tuple[int, bool]:
    """Return (total, estimated) after correcting an implausible zero."""
    if reported > 0 or resource_count == 0:
        return reported, False

    logger.warning(
        "Server reported total=0 with %d resources on page %d; reconciling",
        resource_count,
        page_number,
    )
    minimum = observed_minimum(page_number, page_size, resource_count)

    if count_lookup is not None:
        try:
            counted = await count_lookup()
        except FHIRError as exc:
            logger.warning("Count lookup failed, estimating instead: %s", exc)
            counted = 0
        if counted > 0:
            logger.info("Verified count: %d", counted)
            return max(counted, minimum), False

    estimated = estimate_total(page_number, page_size, resource_count)
    logger.info("Using estimated count: %d", estimated)
    return estimated, True


async def normalize_bundle(
    bundle: Any,
    page_size: int,
    page_number: int = 1,
    count_lookup: CountLookup | None = None,
) -> PagedResult:
    """Reshape a search Bundle into a PagedResult.

    Args:
        bundle: Parsed JSON search response.
        page_size: The page size that was requested (must be positive).
        page_number: The 1-based page that was requested.
        count_lookup: Coroutine factory returning an authoritative total,
            used only when the bundle's total cannot be trusted.
    """
    if page_size <= 0:
        raise ValueError("page_size must be positive")
    page_number = max(1, page_number)

    resources = bundle_resources(bundle)
    total, estimated = await reconcile_total(
        reported_total(bundle),
        page_number,
        page_size,
        len(resources),
        count_lookup,
    )
    return PagedResult(
        resources=resources,
        total=total,
        page_size=page_size,
        page_number=page_number,
        total_pages=total_pages(total, page_size),
        links=bundle_links(bundle),
        total_estimated=estimated,
    )


def page_for_page_size(current_page: int, old_size: int, new_size: int) -> int:
    """Page that keeps the first visible record on screen after a resize."""
    first_record = (max(1, current_page) - 1) * old_size + 1
    return max(1, math.ceil(first_record / new_size))


def page_window(current_page: int, pages: int, max_pages: int = 5) -> list[int]:
    """Page numbers to offer as buttons, centred on the current page."""
    if pages <= max_pages:
        return list(range(1, pages + 1))
    start = max(1, current_page - max_pages // 2)
    end = min(pages, start + max_pages - 1)
    if end - start + 1 < max_pages:
        start = max(1, end - max_pages + 1)
    return list(range(start, end + 1))
