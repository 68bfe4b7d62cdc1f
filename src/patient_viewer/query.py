"""Patient search request building.

Turns the advanced-search fields plus paging and sorting state into the
query parameters understood by the server's Patient search endpoint.
Nothing here performs I/O.
"""

from __future__ import annotations

import enum
from typing import Any, Literal

import httpx
from pydantic import BaseModel, EmailStr, field_validator

from patient_viewer.config import DEFAULT_PAGE_SIZE

FILTER_FIELDS = (
    "name",
    "given",
    "family",
    "identifier",
    "gender",
    "birthdate",
    "phone",
    "email",
    "address",
)


class SortField(str, enum.Enum):
    NAME = "name"
    GENDER = "gender"
    BIRTH_DATE = "birthDate"
    LAST_UPDATED = "lastUpdated"
    ID = "id"


class SortDirection(str, enum.Enum):
    ASC = "asc"
    DESC = "desc"

    def flipped(self) -> SortDirection:
        return SortDirection.DESC if self is SortDirection.ASC else SortDirection.ASC


# Server search parameter for each sortable column.
SORT_KEYS: dict[SortField, str] = {
    SortField.NAME: "family",
    SortField.GENDER: "gender",
    SortField.BIRTH_DATE: "birthdate",
    SortField.LAST_UPDATED: "_lastUpdated",
    SortField.ID: "_id",
}


class SearchFilters(BaseModel):
    """Advanced search fields. Blank values mean "not filtered"."""

    name: str | None = None
    given: str | None = None
    family: str | None = None
    identifier: str | None = None
    gender: Literal["male", "female", "other", "unknown"] | None = None
    birthdate: str | None = None
    phone: str | None = None
    email: EmailStr | None = None
    address: str | None = None

    @field_validator("*", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    def params(self) -> dict[str, str]:
        """Only the filters that carry a value."""
        return {
            key: str(value)
            for key in FILTER_FIELDS
            if (value := getattr(self, key)) is not None
        }

    def is_empty(self) -> bool:
        return not self.params()


def sort_param(field: SortField, direction: SortDirection) -> str:
    """Server sort key, prefixed with "-" when descending."""
    prefix = "-" if direction is SortDirection.DESC else ""
    return f"{prefix}{SORT_KEYS[SortField(field)]}"


def toggle_sort(
    current_field: SortField,
    current_direction: SortDirection,
    clicked: SortField,
) -> tuple[SortField, SortDirection]:
    """Next sort state after a column header click.

    Clicking the active column flips the direction; clicking another column
    sorts by it ascending.
    """
    if clicked == current_field:
        return current_field, current_direction.flipped()
    return SortField(clicked), SortDirection.ASC


def page_offset(page_number: int, page_size: int) -> int:
    return (max(1, page_number) - 1) * max(1, page_size)


def search_params(
    filters: SearchFilters | None = None,
    page_size: int = DEFAULT_PAGE_SIZE,
    page_number: int = 1,
    sort: str | None = None,
) -> dict[str, Any]:
    """Query parameters for one page of a Patient search."""
    page_size = max(1, int(page_size))
    page_number = max(1, int(page_number))

    params: dict[str, Any] = dict(filters.params()) if filters else {}
    if sort:
        params["_sort"] = sort
    params["_count"] = page_size
    params["_getpagesoffset"] = page_offset(page_number, page_size)
    params["_total"] = "accurate"
    return params


def count_params(filters: SearchFilters | None = None) -> dict[str, Any]:
    """Query parameters for the count-only variant of a Patient search."""
    params: dict[str, Any] = dict(filters.params()) if filters else {}
    params["_summary"] = "count"
    return params


def build_search_url(
    base_url: str,
    filters: SearchFilters | None = None,
    page_size: int = DEFAULT_PAGE_SIZE,
    page_number: int = 1,
    sort: str | None = None,
) -> str:
    """Fully qualified Patient search URL for the given state."""
    params = search_params(filters, page_size, page_number, sort)
    return str(httpx.URL(f"{base_url.rstrip('/')}/Patient", params=params))
