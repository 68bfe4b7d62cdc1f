"""Patient search, paging and creation.

API endpoints used:
- GET  /Patient?_summary=count   — How many patients match
- GET  /Patient?_count&_getpagesoffset&_sort&_total=accurate — One page
- GET  /Patient/{id}             — A single patient
- POST /Patient                  — Create a patient
"""

from __future__ import annotations

import logging
from typing import Any

from patient_viewer.config import DEFAULT_PAGE_SIZE, PATIENT_PROFILE_URL
from patient_viewer.fhir_client import ErrorKind, FHIRClient, FHIRError
from patient_viewer.models import PatientForm, validate_patient_form
from patient_viewer.paging import PagedResult, normalize_bundle, reported_total
from patient_viewer.query import (
    SearchFilters,
    SortDirection,
    SortField,
    count_params,
    search_params,
    sort_param,
)

logger = logging.getLogger(__name__)

DEFAULT_SORT = sort_param(SortField.LAST_UPDATED, SortDirection.DESC)


async def fetch_patient_count(
    client: FHIRClient,
    filters: SearchFilters | None = None,
) -> int:
    """Number of patients matching filters (all patients when None).

    Raises:
        FHIRError: If the count request fails.
    """
    data = await client.get("/Patient", params=count_params(filters))
    return reported_total(data)


async def fetch_patients(
    client: FHIRClient,
    page_size: int | None = DEFAULT_PAGE_SIZE,
    page_number: int = 1,
    sort: str | None = DEFAULT_SORT,
    filters: SearchFilters | None = None,
) -> PagedResult:
    """Fetch one page of patients, with a trustworthy total.

    When page_size is None the count endpoint is asked first and the whole
    result set is requested as a single page.

    Args:
        client: Client bound to the server to query.
        page_size: Patients per page, or None for "everything".
        page_number: 1-based page to fetch.
        sort: Server sort key (see query.sort_param).
        filters: Search filters; None lists all patients.

    Returns:
        The page with total and total_pages reconciled.

    Raises:
        FHIRError: If the page request fails.
    """
    if page_size is None:
        counted = await fetch_patient_count(client, filters)
        page_size = counted if counted > 0 else DEFAULT_PAGE_SIZE
        logger.info("No page size given; requesting %d patients", page_size)

    page_size = max(1, page_size)
    page_number = max(1, page_number)
    params = search_params(filters, page_size, page_number, sort)
    logger.info(
        "Loading patients from %s: page=%d size=%d sort=%s",
        client.base_url,
        page_number,
        page_size,
        sort,
    )
    bundle = await client.get("/Patient", params=params)

    async def count_lookup() -> int:
        return await fetch_patient_count(client, filters)

    return await normalize_bundle(
        bundle,
        page_size=page_size,
        page_number=page_number,
        count_lookup=count_lookup,
    )


async def search_patients(
    client: FHIRClient,
    filters: SearchFilters,
    page_size: int = DEFAULT_PAGE_SIZE,
    page_number: int = 1,
    sort: str | None = DEFAULT_SORT,
) -> PagedResult:
    """Advanced search: like fetch_patients, but at least one filter is required.

    Raises:
        FHIRError: VALIDATION when every filter is blank, otherwise as
            fetch_patients.
    """
    if filters.is_empty():
        raise FHIRError(
            ErrorKind.VALIDATION,
            "Please provide at least one search parameter",
        )
    return await fetch_patients(
        client,
        page_size=page_size,
        page_number=page_number,
        sort=sort,
        filters=filters,
    )


async def fetch_patient(client: FHIRClient, patient_id: str) -> dict[str, Any]:
    """Read one patient.

    Raises:
        FHIRError: NOT_FOUND when the server has no such patient.
    """
    return await client.get(f"/Patient/{patient_id}")


async def create_patient(
    client: FHIRClient,
    form: PatientForm | dict[str, Any],
    profile_url: str = PATIENT_PROFILE_URL,
) -> dict[str, Any]:
    """Validate the form, then POST the resulting Patient.

    Validation happens first, so invalid input never reaches the network.

    Raises:
        FHIRError: VALIDATION for bad input, TRANSPORT if the server rejects
            the resource.
    """
    if not isinstance(form, PatientForm):
        form = validate_patient_form(form)
    created = await client.post("/Patient", form.to_resource(profile_url))
    logger.info("Created patient %s on %s", created.get("id"), client.base_url)
    return created
