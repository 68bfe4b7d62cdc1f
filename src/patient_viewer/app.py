"""FastAPI server — a JSON facade over the FHIR data-access layer.

Exposes the same operations the UI uses, with paging and count
reconciliation already applied:

- GET  /health                       — Simple check that the server is running
- GET  /servers                      — Configured FHIR servers
- GET  /patients                     — One page of patients
- POST /patients/search              — One page of advanced-search results
- GET  /patients/{id}                — One patient
- GET  /patients/{id}/encounters     — Latest encounters (404 → [])
- GET  /patients/{id}/conditions     — Patient conditions (404 → [])
- GET  /encounters/{id}/conditions   — Conditions of one encounter
- GET  /organizations                — Organizations
- POST /patients                     — Create a patient

Every endpoint takes an optional ``server`` query parameter naming one of
the configured servers; the request is sent there and nowhere else.

Run locally with:
    uvicorn patient_viewer.app:app --reload
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from patient_viewer.config import (
    DEFAULT_PAGE_SIZE,
    FHIR_SERVER_URL,
    FHIR_SERVERS,
    LATEST_ENCOUNTER_COUNT,
    LOG_LEVEL,
)
from patient_viewer.fhir_client import ErrorKind, FHIRClient, FHIRError
from patient_viewer.paging import PagedResult
from patient_viewer.query import SearchFilters, SortDirection, SortField, sort_param
from patient_viewer.services.conditions import (
    fetch_conditions_for_encounter,
    fetch_conditions_for_patient,
)
from patient_viewer.services.encounters import fetch_latest_encounters
from patient_viewer.services.organizations import fetch_organizations
from patient_viewer.services.patients import (
    create_patient,
    fetch_patient,
    fetch_patients,
    search_patients,
)

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(
    title="FHIR Patient Viewer",
    description="Browse, search and create patients on a FHIR server",
    version="0.1.0",
)

# HTTP status returned to our clients for each failure kind.
ERROR_STATUS = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.TRANSPORT: 502,
    ErrorKind.VALIDATION: 422,
}


@app.exception_handler(FHIRError)
async def fhir_error_handler(request: Request, exc: FHIRError) -> JSONResponse:
    """Turn a FHIRError into a JSON error carrying its kind."""
    body: dict[str, Any] = {"kind": exc.kind.value, "detail": exc.detail}
    if exc.field_errors:
        body["field_errors"] = exc.field_errors
    if exc.status_code:
        body["upstream_status"] = exc.status_code
    return JSONResponse(status_code=ERROR_STATUS[exc.kind], content=body)


async def get_fhir_client(
    server: str = Query(FHIR_SERVER_URL, description="FHIR base URL"),
) -> AsyncIterator[FHIRClient]:
    """One client per request, bound to the requested (configured) server."""
    if server not in FHIR_SERVERS.values():
        raise HTTPException(status_code=400, detail=f"Unknown FHIR server: {server}")
    async with FHIRClient(server) as client:
        yield client


class ServerInfo(BaseModel):
    label: str
    url: str
    default: bool


class SearchRequest(BaseModel):
    """Body of POST /patients/search."""

    filters: SearchFilters
    page_size: int = DEFAULT_PAGE_SIZE
    page_number: int = 1
    sort_field: SortField = SortField.LAST_UPDATED
    sort_direction: SortDirection = SortDirection.DESC


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint. Returns 200 if the server is running."""
    return {"status": "ok"}


@app.get("/servers", response_model=list[ServerInfo])
async def servers() -> list[ServerInfo]:
    return [
        ServerInfo(label=label, url=url, default=url == FHIR_SERVER_URL)
        for label, url in FHIR_SERVERS.items()
    ]


@app.get("/patients", response_model=PagedResult)
async def list_patients(
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    page_number: int = Query(1, ge=1),
    sort_field: SortField = SortField.LAST_UPDATED,
    sort_direction: SortDirection = SortDirection.DESC,
    client: FHIRClient = Depends(get_fhir_client),
) -> PagedResult:
    return await fetch_patients(
        client,
        page_size=page_size,
        page_number=page_number,
        sort=sort_param(sort_field, sort_direction),
    )


@app.post("/patients/search", response_model=PagedResult)
async def search(
    request: SearchRequest,
    client: FHIRClient = Depends(get_fhir_client),
) -> PagedResult:
    return await search_patients(
        client,
        request.filters,
        page_size=request.page_size,
        page_number=request.page_number,
        sort=sort_param(request.sort_field, request.sort_direction),
    )


@app.get("/patients/{patient_id}")
async def get_patient(
    patient_id: str,
    client: FHIRClient = Depends(get_fhir_client),
) -> dict[str, Any]:
    return await fetch_patient(client, patient_id)


@app.get("/patients/{patient_id}/encounters")
async def patient_encounters(
    patient_id: str,
    count: int = Query(LATEST_ENCOUNTER_COUNT, ge=1),
    client: FHIRClient = Depends(get_fhir_client),
) -> list[dict[str, Any]]:
    return await fetch_latest_encounters(client, patient_id, count)


@app.get("/patients/{patient_id}/conditions")
async def patient_conditions(
    patient_id: str,
    client: FHIRClient = Depends(get_fhir_client),
) -> list[dict[str, Any]]:
    return await fetch_conditions_for_patient(client, patient_id)


@app.get("/encounters/{encounter_id}/conditions")
async def encounter_conditions(
    encounter_id: str,
    client: FHIRClient = Depends(get_fhir_client),
) -> list[dict[str, Any]]:
    return await fetch_conditions_for_encounter(client, encounter_id)


@app.get("/organizations")
async def organizations(
    client: FHIRClient = Depends(get_fhir_client),
) -> list[dict[str, Any]]:
    return await fetch_organizations(client)


@app.post("/patients", status_code=201)
async def new_patient(
    form: dict[str, Any],
    client: FHIRClient = Depends(get_fhir_client),
) -> dict[str, Any]:
    """Create a patient from raw form fields.

    The form is validated here (422 with per-field messages) before the
    server is contacted.
    """
    return await create_patient(client, form)
