"""Condition lookups.

API endpoints used:
- GET /Condition?encounter={id}                      — Conditions of a visit
- GET /Condition?patient={id}&_sort=-recorded-date   — A patient's conditions
- GET /Condition?_count={n}                          — Sample for statistics
"""

from __future__ import annotations

import logging
from typing import Any

from patient_viewer.fhir_client import FHIRClient, FHIRError, bundle_resources

logger = logging.getLogger(__name__)

STATISTICS_SAMPLE_SIZE = 100


async def fetch_conditions_for_encounter(
    client: FHIRClient,
    encounter_id: str,
) -> list[dict[str, Any]]:
    """Conditions recorded during one encounter.

    Raises:
        FHIRError: On any failure, including 404.
    """
    data = await client.get("/Condition", params={"encounter": encounter_id})
    return bundle_resources(data)


async def fetch_conditions_for_patient(
    client: FHIRClient,
    patient_id: str,
) -> list[dict[str, Any]]:
    """All of a patient's conditions, most recently recorded first.

    A 404 is read as "no conditions".

    Raises:
        FHIRError: For any failure other than NOT_FOUND.
    """
    params = {"patient": patient_id, "_sort": "-recorded-date"}
    try:
        data = await client.get("/Condition", params=params)
    except FHIRError as e:
        if e.is_not_found:
            logger.info("No conditions for patient %s (404)", patient_id)
            return []
        raise
    return bundle_resources(data)


async def fetch_all_conditions(
    client: FHIRClient,
    count: int = STATISTICS_SAMPLE_SIZE,
) -> list[dict[str, Any]]:
    """A server-wide sample of conditions for the statistics page."""
    data = await client.get("/Condition", params={"_count": count})
    return bundle_resources(data)
