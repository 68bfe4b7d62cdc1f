"""Encounter history.

API endpoints used:
- GET /Encounter?patient={id}&_sort=-date&_count={n} — Latest encounters
"""

from __future__ import annotations

import logging
from typing import Any

from patient_viewer.config import LATEST_ENCOUNTER_COUNT
from patient_viewer.fhir_client import FHIRClient, FHIRError, bundle_resources

logger = logging.getLogger(__name__)


async def fetch_latest_encounters(
    client: FHIRClient,
    patient_id: str,
    count: int = LATEST_ENCOUNTER_COUNT,
) -> list[dict[str, Any]]:
    """Most recent encounters for a patient, newest first.

    Encounters are supplementary on the detail page, so a 404 from the
    search endpoint means "no encounters" rather than an error.

    Raises:
        FHIRError: For any failure other than NOT_FOUND.
    """
    params = {"patient": patient_id, "_sort": "-date", "_count": count}
    try:
        data = await client.get("/Encounter", params=params)
    except FHIRError as e:
        if e.is_not_found:
            logger.info("No encounters for patient %s (404)", patient_id)
            return []
        raise
    return bundle_resources(data)
