"""Organizations for the managing-organization picker.

API endpoints used:
- GET /Organization — Organizations known to the server
"""

from __future__ import annotations

from typing import Any

from patient_viewer.fhir_client import FHIRClient, bundle_resources


async def fetch_organizations(client: FHIRClient) -> list[dict[str, Any]]:
    """Organizations a new patient can be assigned to."""
    data = await client.get("/Organization")
    return bundle_resources(data)


def filter_organizations(
    organizations: list[dict[str, Any]],
    term: str,
) -> list[dict[str, Any]]:
    """Organizations whose name contains term (case-insensitive)."""
    term = term.strip().lower()
    if not term:
        return list(organizations)
    return [org for org in organizations if term in (org.get("name") or "").lower()]


def organization_label(org: dict[str, Any]) -> str:
    return org.get("name") or org.get("id") or "Unnamed organization"
