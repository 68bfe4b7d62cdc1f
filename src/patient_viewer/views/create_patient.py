"""Patient creation form state."""

from __future__ import annotations

import logging
from typing import Any

from patient_viewer.fhir_client import FHIRClient, FHIRError
from patient_viewer.models import validate_patient_form
from patient_viewer.services.organizations import (
    fetch_organizations,
    filter_organizations,
)
from patient_viewer.services.patients import create_patient

logger = logging.getLogger(__name__)


class CreatePatientView:
    """Organizations for the picker, field errors, and the submit outcome.

    The form is validated locally first; when it is invalid, field_errors is
    filled in and nothing is sent.
    """

    def __init__(self, client: FHIRClient) -> None:
        self.client = client
        self.organizations: list[dict[str, Any]] = []
        self.organizations_loading = False
        self.organizations_error: FHIRError | None = None
        self.organization_filter = ""
        self.field_errors: dict[str, str] = {}
        self.submit_error: FHIRError | None = None
        self.submitting = False
        self.created: dict[str, Any] | None = None

    @property
    def filtered_organizations(self) -> list[dict[str, Any]]:
        return filter_organizations(self.organizations, self.organization_filter)

    async def load_organizations(self) -> None:
        self.organizations_loading = True
        self.organizations_error = None
        try:
            self.organizations = await fetch_organizations(self.client)
        except FHIRError as exc:
            logger.warning("Failed to load organizations: %s", exc)
            self.organizations_error = exc
        finally:
            self.organizations_loading = False

    async def submit(self, data: dict[str, Any]) -> dict[str, Any] | None:
        """Validate and create. Returns the created resource, or None."""
        self.field_errors = {}
        self.submit_error = None
        self.created = None

        try:
            form = validate_patient_form(data)
        except FHIRError as exc:
            self.field_errors = exc.field_errors
            return None

        self.submitting = True
        try:
            self.created = await create_patient(self.client, form)
        except FHIRError as exc:
            self.submit_error = exc
            return None
        finally:
            self.submitting = False
        return self.created

    async def change_server(self, client: FHIRClient) -> None:
        self.client = client
        await self.load_organizations()
