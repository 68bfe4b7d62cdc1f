"""Single patient page: demographics, latest encounters and conditions."""

from __future__ import annotations

import asyncio
from typing import Any

from patient_viewer.config import LATEST_ENCOUNTER_COUNT
from patient_viewer.fhir_client import FHIRClient
from patient_viewer.formatting import group_conditions, patient_name
from patient_viewer.services.conditions import fetch_conditions_for_patient
from patient_viewer.services.encounters import fetch_latest_encounters
from patient_viewer.services.patients import fetch_patient
from patient_viewer.views.base import LoadingView
from patient_viewer.views.encounters import EncounterConditions


class PatientDetailView(LoadingView):
    """Loads one patient and their clinical history.

    A 404 for the patient puts the view in NOT_FOUND (the patient may live
    on another server); any other failure is ERROR with retry.
    """

    tracks_not_found = True

    def __init__(self, client: FHIRClient, patient_id: str) -> None:
        super().__init__(client)
        self.patient_id = patient_id
        self.patient: dict[str, Any] | None = None
        self.encounters: list[dict[str, Any]] = []
        self.conditions: list[dict[str, Any]] = []
        self.expansion = EncounterConditions(client)

    @property
    def name(self) -> str:
        return patient_name(self.patient, with_prefix=True) if self.patient else "Unknown"

    @property
    def has_no_records(self) -> bool:
        return not self.encounters and not self.conditions

    @property
    def condition_groups(self) -> dict[str, list[dict[str, Any]]]:
        return group_conditions(self.conditions)

    async def load(self) -> None:
        client = self.client
        patient_id = self.patient_id

        async def fetch() -> tuple[dict[str, Any], list[dict[str, Any]], list[dict[str, Any]]]:
            patient = await fetch_patient(client, patient_id)
            encounters, conditions = await asyncio.gather(
                fetch_latest_encounters(client, patient_id, LATEST_ENCOUNTER_COUNT),
                fetch_conditions_for_patient(client, patient_id),
            )
            return patient, encounters, conditions

        def apply(value: tuple[dict[str, Any], list[dict[str, Any]], list[dict[str, Any]]]) -> None:
            self.patient, self.encounters, self.conditions = value

        await self._run(fetch, apply)

    async def change_server(self, client: FHIRClient) -> None:
        self.expansion = EncounterConditions(client)
        await super().change_server(client)
