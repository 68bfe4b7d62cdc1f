"""Dashboard views: patient demographics and condition statistics."""

from __future__ import annotations

import datetime as dt
from typing import Any

from patient_viewer.fhir_client import FHIRClient
from patient_viewer.paging import PagedResult
from patient_viewer.services.conditions import fetch_all_conditions
from patient_viewer.services.patients import fetch_patients
from patient_viewer.statistics import (
    age_distribution,
    clinical_status_distribution,
    condition_summary,
    gender_counts,
    gender_distribution,
    percentage,
    top_conditions,
)
from patient_viewer.views.base import LoadingView


class DashboardView(LoadingView):
    """Gender and age breakdown over every patient on the server."""

    def __init__(self, client: FHIRClient) -> None:
        super().__init__(client)
        self.patients: list[dict[str, Any]] = []

    async def load(self) -> None:
        client = self.client

        async def fetch() -> PagedResult:
            # No page size: the count endpoint decides how many to ask for.
            return await fetch_patients(client, page_size=None)

        def apply(result: PagedResult) -> None:
            self.patients = result.resources

        await self._run(fetch, apply)

    @property
    def gender_distribution(self) -> list[dict[str, Any]]:
        return gender_distribution(self.patients)

    @property
    def gender_percentages(self) -> dict[str, float]:
        total = len(self.patients)
        return {g: percentage(n, total) for g, n in gender_counts(self.patients).items()}

    def age_distribution(self, today: dt.date | None = None) -> dict[str, int]:
        return age_distribution(self.patients, today)


class ConditionStatisticsView(LoadingView):
    """Most common conditions and clinical status breakdown."""

    def __init__(self, client: FHIRClient) -> None:
        super().__init__(client)
        self.conditions: list[dict[str, Any]] = []

    async def load(self) -> None:
        client = self.client

        async def fetch() -> list[dict[str, Any]]:
            return await fetch_all_conditions(client)

        def apply(conditions: list[dict[str, Any]]) -> None:
            self.conditions = conditions

        await self._run(fetch, apply)

    @property
    def top_conditions(self) -> list[dict[str, Any]]:
        return top_conditions(self.conditions)

    @property
    def status_distribution(self) -> dict[str, int]:
        return clinical_status_distribution(self.conditions)

    @property
    def summary(self) -> dict[str, Any]:
        return condition_summary(self.conditions)
