"""Expandable encounter rows.

Conditions for an encounter are fetched the first time its row is opened
and kept for as long as the view lives, so collapsing and re-opening a row
does not hit the server again. Loading is tracked per row, so several rows
can be loading at once.
"""

from __future__ import annotations

import logging
from typing import Any

from patient_viewer.fhir_client import FHIRClient, FHIRError
from patient_viewer.services.conditions import fetch_conditions_for_encounter

logger = logging.getLogger(__name__)


class EncounterConditions:
    def __init__(self, client: FHIRClient) -> None:
        self.client = client
        self.expanded: str | None = None
        self.conditions: dict[str, list[dict[str, Any]]] = {}
        self.errors: dict[str, FHIRError] = {}
        self._loading: set[str] = set()

    def is_expanded(self, encounter_id: str) -> bool:
        return self.expanded == encounter_id

    def is_loading(self, encounter_id: str) -> bool:
        return encounter_id in self._loading

    def conditions_for(self, encounter_id: str) -> list[dict[str, Any]] | None:
        """Cached conditions, or None if not fetched yet."""
        return self.conditions.get(encounter_id)

    async def toggle(self, encounter_id: str) -> None:
        """Open the row (fetching on first open) or close it if already open."""
        if self.expanded == encounter_id:
            self.expanded = None
            return

        self.expanded = encounter_id
        if encounter_id in self.conditions or encounter_id in self._loading:
            return

        self._loading.add(encounter_id)
        self.errors.pop(encounter_id, None)
        try:
            self.conditions[encounter_id] = await fetch_conditions_for_encounter(
                self.client, encounter_id
            )
        except FHIRError as exc:
            # Not cached: the next open tries again.
            logger.warning("Conditions for encounter %s failed: %s", encounter_id, exc)
            self.errors[encounter_id] = exc
        finally:
            self._loading.discard(encounter_id)
