"""Tests for the view state machines.

Service functions are patched with AsyncMock where only the view logic is
under test; the stale-response tests use real asyncio events to control
the order in which responses arrive.
"""

from __future__ import annotations

import asyncio
import datetime as dt
from typing import Any
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from patient_viewer.fhir_client import ErrorKind, FHIRClient, FHIRError
from patient_viewer.paging import PagedResult
from patient_viewer.query import SearchFilters, SortDirection, SortField
from patient_viewer.views.base import ViewStatus, switch_server
from patient_viewer.views.create_patient import CreatePatientView
from patient_viewer.views.dashboard import ConditionStatisticsView, DashboardView
from patient_viewer.views.encounters import EncounterConditions
from patient_viewer.views.patient_detail import PatientDetailView
from patient_viewer.views.patient_list import PatientListView


def _patient(pid: str, given: list[str], family: str, **extra: Any) -> dict[str, Any]:
    return {"resourceType": "Patient", "id": pid, "name": [{"given": given, "family": family}], **extra}


def _page(
    resources: list[dict[str, Any]],
    total: int,
    page_number: int = 1,
    page_size: int = 25,
) -> PagedResult:
    return PagedResult(
        resources=resources,
        total=total,
        page_size=page_size,
        page_number=page_number,
        total_pages=max(1, -(-total // page_size)),
    )


PATIENTS = [
    _patient("1", ["Ann", "Marie"], "Lee"),
    _patient("2", ["Bob"], "Smith"),
    _patient("3", ["Carla"], "Marino"),
]


# --- Patient list ---


class TestPatientList:
    @pytest.mark.asyncio
    @patch("patient_viewer.views.patient_list.fetch_patients")
    async def test_load_success(self, mock_fetch: AsyncMock) -> None:
        mock_fetch.return_value = _page(PATIENTS, total=60)
        view = PatientListView(client=AsyncMock())

        await view.load()

        assert view.status is ViewStatus.LOADED
        assert view.total == 60
        assert view.total_pages == 3
        assert view.patients == PATIENTS
        kwargs = mock_fetch.call_args.kwargs
        assert kwargs["page_size"] == 25
        assert kwargs["page_number"] == 1
        assert kwargs["sort"] == "-_lastUpdated"

    @pytest.mark.asyncio
    @patch("patient_viewer.views.patient_list.fetch_patients")
    async def test_error_keeps_last_good_selection(self, mock_fetch: AsyncMock) -> None:
        mock_fetch.return_value = _page(PATIENTS, total=60)
        view = PatientListView(client=AsyncMock())
        await view.load()

        mock_fetch.side_effect = FHIRError(ErrorKind.TRANSPORT, "down", 503)
        await view.change_page_size(50)

        assert view.status is ViewStatus.ERROR
        assert view.error is not None and view.error.status_code == 503
        assert view.page_size == 25
        assert view.sort_field is SortField.LAST_UPDATED
        assert view.patients == PATIENTS

        # Retry replays the failed request.
        mock_fetch.side_effect = None
        mock_fetch.return_value = _page(PATIENTS, total=60, page_size=50)
        await view.retry()

        assert view.status is ViewStatus.LOADED
        assert mock_fetch.call_args.kwargs["page_size"] == 50
        assert view.page_size == 50

    @pytest.mark.asyncio
    @patch("patient_viewer.views.patient_list.fetch_patients")
    async def test_toggle_sort(self, mock_fetch: AsyncMock) -> None:
        mock_fetch.return_value = _page(PATIENTS, total=3)
        view = PatientListView(client=AsyncMock())

        await view.toggle_sort(SortField.NAME)
        assert (view.sort_field, view.sort_direction) == (SortField.NAME, SortDirection.ASC)
        assert mock_fetch.call_args.kwargs["sort"] == "family"

        await view.toggle_sort(SortField.NAME)
        assert view.sort_direction is SortDirection.DESC
        assert mock_fetch.call_args.kwargs["sort"] == "-family"

        await view.toggle_sort(SortField.NAME)
        assert view.sort_direction is SortDirection.ASC

        await view.toggle_sort(SortField.GENDER)
        assert (view.sort_field, view.sort_direction) == (SortField.GENDER, SortDirection.ASC)
        assert mock_fetch.call_args.kwargs["page_number"] == 1

    @pytest.mark.asyncio
    @patch("patient_viewer.views.patient_list.fetch_patients")
    async def test_go_to_page_bounds(self, mock_fetch: AsyncMock) -> None:
        mock_fetch.return_value = _page(PATIENTS, total=60)
        view = PatientListView(client=AsyncMock())
        await view.load()
        mock_fetch.reset_mock()

        assert not await view.go_to_page(0)
        assert not await view.go_to_page(4)
        assert not await view.go_to_page(1)
        mock_fetch.assert_not_called()

        mock_fetch.return_value = _page(PATIENTS, total=60, page_number=3)
        assert await view.jump_to_page(" 3 ")
        assert view.page_number == 3
        assert not await view.jump_to_page("abc")

    @pytest.mark.asyncio
    @patch("patient_viewer.views.patient_list.fetch_patients")
    async def test_page_size_change_keeps_first_row_visible(self, mock_fetch: AsyncMock) -> None:
        mock_fetch.return_value = _page(PATIENTS, total=100, page_number=3, page_size=10)
        view = PatientListView(client=AsyncMock(), page_size=10)
        await view.load(page_number=3)

        mock_fetch.return_value = _page(PATIENTS, total=100, page_number=1, page_size=25)
        await view.change_page_size(25)

        assert mock_fetch.call_args.kwargs["page_number"] == 1
        assert mock_fetch.call_args.kwargs["page_size"] == 25

    @pytest.mark.asyncio
    @patch("patient_viewer.views.patient_list.fetch_patients")
    async def test_local_filter_does_not_requery(self, mock_fetch: AsyncMock) -> None:
        mock_fetch.return_value = _page(PATIENTS, total=3)
        view = PatientListView(client=AsyncMock())
        await view.load()

        view.set_filter_text("mari")
        assert [p["id"] for p in view.filtered_patients] == ["1", "3"]

        view.set_filter_text("ann marie")
        assert [p["id"] for p in view.filtered_patients] == ["1"]

        view.set_filter_text("zzz")
        assert view.filtered_patients == []
        assert view.empty_reason == "filtered"

        assert mock_fetch.await_count == 1

    @pytest.mark.asyncio
    @patch("patient_viewer.views.patient_list.fetch_patients")
    async def test_empty_server_reason(self, mock_fetch: AsyncMock) -> None:
        mock_fetch.return_value = _page([], total=0)
        view = PatientListView(client=AsyncMock())
        await view.load()

        assert view.empty_reason == "server"

    @pytest.mark.asyncio
    @patch("patient_viewer.views.patient_list.search_patients")
    @patch("patient_viewer.views.patient_list.fetch_patients")
    async def test_search_mode(self, mock_fetch: AsyncMock, mock_search: AsyncMock) -> None:
        mock_fetch.return_value = _page(PATIENTS, total=3)
        mock_search.return_value = _page(PATIENTS[:1], total=1)
        view = PatientListView(client=AsyncMock())

        await view.search(SearchFilters(family="Lee"))
        assert view.searching
        assert view.total == 1
        assert mock_search.call_args.args[1] == SearchFilters(family="Lee")

        await view.clear_search()
        assert not view.searching
        assert view.total == 3

    @pytest.mark.asyncio
    @patch("patient_viewer.views.patient_list.search_patients")
    async def test_empty_search_rejected(self, mock_search: AsyncMock) -> None:
        view = PatientListView(client=AsyncMock())

        with pytest.raises(FHIRError) as excinfo:
            await view.search(SearchFilters())

        assert excinfo.value.kind is ErrorKind.VALIDATION
        assert not view.searching
        mock_search.assert_not_called()

    @pytest.mark.asyncio
    @patch("patient_viewer.views.patient_list.fetch_patients")
    async def test_stale_response_is_discarded(self, mock_fetch: AsyncMock) -> None:
        """The slower, older request must not overwrite the newer page."""
        release_first = asyncio.Event()

        async def fake_fetch(client: Any, page_size: int, page_number: int, sort: str) -> PagedResult:
            if page_number == 2:
                await release_first.wait()
                return _page([_patient("old", ["Old"], "Page")], total=100, page_number=2)
            return _page([_patient("new", ["New"], "Page")], total=100, page_number=3)

        mock_fetch.side_effect = fake_fetch
        view = PatientListView(client=AsyncMock())
        view.result = _page(PATIENTS, total=100)

        first = asyncio.create_task(view.go_to_page(2))
        await asyncio.sleep(0)
        await view.go_to_page(3)
        release_first.set()
        await first

        assert view.status is ViewStatus.LOADED
        assert view.page_number == 3
        assert [p["id"] for p in view.patients] == ["new"]

    @pytest.mark.asyncio
    @patch("patient_viewer.views.patient_list.fetch_patients")
    async def test_change_server_uses_new_client(self, mock_fetch: AsyncMock) -> None:
        mock_fetch.return_value = _page(PATIENTS, total=3)
        old, new = AsyncMock(), AsyncMock()
        view = PatientListView(client=old)

        await view.change_server(new)

        assert view.client is new
        assert mock_fetch.call_args.args[0] is new

    @pytest.mark.asyncio
    @patch("patient_viewer.views.patient_list.fetch_patients")
    async def test_switch_server_closes_old_client(self, mock_fetch: AsyncMock) -> None:
        mock_fetch.return_value = _page(PATIENTS, total=3)
        old, new = AsyncMock(), AsyncMock()
        views = [PatientListView(client=old), PatientListView(client=old)]

        await switch_server(old, new, views)

        old.close.assert_awaited_once()
        new.close.assert_not_awaited()
        assert all(view.client is new for view in views)

    @pytest.mark.asyncio
    async def test_malformed_entry_does_not_leave_view_loading(self) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"total": 1, "entry": [{"resource": "oops"}]})

        client = FHIRClient(
            "https://fhir.example.org/fhir",
            http=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        view = PatientListView(client=client)

        await view.load()

        assert view.status is ViewStatus.LOADED
        assert view.patients == []
        await client.close()

    @pytest.mark.asyncio
    @patch("patient_viewer.views.patient_list.fetch_patients")
    async def test_unexpected_shape_becomes_error(self, mock_fetch: AsyncMock) -> None:
        async def bad_fetch(*args: Any, **kwargs: Any) -> PagedResult:
            return PagedResult.model_validate({"resources": "oops", "page_size": 25})

        mock_fetch.side_effect = bad_fetch
        view = PatientListView(client=AsyncMock())

        await view.load()

        assert view.status is ViewStatus.ERROR
        assert view.error is not None
        assert view.error.kind is ErrorKind.TRANSPORT


# --- Encounter expansion ---


class TestEncounterConditions:
    @pytest.mark.asyncio
    @patch("patient_viewer.views.encounters.fetch_conditions_for_encounter")
    async def test_conditions_fetched_once(self, mock_fetch: AsyncMock) -> None:
        mock_fetch.return_value = [{"id": "c1"}]
        rows = EncounterConditions(client=AsyncMock())

        for _ in range(3):
            await rows.toggle("e1")  # expand
            assert rows.is_expanded("e1")
            await rows.toggle("e1")  # collapse
            assert not rows.is_expanded("e1")

        assert mock_fetch.await_count == 1
        assert rows.conditions_for("e1") == [{"id": "c1"}]

    @pytest.mark.asyncio
    @patch("patient_viewer.views.encounters.fetch_conditions_for_encounter")
    async def test_rows_load_independently(self, mock_fetch: AsyncMock) -> None:
        gates = {"e1": asyncio.Event(), "e2": asyncio.Event()}

        async def fake_fetch(client: Any, encounter_id: str) -> list[dict[str, Any]]:
            await gates[encounter_id].wait()
            return [{"id": f"c-{encounter_id}"}]

        mock_fetch.side_effect = fake_fetch
        rows = EncounterConditions(client=AsyncMock())

        t1 = asyncio.create_task(rows.toggle("e1"))
        t2 = asyncio.create_task(rows.toggle("e2"))
        await asyncio.sleep(0)
        assert rows.is_loading("e1") and rows.is_loading("e2")

        gates["e2"].set()
        await t2
        assert not rows.is_loading("e2") and rows.is_loading("e1")

        gates["e1"].set()
        await t1
        assert rows.conditions_for("e1") == [{"id": "c-e1"}]
        assert rows.conditions_for("e2") == [{"id": "c-e2"}]

    @pytest.mark.asyncio
    @patch("patient_viewer.views.encounters.fetch_conditions_for_encounter")
    async def test_failed_fetch_retried_on_next_expand(self, mock_fetch: AsyncMock) -> None:
        mock_fetch.side_effect = [FHIRError(ErrorKind.TRANSPORT, "boom", 500), [{"id": "c1"}]]
        rows = EncounterConditions(client=AsyncMock())

        await rows.toggle("e1")
        assert "e1" in rows.errors
        assert rows.conditions_for("e1") is None

        await rows.toggle("e1")
        await rows.toggle("e1")
        assert rows.conditions_for("e1") == [{"id": "c1"}]
        assert "e1" not in rows.errors
        assert mock_fetch.await_count == 2


# --- Patient detail ---


class TestPatientDetail:
    @pytest.mark.asyncio
    @patch("patient_viewer.views.patient_detail.fetch_conditions_for_patient")
    @patch("patient_viewer.views.patient_detail.fetch_latest_encounters")
    @patch("patient_viewer.views.patient_detail.fetch_patient")
    async def test_load(
        self,
        mock_patient: AsyncMock,
        mock_encounters: AsyncMock,
        mock_conditions: AsyncMock,
    ) -> None:
        mock_patient.return_value = _patient("1", ["Ann", "Marie"], "Lee")
        mock_encounters.return_value = [{"id": "e1"}]
        mock_conditions.return_value = [
            {"id": "c1", "clinicalStatus": {"coding": [{"code": "active"}]}},
            {"id": "c2", "clinicalStatus": {"coding": [{"code": "remission"}]}},
        ]
        view = PatientDetailView(client=AsyncMock(), patient_id="1")

        await view.load()

        assert view.status is ViewStatus.LOADED
        assert view.name == "Ann Marie Lee"
        assert not view.has_no_records
        groups = view.condition_groups
        assert [c["id"] for c in groups["active"]] == ["c1"]
        assert [c["id"] for c in groups["other"]] == ["c2"]
        assert mock_encounters.call_args.args[1:] == ("1", 5)

    @pytest.mark.asyncio
    @patch("patient_viewer.views.patient_detail.fetch_patient")
    async def test_not_found(self, mock_patient: AsyncMock) -> None:
        mock_patient.side_effect = FHIRError(ErrorKind.NOT_FOUND, "gone", 404)
        view = PatientDetailView(client=AsyncMock(), patient_id="x")

        await view.load()

        assert view.status is ViewStatus.NOT_FOUND

    @pytest.mark.asyncio
    @patch("patient_viewer.views.patient_detail.fetch_patient")
    async def test_other_error(self, mock_patient: AsyncMock) -> None:
        mock_patient.side_effect = FHIRError(ErrorKind.TRANSPORT, "not found in cache", 500)
        view = PatientDetailView(client=AsyncMock(), patient_id="x")

        await view.load()

        # The message mentions "not found", but the kind decides.
        assert view.status is ViewStatus.ERROR

    @pytest.mark.asyncio
    @patch("patient_viewer.views.patient_detail.fetch_conditions_for_patient")
    @patch("patient_viewer.views.patient_detail.fetch_latest_encounters")
    @patch("patient_viewer.views.patient_detail.fetch_patient")
    async def test_no_records(
        self,
        mock_patient: AsyncMock,
        mock_encounters: AsyncMock,
        mock_conditions: AsyncMock,
    ) -> None:
        mock_patient.return_value = _patient("1", ["Ann"], "Lee")
        mock_encounters.return_value = []
        mock_conditions.return_value = []
        view = PatientDetailView(client=AsyncMock(), patient_id="1")

        await view.load()

        assert view.has_no_records


# --- Dashboards ---


class TestDashboard:
    @pytest.mark.asyncio
    @patch("patient_viewer.views.dashboard.fetch_patients")
    async def test_loads_every_patient(self, mock_fetch: AsyncMock) -> None:
        mock_fetch.return_value = _page(
            [
                _patient("1", ["A"], "X", gender="male", birthDate="2010-01-01"),
                _patient("2", ["B"], "Y", gender="female", birthDate="1950-06-30"),
                _patient("3", ["C"], "Z"),
            ],
            total=3,
        )
        view = DashboardView(client=AsyncMock())

        await view.load()

        assert mock_fetch.call_args.kwargs["page_size"] is None
        assert view.status is ViewStatus.LOADED
        assert [row["name"] for row in view.gender_distribution] == ["Male", "Female", "Unknown"]
        ages = view.age_distribution(today=dt.date(2024, 6, 1))
        assert ages["0-17"] == 1
        assert ages["66+"] == 1
        assert ages["Unknown"] == 1

    @pytest.mark.asyncio
    @patch("patient_viewer.views.dashboard.fetch_patients")
    async def test_error_then_retry(self, mock_fetch: AsyncMock) -> None:
        mock_fetch.side_effect = [FHIRError(ErrorKind.TRANSPORT, "down", 502), _page([], total=0)]
        view = DashboardView(client=AsyncMock())

        await view.load()
        assert view.status is ViewStatus.ERROR

        await view.retry()
        assert view.status is ViewStatus.LOADED

    @pytest.mark.asyncio
    @patch("patient_viewer.views.dashboard.fetch_all_conditions")
    async def test_condition_statistics(self, mock_fetch: AsyncMock) -> None:
        mock_fetch.return_value = [
            {"code": {"coding": [{"code": "44054006", "display": "Diabetes"}]},
             "clinicalStatus": {"coding": [{"code": "active"}]}},
            {"code": {"coding": [{"code": "44054006", "display": "Diabetes"}]},
             "clinicalStatus": {"coding": [{"code": "resolved"}]}},
            {"code": {"text": "Headache"}},
        ]
        view = ConditionStatisticsView(client=AsyncMock())

        await view.load()

        assert view.top_conditions[0] == {"code": "44054006", "name": "Diabetes", "count": 2}
        assert view.status_distribution == {"active": 1, "resolved": 1, "unknown": 1}
        assert view.summary["unique_codes"] == 2


# --- Create patient ---


class TestCreatePatient:
    VALID = {
        "given_name": "Ann",
        "family_name": "Lee",
        "gender": "female",
        "birth_date": "1990-04-01",
        "managing_organization": "org-1",
    }

    @pytest.mark.asyncio
    @patch("patient_viewer.views.create_patient.create_patient")
    async def test_invalid_form_sets_field_errors_without_request(
        self, mock_create: AsyncMock
    ) -> None:
        view = CreatePatientView(client=AsyncMock())

        result = await view.submit({**self.VALID, "given_name": "", "birth_date": "04/01/1990"})

        assert result is None
        assert view.field_errors["given_name"] == "First name is required"
        assert view.field_errors["birth_date"] == "Date must be in YYYY-MM-DD format"
        mock_create.assert_not_called()

    @pytest.mark.asyncio
    @patch("patient_viewer.views.create_patient.create_patient")
    async def test_submit_success(self, mock_create: AsyncMock) -> None:
        mock_create.return_value = {"resourceType": "Patient", "id": "new-1"}
        view = CreatePatientView(client=AsyncMock())

        result = await view.submit(self.VALID)

        assert result == {"resourceType": "Patient", "id": "new-1"}
        assert view.field_errors == {}
        assert view.submit_error is None

    @pytest.mark.asyncio
    @patch("patient_viewer.views.create_patient.create_patient")
    async def test_submit_server_error(self, mock_create: AsyncMock) -> None:
        mock_create.side_effect = FHIRError(ErrorKind.TRANSPORT, "rejected", 422)
        view = CreatePatientView(client=AsyncMock())

        assert await view.submit(self.VALID) is None
        assert view.submit_error is not None
        assert not view.submitting

    @pytest.mark.asyncio
    @patch("patient_viewer.views.create_patient.fetch_organizations")
    async def test_organizations(self, mock_fetch: AsyncMock) -> None:
        mock_fetch.return_value = [
            {"id": "o1", "name": "General Hospital"},
            {"id": "o2", "name": "Eastside Clinic"},
        ]
        view = CreatePatientView(client=AsyncMock())

        await view.load_organizations()
        view.organization_filter = "hosp"

        assert [o["id"] for o in view.filtered_organizations] == ["o1"]
        assert not view.organizations_loading
