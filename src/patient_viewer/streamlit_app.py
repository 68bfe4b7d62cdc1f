"""Streamlit front-end for the patient viewer.

Streamlit re-runs this whole script on every interaction. The view objects
(patient list, detail page, dashboard, create form) live in
st.session_state so their state survives reruns, and every async action is
run to completion on one event loop that is also kept in session state.

Run locally with:
    streamlit run src/patient_viewer/streamlit_app.py
"""

import asyncio
import logging

import streamlit as st

from patient_viewer.config import LOG_LEVEL, PAGE_SIZE_OPTIONS
from patient_viewer.fhir_client import FHIRClient, FHIRError
from patient_viewer.formatting import (
    clinical_status,
    condition_name,
    encounter_summary,
    format_address,
    format_identifier,
    patient_name,
)
from patient_viewer.query import SearchFilters, SortField
from patient_viewer.services.organizations import organization_label
from patient_viewer.settings import ServerSettings
from patient_viewer.views.base import ViewStatus, switch_server
from patient_viewer.views.create_patient import CreatePatientView
from patient_viewer.views.dashboard import ConditionStatisticsView, DashboardView
from patient_viewer.views.patient_detail import PatientDetailView
from patient_viewer.views.patient_list import PatientListView

logging.basicConfig(level=LOG_LEVEL)

st.set_page_config(page_title="FHIR Patient Viewer", page_icon="\U0001f3e5", layout="wide")

settings = ServerSettings()

# --- Session state initialization ---

if "loop" not in st.session_state:
    st.session_state.loop = asyncio.new_event_loop()


def run(coro):  # type: ignore[no-untyped-def]
    """Run a coroutine on the session's event loop."""
    return st.session_state.loop.run_until_complete(coro)


if "server_url" not in st.session_state:
    st.session_state.server_url = settings.load()
    st.session_state.client = FHIRClient(st.session_state.server_url)
    st.session_state.list_view = PatientListView(st.session_state.client)
    st.session_state.dashboard = DashboardView(st.session_state.client)
    st.session_state.statistics = ConditionStatisticsView(st.session_state.client)
    st.session_state.create_view = CreatePatientView(st.session_state.client)
    st.session_state.detail = None

list_view: PatientListView = st.session_state.list_view
dashboard: DashboardView = st.session_state.dashboard
statistics: ConditionStatisticsView = st.session_state.statistics
create_view: CreatePatientView = st.session_state.create_view

# --- Server selector ---

labels = list(settings.servers)
current_label = settings.label_for(st.session_state.server_url)
chosen = st.sidebar.selectbox(
    "FHIR server",
    labels,
    index=labels.index(current_label) if current_label in labels else 0,
)
if settings.servers[chosen] != st.session_state.server_url:
    url = settings.servers[chosen]
    settings.save(url)
    st.session_state.server_url = url
    old_client = st.session_state.client
    st.session_state.client = FHIRClient(url)
    st.session_state.detail = None
    run(
        switch_server(
            old_client,
            st.session_state.client,
            (list_view, dashboard, statistics, create_view),
        )
    )
st.sidebar.caption(st.session_state.server_url)


def show_error(error: FHIRError) -> None:
    st.error(str(error))


# --- Patient detail ---


def render_detail(detail: PatientDetailView) -> None:
    if st.button("← Back to patient list"):
        st.session_state.detail = None
        st.rerun()

    if detail.status is ViewStatus.NOT_FOUND:
        st.warning(
            f"Patient {detail.patient_id} was not found. It may exist on a "
            "different FHIR server; try switching servers."
        )
        return
    if detail.status is ViewStatus.ERROR:
        show_error(detail.error)
        if st.button("Retry"):
            run(detail.retry())
            st.rerun()
        return

    patient = detail.patient or {}
    st.header(detail.name)
    st.caption(f"Patient ID: {patient.get('id')}")
    cols = st.columns(2)
    cols[0].write(f"**Gender:** {patient.get('gender', 'Unknown')}")
    cols[0].write(f"**Birth date:** {patient.get('birthDate', 'Unknown')}")
    for identifier in patient.get("identifier") or []:
        cols[0].write(format_identifier(identifier))
    for contact in patient.get("telecom") or []:
        cols[1].write(f"{contact.get('system', '')}: {contact.get('value', '')}")
    for address in patient.get("address") or []:
        cols[1].write(format_address(address))
    st.caption(f"Last updated: {(patient.get('meta') or {}).get('lastUpdated', 'Unknown')}")

    if detail.has_no_records:
        st.info("No encounters or conditions recorded for this patient.")
        return

    tab_encounters, tab_conditions = st.tabs(["Encounters", "Conditions"])
    with tab_encounters:
        expansion = detail.expansion
        for encounter in detail.encounters:
            row = encounter_summary(encounter)
            label = f"{row['date']} | {row['type']} | {row['status']}"
            if st.button(label, key=f"enc-{row['id']}"):
                run(expansion.toggle(row["id"]))
            if expansion.is_expanded(row["id"]):
                st.write(f"Location: {row['location']} | Provider: {row['practitioner']}")
                for reason in row["reasons"]:
                    st.write(f"Reason: {reason}")
                if row["id"] in expansion.errors:
                    show_error(expansion.errors[row["id"]])
                for condition in expansion.conditions_for(row["id"]) or []:
                    st.write(f"- {condition_name(condition)} ({clinical_status(condition)})")
    with tab_conditions:
        for group, conditions in detail.condition_groups.items():
            if conditions:
                st.subheader(group.capitalize())
                for condition in conditions:
                    st.write(
                        f"- {condition_name(condition)} | recorded "
                        f"{condition.get('recordedDate', 'Unknown date')}"
                    )


# --- Patient list ---


def render_list() -> None:
    if list_view.status is ViewStatus.IDLE:
        run(list_view.load())

    with st.expander("Advanced search"):
        with st.form("search"):
            values = {
                field: st.text_input(field.capitalize())
                for field in ("name", "given", "family", "identifier", "birthdate",
                              "phone", "email", "address")
            }
            values["gender"] = st.selectbox("Gender", ["", "male", "female", "other", "unknown"])
            submitted = st.form_submit_button("Search patients")
        if submitted:
            try:
                run(list_view.search(SearchFilters.model_validate(values)))
            except FHIRError as exc:
                show_error(exc)
            except ValueError as exc:
                st.error(f"Invalid search: {exc}")
        if list_view.searching and st.button("Clear search"):
            run(list_view.clear_search())

    list_view.set_filter_text(st.text_input("Filter this page by name"))

    if list_view.status is ViewStatus.ERROR:
        show_error(list_view.error)
        if st.button("Retry"):
            run(list_view.retry())
            st.rerun()

    total = f"{list_view.total} total patients"
    if list_view.total_estimated:
        total += " (estimated)"
    st.caption(total)

    sort_cols = st.columns(len(SortField))
    for col, field in zip(sort_cols, SortField):
        arrow = ""
        if list_view.sort_field == field:
            arrow = " ↑" if list_view.sort_direction.value == "asc" else " ↓"
        if col.button(f"{field.value}{arrow}", key=f"sort-{field.value}"):
            run(list_view.toggle_sort(field))
            st.rerun()

    if list_view.empty_reason == "filtered":
        st.info("No patients on this page match the filter.")
    elif list_view.empty_reason == "server":
        st.info("No patients found on the server.")

    for patient in list_view.filtered_patients:
        cols = st.columns([3, 1, 1, 2, 1])
        cols[0].write(patient_name(patient))
        cols[1].write(patient.get("gender", ""))
        cols[2].write(patient.get("birthDate", ""))
        cols[3].write((patient.get("meta") or {}).get("lastUpdated", ""))
        if cols[4].button("View", key=f"view-{patient.get('id')}"):
            detail = PatientDetailView(st.session_state.client, patient["id"])
            run(detail.load())
            st.session_state.detail = detail
            st.rerun()

    nav = st.columns(3)
    size = nav[0].selectbox(
        "Page size",
        PAGE_SIZE_OPTIONS,
        index=PAGE_SIZE_OPTIONS.index(list_view.page_size)
        if list_view.page_size in PAGE_SIZE_OPTIONS
        else 0,
    )
    if size != list_view.page_size:
        run(list_view.change_page_size(size))
        st.rerun()
    page = nav[1].selectbox(
        f"Page (of {list_view.total_pages})",
        list(range(1, list_view.total_pages + 1)),
        index=list_view.page_number - 1,
    )
    if page != list_view.page_number:
        run(list_view.go_to_page(page))
        st.rerun()
    if nav[2].button("Refresh"):
        run(list_view.retry())
        st.rerun()


# --- Create patient ---


def render_create() -> None:
    if not create_view.organizations and not create_view.organizations_loading:
        run(create_view.load_organizations())
    if create_view.organizations_error:
        show_error(create_view.organizations_error)

    with st.form("create"):
        data = {
            "given_name": st.text_input("First name*"),
            "family_name": st.text_input("Last name*"),
            "gender": st.selectbox("Gender", ["", "male", "female", "other", "unknown"]),
            "birth_date": st.text_input("Birth date* (YYYY-MM-DD)"),
            "phone": st.text_input("Phone"),
            "email": st.text_input("Email"),
            "address": st.text_input("Address"),
            "city": st.text_input("City"),
            "state": st.text_input("State"),
            "postal_code": st.text_input("Postal code"),
            "country": st.text_input("Country"),
        }
        create_view.organization_filter = st.text_input("Search organizations")
        orgs = create_view.filtered_organizations
        choice = st.selectbox(
            "Managing organization*",
            [None] + orgs,
            format_func=lambda org: "Select an organization" if org is None else organization_label(org),
        )
        data["managing_organization"] = (choice or {}).get("id", "")
        submitted = st.form_submit_button("Create patient")

    if submitted:
        created = run(create_view.submit(data))
        if created:
            st.success(f"Patient created with ID {created.get('id')}")
    for field, message in create_view.field_errors.items():
        st.error(f"{field}: {message}")
    if create_view.submit_error:
        show_error(create_view.submit_error)


# --- Dashboard ---


def render_dashboard() -> None:
    if dashboard.status is ViewStatus.IDLE:
        run(dashboard.load())
    if statistics.status is ViewStatus.IDLE:
        run(statistics.load())

    for view in (dashboard, statistics):
        if view.status is ViewStatus.ERROR:
            show_error(view.error)
            if st.button("Retry", key=f"retry-{type(view).__name__}"):
                run(view.retry())
                st.rerun()

    st.subheader(f"{len(dashboard.patients)} patients")
    st.bar_chart({row["name"]: row["value"] for row in dashboard.gender_distribution})
    st.bar_chart(dashboard.age_distribution())

    summary = statistics.summary
    cols = st.columns(3)
    cols[0].metric("Conditions", summary["total"])
    cols[1].metric("Active", f"{summary['active_percent']}%")
    cols[2].metric("Resolved", f"{summary['resolved_percent']}%")
    st.bar_chart({row["name"]: row["count"] for row in statistics.top_conditions})
    st.write(statistics.status_distribution)


# --- Page layout ---

st.title("FHIR Patient Viewer")

if st.session_state.detail is not None:
    render_detail(st.session_state.detail)
else:
    tab_list, tab_create, tab_dashboard = st.tabs(["Patients", "Create patient", "Dashboard"])
    with tab_list:
        render_list()
    with tab_create:
        render_create()
    with tab_dashboard:
        render_dashboard()
