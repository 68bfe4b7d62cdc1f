"""Display helpers for FHIR resources.

Resources arrive as plain JSON dicts and any field may be missing, so each
helper falls back to a readable placeholder instead of raising.
"""

from __future__ import annotations

from typing import Any


def _first(items: Any) -> dict[str, Any]:
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0]
    return {}


def patient_name(patient: dict[str, Any], with_prefix: bool = False) -> str:
    """First, middle (second given name) and family name of the first HumanName."""
    name = _first(patient.get("name"))
    if not name:
        return "Unknown"
    given = name.get("given") or []
    parts = []
    if with_prefix and name.get("prefix"):
        parts.append(" ".join(name["prefix"]))
    parts.extend(given[:2])
    parts.append(name.get("family") or "")
    return " ".join(p for p in parts if p) or "Unknown"


def matches_name(patient: dict[str, Any], term: str) -> bool:
    """Case-insensitive match of term against the patient's name parts."""
    if not term:
        return True
    term = term.lower()
    name = _first(patient.get("name"))
    if not name:
        return False
    if term in (name.get("family") or "").lower():
        return True
    given = [g for g in name.get("given") or [] if g]
    if any(term in g.lower() for g in given):
        return True
    if term in " ".join(given).lower():
        return True
    return term in patient_name(patient).lower()


def format_address(address: dict[str, Any]) -> str:
    parts = list(address.get("line") or [])
    parts.append(address.get("city") or "")
    state_zip = " ".join(
        p for p in (address.get("state"), address.get("postalCode")) if p
    )
    parts.append(state_zip)
    parts.append(address.get("country") or "")
    return ", ".join(p for p in parts if p)


def format_identifier(identifier: dict[str, Any]) -> str:
    system = identifier.get("system")
    value = identifier.get("value") or ""
    return f"{system}: {value}" if system else value


def coding_display(concept: Any, default: str = "Unknown") -> str:
    """Display text of a CodeableConcept (first coding, then text)."""
    if not isinstance(concept, dict):
        return default
    coding = _first(concept.get("coding"))
    return coding.get("display") or concept.get("text") or default


def coding_code(concept: Any) -> str | None:
    if not isinstance(concept, dict):
        return None
    return _first(concept.get("coding")).get("code")


def clinical_status(condition: dict[str, Any]) -> str:
    return coding_code(condition.get("clinicalStatus")) or "unknown"


def condition_name(condition: dict[str, Any]) -> str:
    return coding_display(condition.get("code"), "Unknown condition")


def encounter_date(encounter: dict[str, Any]) -> str | None:
    period = encounter.get("period") or {}
    return period.get("start") or period.get("end") or encounter.get("date")


def encounter_summary(encounter: dict[str, Any]) -> dict[str, Any]:
    """The fields an encounter row shows."""
    status = encounter.get("status")
    location = _first(encounter.get("location")).get("location") or {}
    practitioner = next(
        (
            p["individual"].get("display")
            for p in encounter.get("participant") or []
            if (p.get("individual") or {}).get("reference", "").startswith("Practitioner/")
        ),
        None,
    )
    return {
        "id": encounter.get("id"),
        "date": encounter_date(encounter) or "Unknown date",
        "status": status.capitalize() if status else "Unknown",
        "type": coding_display(_first(encounter.get("type")), "Unknown type"),
        "location": location.get("display") or "Unknown location",
        "practitioner": practitioner or "Unknown provider",
        "reasons": [
            coding_display(reason, "Unknown reason")
            for reason in encounter.get("reasonCode") or []
        ],
    }


def group_conditions(
    conditions: list[dict[str, Any]],
) -> dict[str, list[dict[str, Any]]]:
    """Split conditions into active, resolved and everything else."""
    groups: dict[str, list[dict[str, Any]]] = {"active": [], "resolved": [], "other": []}
    for condition in conditions:
        status = clinical_status(condition)
        groups[status if status in ("active", "resolved") else "other"].append(condition)
    return groups
