"""Dashboard figures computed from lists of patients and conditions."""

from __future__ import annotations

import datetime as dt
from collections import Counter
from typing import Any

from patient_viewer.formatting import clinical_status, coding_code, coding_display

GENDERS = ("male", "female", "other", "unknown")
AGE_BUCKETS = ("0-17", "18-34", "35-50", "51-65", "66+", "Unknown")
CLINICAL_STATUSES = ("active", "resolved", "remission", "recurrence", "inactive", "unknown")


def percentage(part: int, whole: int) -> float:
    return round(part / whole * 100, 1) if whole else 0.0


def gender_counts(patients: list[dict[str, Any]]) -> dict[str, int]:
    """Patients per gender. Missing gender is unknown, anything unrecognized is other."""
    counts = dict.fromkeys(GENDERS, 0)
    for patient in patients:
        gender = (patient.get("gender") or "unknown").lower()
        counts[gender if gender in counts else "other"] += 1
    return counts


def gender_distribution(patients: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Non-empty gender buckets with their share of all patients."""
    counts = gender_counts(patients)
    total = len(patients)
    return [
        {"name": gender.capitalize(), "value": value, "percent": percentage(value, total)}
        for gender, value in counts.items()
        if value > 0
    ]


def age_on(birth_date: dt.date, today: dt.date) -> int:
    age = today.year - birth_date.year
    if (today.month, today.day) < (birth_date.month, birth_date.day):
        age -= 1
    return age


def age_bucket(age: int) -> str:
    if age < 18:
        return "0-17"
    if age < 35:
        return "18-34"
    if age < 51:
        return "35-50"
    if age < 66:
        return "51-65"
    return "66+"


def age_distribution(
    patients: list[dict[str, Any]],
    today: dt.date | None = None,
) -> dict[str, int]:
    """Patients per age bucket. Missing or unreadable birth dates are Unknown."""
    today = today or dt.date.today()
    buckets = dict.fromkeys(AGE_BUCKETS, 0)
    for patient in patients:
        raw = patient.get("birthDate")
        try:
            born = dt.date.fromisoformat(raw[:10]) if raw else None
        except ValueError:
            born = None
        if born is None:
            buckets["Unknown"] += 1
        else:
            buckets[age_bucket(age_on(born, today))] += 1
    return buckets


def top_conditions(
    conditions: list[dict[str, Any]],
    limit: int = 10,
) -> list[dict[str, Any]]:
    """Most frequent (code, display) pairs, most common first."""
    counts = Counter(
        (coding_code(c.get("code")) or "unknown", coding_display(c.get("code")))
        for c in conditions
    )
    return [
        {"code": code, "name": name, "count": count}
        for (code, name), count in counts.most_common(limit)
    ]


def clinical_status_distribution(conditions: list[dict[str, Any]]) -> dict[str, int]:
    """Non-empty clinical status buckets. Unrecognized statuses count as unknown."""
    counts = dict.fromkeys(CLINICAL_STATUSES, 0)
    for condition in conditions:
        status = clinical_status(condition)
        counts[status if status in counts else "unknown"] += 1
    return {status: value for status, value in counts.items() if value > 0}


def condition_summary(conditions: list[dict[str, Any]]) -> dict[str, Any]:
    total = len(conditions)
    statuses = [clinical_status(c) for c in conditions]
    active = statuses.count("active")
    resolved = statuses.count("resolved")
    return {
        "total": total,
        "active": active,
        "resolved": resolved,
        "active_percent": percentage(active, total),
        "resolved_percent": percentage(resolved, total),
        "unique_codes": len({coding_code(c.get("code")) for c in conditions}),
    }
