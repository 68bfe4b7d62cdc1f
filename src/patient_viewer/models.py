"""Pydantic models for the patient creation form.

The form is validated before anything is sent to the server, so a missing
first name or a malformed birth date is reported next to the field instead
of coming back as a server-side OperationOutcome.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, EmailStr, Field, ValidationError, field_validator

from patient_viewer.config import PATIENT_PROFILE_URL
from patient_viewer.fhir_client import ErrorKind, FHIRError

Gender = Literal["male", "female", "other", "unknown"]


class PatientForm(BaseModel):
    """What the clinician fills in to create a patient."""

    given_name: str = Field(..., min_length=1)
    family_name: str = Field(..., min_length=1)
    gender: Gender
    birth_date: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$")
    phone: str | None = None
    email: EmailStr | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str | None = None
    managing_organization: str = Field(..., min_length=1)

    @field_validator("*", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator(
        "phone", "email", "address", "city", "state", "postal_code", "country",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def to_resource(self, profile_url: str = PATIENT_PROFILE_URL) -> dict[str, Any]:
        """Build the FHIR Patient resource to POST.

        FHIR JSON allows neither nulls nor empty arrays, so blank fields are
        left out entirely.
        """
        resource: dict[str, Any] = {
            "resourceType": "Patient",
            "meta": {"profile": [profile_url]},
            "name": [
                {
                    "use": "official",
                    "family": self.family_name,
                    "given": [self.given_name],
                }
            ],
            "gender": self.gender,
            "birthDate": self.birth_date,
            "managingOrganization": {
                "reference": f"Organization/{self.managing_organization}",
            },
        }

        telecom = []
        if self.phone:
            telecom.append({"system": "phone", "value": self.phone})
        if self.email:
            telecom.append({"system": "email", "value": str(self.email)})
        if telecom:
            resource["telecom"] = telecom

        if self.address:
            address: dict[str, Any] = {"line": [self.address]}
            address.update(
                (key, value)
                for key, value in (
                    ("city", self.city),
                    ("state", self.state),
                    ("postalCode", self.postal_code),
                    ("country", self.country),
                )
                if value
            )
            resource["address"] = [address]

        return resource


# Messages shown next to each field, in place of pydantic's generic text.
FIELD_MESSAGES = {
    "given_name": "First name is required",
    "family_name": "Last name is required",
    "birth_date": "Date must be in YYYY-MM-DD format",
    "managing_organization": "Managing organization is required",
    "email": "Invalid email address",
    "gender": "Select male, female, other or unknown",
}


def field_errors(exc: ValidationError) -> dict[str, str]:
    """Flatten a ValidationError into {field: message}."""
    errors: dict[str, str] = {}
    for err in exc.errors():
        field = str(err["loc"][0]) if err["loc"] else "__root__"
        errors.setdefault(field, FIELD_MESSAGES.get(field, err["msg"]))
    return errors


def validate_patient_form(data: dict[str, Any]) -> PatientForm:
    """Validate raw form input.

    Raises:
        FHIRError: VALIDATION with per-field messages.
    """
    try:
        return PatientForm.model_validate(data)
    except ValidationError as exc:
        errors = field_errors(exc)
        raise FHIRError(
            ErrorKind.VALIDATION,
            "Patient form is invalid: " + ", ".join(sorted(errors)),
            field_errors=errors,
        ) from exc
