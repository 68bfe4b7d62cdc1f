"""Configuration for the patient viewer.

Loads settings from environment variables (via a .env file or the system
environment). Every setting has a default so the package can be imported
without a .env file, which is what the test suite relies on.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file if it exists (it won't exist in CI or Docker — that's fine)
_env_path = Path(__file__).resolve().parent.parent.parent / ".env"
load_dotenv(_env_path)

# --- FHIR servers ---
# The fixed set of servers the user can pick from. The key is the label
# shown in the UI, the value is the FHIR base URL.
FHIR_SERVERS: dict[str, str] = {
    "FHIRLAB": "https://cdr.fhirlab.net/fhir",
    "UPMSILAB": "https://cdr.upmsilab.org/fhir",
}

# Server used when nothing has been selected yet (or the saved selection
# is no longer one of FHIR_SERVERS).
FHIR_SERVER_URL: str = os.getenv("FHIR_SERVER_URL", FHIR_SERVERS["FHIRLAB"])

# Seconds before an HTTP request to the FHIR server gives up.
FHIR_TIMEOUT_SECONDS: float = float(os.getenv("FHIR_TIMEOUT_SECONDS", "30"))

# --- Paging ---
DEFAULT_PAGE_SIZE: int = int(os.getenv("DEFAULT_PAGE_SIZE", "25"))
PAGE_SIZE_OPTIONS: tuple[int, ...] = (10, 25, 50, 100)

# How many encounters the patient detail page shows.
LATEST_ENCOUNTER_COUNT: int = 5

# --- Patient creation ---
# Profile the target servers validate new patients against. It requires at
# least one given name and a managing organization.
PATIENT_PROFILE_URL: str = os.getenv(
    "PATIENT_PROFILE_URL",
    "http://fhir.local/fhir/StructureDefinition/PatientProfile2",
)

# --- Local settings ---
# Where the selected server is remembered between sessions.
SETTINGS_PATH: Path = Path(
    os.getenv("PATIENT_VIEWER_SETTINGS", str(Path.home() / ".patient_viewer.json"))
)

# --- Logging ---
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
