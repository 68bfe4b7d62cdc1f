"""FHIR data-access functions.

Each module wraps the REST calls for one resource type. Every function takes
the FHIRClient to use as its first argument, so the active server is always
explicit.

- patients.py:      Count, page, search, read and create patients
- encounters.py:    A patient's latest encounters
- conditions.py:    Conditions by encounter, by patient, and server-wide
- organizations.py: Organizations for the managing-organization picker
"""
