"""FHIR Patient Viewer.

Browse, search and create patient records on an external FHIR server, with
paging and total-count repair for servers that report inconsistent totals.
"""
