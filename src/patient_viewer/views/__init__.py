"""Stateful views.

Each view owns the state one screen needs (what is loaded, what is
selected, what went wrong) and exposes async actions that fetch through the
services layer. Rendering is left to the UI; these classes hold no widgets.

- base.py:           Shared status values and request sequencing
- patient_list.py:   Paged, sortable, filterable patient table
- patient_detail.py: One patient with encounters and conditions
- encounters.py:     Lazily expanded encounter rows
- dashboard.py:      Gender/age dashboard and condition statistics
- create_patient.py: Patient creation form
"""
