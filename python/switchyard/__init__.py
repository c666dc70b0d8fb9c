"""Switchyard: capability-aware routing of completion requests.

Selects providers by weighted scoring, falls back once on failure,
chains requests into workflows and runs bursts under resource-aware
bounded concurrency.
"""

__version__ = "0.1.0"
