"""SLO burn driver classification.

Submodules:
    signals -- DriverSignals and extraction from an incident's metrics snapshot.
    driver  -- sub-scores, composite decision, evidence and DriverClassifier.
"""

from autoheal.classifier.driver import DriverClassifier, build_evidence, determine_driver
from autoheal.classifier.signals import DriverSignals, signals_from_incident

__all__ = [
    "DriverClassifier",
    "DriverSignals",
    "build_evidence",
    "determine_driver",
    "signals_from_incident",
]
