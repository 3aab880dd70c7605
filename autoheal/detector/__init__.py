"""Incident detection.

Submodules:
    cooldown   -- per ``resource:category`` suppression windows.
    thresholds -- warning/critical threshold and condition tables.
    detector   -- snapshot evaluation and the shared incident intake path.
"""

from autoheal.detector.cooldown import CooldownTracker
from autoheal.detector.detector import CLUSTER_RESOURCE, Detector, format_title

__all__ = ["CLUSTER_RESOURCE", "CooldownTracker", "Detector", "format_title"]
