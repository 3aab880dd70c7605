"""Metric snapshot sources consumed by the detection loop.

Submodules:
    base       -- SignalSource protocol and StaticSignalSource.
    prometheus -- PrometheusSignalSource (instant PromQL queries over httpx).
"""

from autoheal.signals.base import SignalSource, StaticSignalSource
from autoheal.signals.prometheus import PrometheusSignalSource

__all__ = ["PrometheusSignalSource", "SignalSource", "StaticSignalSource"]
