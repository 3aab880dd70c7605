"""kube-autoheal: incident lifecycle orchestrator for Kubernetes fleets."""

__version__ = "0.3.0"
