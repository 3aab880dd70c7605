"""Prometheus-backed SignalSource.

Runs a fixed set of instant PromQL queries and folds the results into a
ClusterSnapshot. Any transport error, non-2xx response or non-success
query status aborts the whole collection with SignalSourceError, so the
detector never evaluates a half-populated snapshot.
"""

from __future__ import annotations

import asyncio
import math
from typing import Any

import httpx

from autoheal.errors import SignalSourceError
from autoheal.models.snapshots import ClusterSnapshot, NodeSample, PodSample
from autoheal.observability.logging import get_logger

_log = get_logger("signals.prometheus")

NODE_QUERIES: dict[str, str] = {
    "cpu_percent": '100 - avg by (instance) (rate(node_cpu_seconds_total{mode="idle"}[5m])) * 100',
    "memory_percent": "(1 - node_memory_MemAvailable_bytes / node_memory_MemTotal_bytes) * 100",
    "disk_percent": (
        '(1 - node_filesystem_avail_bytes{mountpoint="/"} / node_filesystem_size_bytes{mountpoint="/"}) * 100'
    ),
    "ready": 'kube_node_status_condition{condition="Ready",status="true"}',
    "memory_pressure": 'kube_node_status_condition{condition="MemoryPressure",status="true"}',
    "disk_pressure": 'kube_node_status_condition{condition="DiskPressure",status="true"}',
}

POD_QUERIES: dict[str, str] = {
    "cpu_percent": (
        "sum by (pod, namespace) (rate(container_cpu_usage_seconds_total[5m]))"
        " / sum by (pod, namespace) (container_spec_cpu_quota / container_spec_cpu_period) * 100"
    ),
    "memory_percent": (
        "sum by (pod, namespace) (container_memory_usage_bytes)"
        " / sum by (pod, namespace) (container_spec_memory_limit_bytes) * 100"
    ),
    "restart_count": "sum by (pod, namespace) (kube_pod_container_status_restarts_total)",
    "oom_killed": 'sum by (pod, namespace) (kube_pod_container_status_last_terminated_reason{reason="OOMKilled"})',
    "crash_loop_backoff": (
        'sum by (pod, namespace) (kube_pod_container_status_waiting_reason{reason="CrashLoopBackOff"})'
    ),
    "image_pull_failed": (
        'sum by (pod, namespace) (kube_pod_container_status_waiting_reason{reason=~"ErrImagePull|ImagePullBackOff"})'
    ),
    "config_error": (
        'sum by (pod, namespace) (kube_pod_container_status_waiting_reason{reason="CreateContainerConfigError"})'
    ),
    "throttled": "sum by (pod, namespace) (rate(container_cpu_cfs_throttled_periods_total[5m]))",
    "failed": 'sum by (pod, namespace) (kube_pod_status_phase{phase="Failed"})',
}

_NODE_FLAGS = ("ready", "memory_pressure", "disk_pressure")
_POD_FLAGS = ("oom_killed", "crash_loop_backoff", "image_pull_failed", "config_error", "throttled")


def _node_name(labels: dict[str, str]) -> str:
    name = labels.get("node") or labels.get("instance", "")
    return name.split(":", 1)[0]


class PrometheusSignalSource:
    """Collects node and pod health from a Prometheus server."""

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url.rstrip("/")
        self._timeout = timeout_seconds
        self._transport = transport

    async def collect(self) -> ClusterSnapshot:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            node_results, pod_results = await asyncio.gather(
                self._query_all(client, NODE_QUERIES),
                self._query_all(client, POD_QUERIES),
            )
        snapshot = ClusterSnapshot(nodes=self._build_nodes(node_results), pods=self._build_pods(pod_results))
        _log.debug("snapshot_collected", nodes=len(snapshot.nodes), pods=len(snapshot.pods))
        return snapshot

    async def _query_all(
        self, client: httpx.AsyncClient, queries: dict[str, str]
    ) -> dict[str, list[dict[str, Any]]]:
        names = list(queries)
        results = await asyncio.gather(*(self._query(client, queries[n]) for n in names))
        return dict(zip(names, results, strict=True))

    async def _query(self, client: httpx.AsyncClient, promql: str) -> list[dict[str, Any]]:
        try:
            response = await client.get(f"{self._url}/api/v1/query", params={"query": promql})
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            raise SignalSourceError(f"Prometheus query failed: {exc}") from exc
        except ValueError as exc:
            raise SignalSourceError(f"Prometheus returned invalid JSON: {exc}") from exc
        if data.get("status") != "success":
            raise SignalSourceError(f"Prometheus query error: {data.get('error', 'unknown error')}")
        return data.get("data", {}).get("result", [])

    @staticmethod
    def _values(results: list[dict[str, Any]]) -> list[tuple[dict[str, str], float]]:
        parsed: list[tuple[dict[str, str], float]] = []
        for result in results:
            try:
                value = float(result["value"][1])
            except (KeyError, IndexError, TypeError, ValueError):
                continue
            if math.isnan(value) or math.isinf(value):
                continue
            parsed.append((result.get("metric", {}), value))
        return parsed

    def _build_nodes(self, results: dict[str, list[dict[str, Any]]]) -> list[NodeSample]:
        nodes: dict[str, dict[str, Any]] = {}
        for metric, series in results.items():
            for labels, value in self._values(series):
                name = _node_name(labels)
                if not name:
                    continue
                fields = nodes.setdefault(name, {})
                fields[metric] = value > 0 if metric in _NODE_FLAGS else round(value, 2)
        return [NodeSample(name=name, **fields) for name, fields in sorted(nodes.items())]

    def _build_pods(self, results: dict[str, list[dict[str, Any]]]) -> list[PodSample]:
        pods: dict[tuple[str, str], dict[str, Any]] = {}
        for metric, series in results.items():
            for labels, value in self._values(series):
                pod, namespace = labels.get("pod"), labels.get("namespace")
                if not pod or not namespace:
                    continue
                fields = pods.setdefault((namespace, pod), {})
                if metric == "failed":
                    if value > 0:
                        fields["phase"] = "Failed"
                elif metric == "restart_count":
                    fields[metric] = int(value)
                elif metric in _POD_FLAGS:
                    fields[metric] = value > 0
                else:
                    fields[metric] = round(value, 2)
        return [
            PodSample(name=pod, namespace=namespace, **fields) for (namespace, pod), fields in sorted(pods.items())
        ]
