"""Tests for the signal sources."""

from __future__ import annotations

import httpx
import pytest

from autoheal.errors import SignalSourceError
from autoheal.models.snapshots import ClusterSnapshot, PodSample
from autoheal.signals import PrometheusSignalSource, StaticSignalSource
from autoheal.signals.prometheus import NODE_QUERIES, POD_QUERIES


def _vector(*series: tuple[dict[str, str], str]) -> dict:
    return {
        "status": "success",
        "data": {
            "resultType": "vector",
            "result": [{"metric": labels, "value": [1760000000.0, value]} for labels, value in series],
        },
    }


_API = {"pod": "api-7f9c", "namespace": "payments"}
_WORKER = {"pod": "worker-1", "namespace": "jobs"}

_RESPONSES: dict[str, dict] = {
    NODE_QUERIES["cpu_percent"]: _vector(({"instance": "node-a:9100"}, "91.234")),
    NODE_QUERIES["ready"]: _vector(({"node": "node-a"}, "1"), ({"node": "node-b"}, "0")),
    NODE_QUERIES["memory_pressure"]: _vector(({"node": "node-a"}, "0")),
    POD_QUERIES["cpu_percent"]: _vector((_API, "97.5"), (_WORKER, "NaN")),
    POD_QUERIES["restart_count"]: _vector((_API, "12")),
    POD_QUERIES["oom_killed"]: _vector((_API, "1")),
    POD_QUERIES["failed"]: _vector((_WORKER, "1")),
}


def _handler(request: httpx.Request) -> httpx.Response:
    query = request.url.params["query"]
    return httpx.Response(200, json=_RESPONSES.get(query, _vector()))


def _make_source(handler=_handler) -> PrometheusSignalSource:
    return PrometheusSignalSource("http://prometheus:9090/", transport=httpx.MockTransport(handler))


class TestPrometheusSignalSource:
    async def test_builds_snapshot(self) -> None:
        snapshot = await _make_source().collect()

        nodes = {n.name: n for n in snapshot.nodes}
        assert set(nodes) == {"node-a", "node-b"}
        assert nodes["node-a"].cpu_percent == 91.23
        assert nodes["node-a"].ready is True
        assert nodes["node-a"].memory_pressure is False
        assert nodes["node-b"].ready is False

        pods = {p.name: p for p in snapshot.pods}
        api = pods["api-7f9c"]
        assert api.namespace == "payments"
        assert api.cpu_percent == 97.5
        assert api.restart_count == 12
        assert api.oom_killed is True
        assert api.phase == "Running"

        worker = pods["worker-1"]
        assert worker.phase == "Failed"
        assert worker.cpu_percent is None

    async def test_http_error_raises(self) -> None:
        source = _make_source(lambda _: httpx.Response(503, text="unavailable"))
        with pytest.raises(SignalSourceError, match="query failed"):
            await source.collect()

    async def test_query_error_status_raises(self) -> None:
        source = _make_source(
            lambda _: httpx.Response(200, json={"status": "error", "error": "parse error at char 4"})
        )
        with pytest.raises(SignalSourceError, match="parse error"):
            await source.collect()

    async def test_invalid_json_raises(self) -> None:
        source = _make_source(lambda _: httpx.Response(200, text="<html>"))
        with pytest.raises(SignalSourceError, match="invalid JSON"):
            await source.collect()

    async def test_connection_error_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(SignalSourceError):
            await _make_source(handler).collect()


class TestStaticSignalSource:
    async def test_empty_until_set(self) -> None:
        source = StaticSignalSource()
        snapshot = await source.collect()
        assert snapshot.nodes == []
        assert snapshot.pods == []
        assert source.collections == 1

    async def test_returns_latest_snapshot(self) -> None:
        source = StaticSignalSource()
        snapshot = ClusterSnapshot(pods=[PodSample(name="api", oom_killed=True)])
        source.set(snapshot)
        assert await source.collect() is snapshot
        assert source.collections == 1
