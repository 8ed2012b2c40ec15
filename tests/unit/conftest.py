"""Shared fixtures: an in-memory stand-in for KubeClient and a small config."""

from __future__ import annotations

import asyncio
import copy
from typing import Any

import pytest
from kubernetes.client.rest import ApiException

from hub_transport.config.models import (
    KafkaClusterConfig,
    ReadinessConfig,
    RetryConfig,
    TransportConfig,
)
from hub_transport.kube import KAFKAS

NAMESPACE = "test-ns"


class FakeKube:
    """Namespaced object store with the KubeClient interface.

    Reads yield to the event loop after taking their copy, so concurrent
    read-modify-write callers really interleave. A replace carrying a stale
    ``resourceVersion`` fails with 409, as does creating an existing object;
    both are recorded in ``rejected``.

    ``conflicts[(plural, name)] = n`` makes the next *n* replaces fail with 409;
    ``get_errors`` are raised (in order) by the next ``get_custom`` calls.
    """

    def __init__(self, namespace: str = NAMESPACE) -> None:
        self.namespace = namespace
        self.objects: dict[tuple[str, str], dict[str, Any]] = {}
        self.secrets: dict[str, dict[str, bytes]] = {}
        self.conflicts: dict[tuple[str, str], int] = {}
        self.get_errors: list[Exception] = []
        self.writes: list[tuple[str, str, str]] = []
        self.rejected: list[tuple[str, str, str]] = []
        self._version = 0

    def _store(self, plural: str, name: str, body: dict[str, Any]) -> dict[str, Any]:
        self._version += 1
        obj = copy.deepcopy(body)
        obj.setdefault("metadata", {})["resourceVersion"] = str(self._version)
        self.objects[(plural, name)] = obj
        return copy.deepcopy(obj)

    def get(self, plural: str, name: str) -> dict[str, Any] | None:
        return self.objects.get((plural, name))

    async def get_custom(self, plural: str, name: str) -> dict[str, Any] | None:
        if self.get_errors:
            raise self.get_errors.pop(0)
        obj = self.objects.get((plural, name))
        found = copy.deepcopy(obj) if obj is not None else None
        await asyncio.sleep(0)
        return found

    async def create_custom(self, plural: str, body: dict[str, Any]) -> dict[str, Any]:
        name = body["metadata"]["name"]
        if (plural, name) in self.objects:
            self.rejected.append(("create", plural, name))
            raise ApiException(status=409, reason="AlreadyExists")
        self.writes.append(("create", plural, name))
        return self._store(plural, name, body)

    async def replace_custom(
        self, plural: str, name: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        pending = self.conflicts.get((plural, name), 0)
        if pending:
            self.conflicts[(plural, name)] = pending - 1
            raise ApiException(status=409, reason="Conflict")
        stored = self.objects.get((plural, name))
        if stored is None:
            raise ApiException(status=404, reason="NotFound")
        version = body.get("metadata", {}).get("resourceVersion")
        if version is not None and version != stored["metadata"].get("resourceVersion"):
            self.rejected.append(("replace", plural, name))
            raise ApiException(status=409, reason="Conflict")
        self.writes.append(("replace", plural, name))
        return self._store(plural, name, body)

    async def delete_custom(self, plural: str, name: str) -> bool:
        if self.objects.pop((plural, name), None) is None:
            return False
        self.writes.append(("delete", plural, name))
        return True

    async def get_secret(self, name: str) -> dict[str, bytes] | None:
        return self.secrets.get(name)

    def mark_ready(
        self,
        name: str = "kafka",
        *,
        ready: bool = True,
        bootstrap: str | None = "kafka-kafka-bootstrap.test-ns.svc:9093",
        certificates: list[str] | None = None,
    ) -> None:
        """Set the Kafka status the way the Strimzi operator reports it."""
        kafka = self.objects[(KAFKAS, name)]
        listeners: list[dict[str, Any]] = [{"bootstrapServers": bootstrap}]
        if certificates is None:
            certificates = ["ca-cert"]
        if certificates:
            listeners.append(
                {"bootstrapServers": bootstrap, "certificates": certificates}
            )
        kafka["status"] = {
            "clusterId": "MXpoZsJTRD2DDiVUh3Rsqg",
            "listeners": listeners,
            "conditions": [{"type": "Ready", "status": "True" if ready else "False"}],
        }


@pytest.fixture
def hub_user_secret() -> dict[str, bytes]:
    return {"user.crt": b"usercrt", "user.key": b"userkey", "ca.crt": b"ca-cert"}


@pytest.fixture
def byo_secret() -> dict[str, bytes]:
    return {
        "bootstrap_server": b"byo-kafka.example.com:443",
        "ca.crt": b"byo-ca",
        "client.crt": b"byo-client-cert",
        "client.key": b"byo-client-key",
        "cluster_id": b"byo-cluster",
    }


@pytest.fixture
def kube() -> FakeKube:
    return FakeKube()


@pytest.fixture
def config() -> TransportConfig:
    return TransportConfig(
        namespace=NAMESPACE,
        kafka=KafkaClusterConfig(
            replicas=1, zookeeper_replicas=1, storage_type="ephemeral"
        ),
        readiness=ReadinessConfig(interval_seconds=0.01, timeout_seconds=0.5),
        retry=RetryConfig(
            initial_wait_seconds=0.01,
            max_wait_seconds=0.05,
            conflict_wait_seconds=0.0,
        ),
    )
