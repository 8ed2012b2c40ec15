"""Readiness poller for the Strimzi Kafka cluster."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import structlog
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from hub_transport.kube import KAFKAS, KubeClient
from hub_transport.transport.errors import ReadinessTimeoutError

logger = structlog.get_logger()

# Credentials or RBAC are wrong; polling will not fix it
FATAL_STATUSES = frozenset({401, 403})


class ReadinessState(StrEnum):
    PENDING = "pending"
    READY = "ready"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class ClusterEndpoint:
    """Connection details reported in a ready Kafka cluster's status."""

    bootstrap_server: str
    ca_cert: str
    cluster_id: str


def is_ready(status: dict[str, Any] | None) -> bool:
    for condition in (status or {}).get("conditions") or []:
        if condition.get("type") == "Ready" and condition.get("status") == "True":
            return True
    return False


def extract_endpoint(kafka: dict[str, Any] | None) -> ClusterEndpoint | None:
    """Return the endpoint of a ready cluster, or ``None`` while it is not usable.

    Usable means a ``Ready=True`` condition and at least one listener that
    reports both a bootstrap address and a certificate.
    """
    status = (kafka or {}).get("status")
    if not is_ready(status):
        return None
    for listener in status.get("listeners") or []:
        bootstrap = listener.get("bootstrapServers")
        certificates = listener.get("certificates") or []
        if bootstrap and certificates and certificates[0]:
            return ClusterEndpoint(
                bootstrap_server=bootstrap,
                ca_cert=certificates[0],
                cluster_id=status.get("clusterId") or "",
            )
    return None


class ReadinessPoller:
    """Polls the ``Kafka`` resource until it is usable or the timeout elapses.

    Missing resources and transient API or connection errors count as "not
    ready". Authentication and authorization failures propagate, as does
    anything unexpected.
    """

    def __init__(
        self,
        kube: KubeClient,
        interval: float = 1.0,
        timeout: float = 600.0,
    ) -> None:
        self._kube = kube
        self._interval = interval
        self._timeout = timeout
        self._state = ReadinessState.PENDING

    @property
    def state(self) -> ReadinessState:
        return self._state

    async def wait(self, name: str) -> ClusterEndpoint:
        self._state = ReadinessState.PENDING
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout
        attempts = 0
        while True:
            attempts += 1
            endpoint = await self._check(name)
            if endpoint is not None:
                self._state = ReadinessState.READY
                logger.info(
                    "readiness.ready",
                    cluster=name,
                    bootstrap_server=endpoint.bootstrap_server,
                    attempts=attempts,
                )
                return endpoint
            remaining = deadline - loop.time()
            if remaining <= 0:
                self._state = ReadinessState.TIMED_OUT
                logger.error("readiness.timed_out", cluster=name, timeout=self._timeout)
                msg = f"Kafka cluster {name} not ready after {self._timeout}s"
                raise ReadinessTimeoutError(msg)
            if attempts % 10 == 1:
                logger.info("readiness.waiting", cluster=name, attempts=attempts)
            await asyncio.sleep(min(self._interval, remaining))

    async def _check(self, name: str) -> ClusterEndpoint | None:
        try:
            kafka = await self._kube.get_custom(KAFKAS, name)
        except ApiException as exc:
            if exc.status in FATAL_STATUSES:
                raise
            logger.warning(
                "readiness.fetch_failed",
                cluster=name,
                status=exc.status,
                error=str(exc),
            )
            return None
        except (HTTPError, OSError) as exc:
            logger.warning("readiness.fetch_failed", cluster=name, error=str(exc))
            return None
        return extract_endpoint(kafka)
