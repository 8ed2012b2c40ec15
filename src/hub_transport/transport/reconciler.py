"""Top-level transport reconciler: selects BYO or managed Kafka and publishes
the resulting connection."""

from __future__ import annotations

import asyncio
from contextlib import suppress

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    wait_exponential,
)

from hub_transport.config.models import TransportConfig, TransportMode
from hub_transport.kube import KubeClient
from hub_transport.transport.base import Transporter
from hub_transport.transport.byo import BYOTransporter, parse_transport_secret
from hub_transport.transport.connection import ConnectionPublisher
from hub_transport.transport.strimzi import StrimziTransporter

logger = structlog.get_logger()


class TransportReconciler:
    """Converges the transport for one platform deployment.

    Each :meth:`reconcile` call is a complete, idempotent attempt; it may be
    invoked repeatedly and concurrently. A failure raises before anything is
    published, so readers keep seeing the previous descriptor.
    """

    def __init__(self, kube: KubeClient, publisher: ConnectionPublisher) -> None:
        self._kube = kube
        self._publisher = publisher
        self._transporter: Transporter | None = None

    @property
    def transporter(self) -> Transporter | None:
        return self._transporter

    async def select_transporter(self, config: TransportConfig) -> Transporter:
        """BYO when the transport secret exists, managed otherwise.

        A BYO secret is parsed before the mode is switched, so a malformed one
        raises with the published mode and descriptor unchanged.
        """
        secret = await self._kube.get_secret(config.transport_secret_name)
        current = self._transporter
        transporter: Transporter
        if secret is not None:
            parse_transport_secret(config.transport_secret_name, secret)
            transporter = BYOTransporter(self._kube, secret)
        elif isinstance(current, StrimziTransporter):
            transporter = current
        else:
            transporter = StrimziTransporter(self._kube, config)
        self._transporter = transporter

        if self._publisher.switch_mode(transporter.mode):
            logger.info(
                "transport.mode_selected",
                mode=transporter.mode.value,
                namespace=config.namespace,
            )
        return transporter

    async def reconcile(self, config: TransportConfig) -> None:
        transporter = await self.select_transporter(config)

        if transporter.mode == TransportMode.MANAGED:
            updated = await transporter.create_update_cluster(config)
            if updated:
                logger.info(
                    "transport.cluster_updated",
                    cluster=config.kafka.name,
                    namespace=config.namespace,
                )
            await transporter.ensure_hub_access(config)

        conn = await transporter.get_connection(config)
        self._publisher.publish(transporter.mode, conn)
        logger.info(
            "transport.connection_published",
            mode=transporter.mode.value,
            bootstrap_server=conn.bootstrap_server,
            cluster_id=conn.cluster_id,
        )


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "transport.reconcile_retry",
        attempt=retry_state.attempt_number,
        error=str(exc),
        wait=retry_state.next_action.sleep if retry_state.next_action else None,
    )


class ReconcileLoop:
    """Keeps calling :meth:`TransportReconciler.reconcile` until it succeeds.

    Runs as a background task so a long readiness wait never blocks the
    caller's event dispatch. Retries forever with a wait that starts at
    ``retry.initial_wait_seconds`` and grows by ``retry.multiplier`` up to
    ``retry.max_wait_seconds``. :meth:`stop` cancels it promptly, including
    mid-sleep or mid-poll.
    """

    def __init__(self, reconciler: TransportReconciler) -> None:
        self._reconciler = reconciler
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self, config: TransportConfig) -> None:
        """Start (or restart with the latest config) the retry loop."""
        await self.stop()
        self._task = asyncio.create_task(self._run(config))

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def wait(self) -> None:
        """Block until the current loop has succeeded."""
        if self._task:
            await self._task

    async def _run(self, config: TransportConfig) -> None:
        retry_cfg = config.retry
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(Exception),
            wait=wait_exponential(
                multiplier=retry_cfg.initial_wait_seconds,
                exp_base=retry_cfg.multiplier,
                max=retry_cfg.max_wait_seconds,
            ),
            before_sleep=_log_retry,
            reraise=True,
        ):
            with attempt:
                await self._reconciler.reconcile(config)
        logger.info("transport.reconcile_succeeded", namespace=config.namespace)
