"""Managed transport: a Strimzi Kafka cluster with per-cluster users and topics."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog
from kubernetes.client.rest import ApiException
from pydantic import SecretStr
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_fixed

from hub_transport.config.models import TransportConfig, TransportMode
from hub_transport.kube import (
    KAFKA_TOPICS,
    KAFKA_USERS,
    KAFKAS,
    STRIMZI_API_VERSION,
    KubeClient,
    is_conflict,
)
from hub_transport.transport.acl import (
    CLUSTER_LABEL,
    AclEntry,
    generate_user_name,
    merge_acls,
    new_kafka_user,
    read_acls,
    write_acls,
)
from hub_transport.transport.cluster_spec import (
    applied_tolerations,
    apply_desired,
    build_kafka_spec,
    changed_fields,
    new_kafka_cluster,
)
from hub_transport.transport.connection import ConnectionDescriptor
from hub_transport.transport.errors import ClusterNotReadyError, TransportError
from hub_transport.transport.readiness import ReadinessPoller, extract_endpoint
from hub_transport.transport.topics import (
    EVENT_TOPIC,
    SPEC_TOPIC,
    STATUS_TOPIC_PATTERN,
    ClusterTopic,
    generate_cluster_topic,
)

logger = structlog.get_logger()

USER_CERT_KEY = "user.crt"
USER_KEY_KEY = "user.key"

_T = TypeVar("_T")


class StrimziTransporter:
    """Drives the ``Kafka``, ``KafkaUser`` and ``KafkaTopic`` resources.

    Every operation is an idempotent read-modify-write; write conflicts are
    retried locally a bounded number of times before surfacing.
    """

    mode = TransportMode.MANAGED

    def __init__(self, kube: KubeClient, config: TransportConfig) -> None:
        self._kube = kube
        self._config = config
        self._ready_lock = asyncio.Lock()

    @property
    def config(self) -> TransportConfig:
        return self._config

    @property
    def cluster_name(self) -> str:
        return self._config.kafka.name

    async def _with_conflict_retry(self, attempt: Callable[[], Awaitable[_T]]) -> _T:
        retry_cfg = self._config.retry

        @retry(
            retry=retry_if_exception(is_conflict),
            stop=stop_after_attempt(retry_cfg.conflict_max_attempts),
            wait=wait_fixed(retry_cfg.conflict_wait_seconds),
            reraise=True,
        )
        async def _run() -> _T:
            return await attempt()

        return await _run()

    # -- Broker cluster ------------------------------------------------------------

    async def create_update_cluster(self, config: TransportConfig) -> bool:
        """Create the ``Kafka`` resource or bring its managed fields up to date.

        Returns ``True`` only when a create or replace was written.
        """
        self._config = config
        name = config.kafka.name

        async def _attempt() -> bool:
            live = await self._kube.get_custom(KAFKAS, name)
            if live is None:
                await self._kube.create_custom(KAFKAS, new_kafka_cluster(config))
                logger.info("kafka_cluster.created", cluster=name)
                return True
            live_spec = live.get("spec") or {}
            desired = build_kafka_spec(config, applied_tolerations(live_spec))
            fields = changed_fields(live_spec, desired)
            if not fields:
                logger.debug("kafka_cluster.unchanged", cluster=name)
                return False
            await self._kube.replace_custom(KAFKAS, name, apply_desired(live, desired))
            logger.info("kafka_cluster.updated", cluster=name, fields=fields)
            return True

        return await self._with_conflict_retry(_attempt)

    async def get_connection(self, config: TransportConfig) -> ConnectionDescriptor:
        """Wait for the cluster to be usable and assemble the hub's connection."""
        self._config = config
        name = config.kafka.name
        async with self._ready_lock:
            if config.wait_ready:
                poller = ReadinessPoller(
                    self._kube,
                    interval=config.readiness.interval_seconds,
                    timeout=config.readiness.timeout_seconds,
                )
                endpoint = await poller.wait(name)
            else:
                endpoint = extract_endpoint(await self._kube.get_custom(KAFKAS, name))
                if endpoint is None:
                    msg = f"Kafka cluster {name} is not ready"
                    raise ClusterNotReadyError(msg)

        secret = await self._kube.get_secret(config.hub_user_name)
        if not secret or not secret.get(USER_CERT_KEY) or not secret.get(USER_KEY_KEY):
            msg = f"Client certificate for {config.hub_user_name} not issued yet"
            raise ClusterNotReadyError(msg)

        return ConnectionDescriptor(
            bootstrap_server=endpoint.bootstrap_server,
            ca_cert=endpoint.ca_cert,
            client_cert=secret[USER_CERT_KEY].decode(),
            client_key=SecretStr(secret[USER_KEY_KEY].decode()),
            cluster_id=endpoint.cluster_id,
        )

    async def ensure_hub_access(self, config: TransportConfig) -> None:
        """Hub principal: writes specs, reads events and every status topic."""
        self._config = config
        user = config.hub_user_name
        await self.create_and_update_user(user)
        await self.grant_write(user, SPEC_TOPIC)
        await self.grant_read(user, EVENT_TOPIC)
        await self.grant_read(user, STATUS_TOPIC_PATTERN)
        for topic in (SPEC_TOPIC, EVENT_TOPIC):
            await self._ensure_topic(topic)

    # -- Users -----------------------------------------------------------------------

    def generate_user_name(self, cluster_name: str) -> str:
        return generate_user_name(cluster_name)

    async def create_and_update_user(self, user_name: str) -> None:
        namespace = self._config.namespace

        async def _attempt() -> None:
            user = await self._kube.get_custom(KAFKA_USERS, user_name)
            if user is None:
                body = new_kafka_user(user_name, namespace, self.cluster_name)
                await self._kube.create_custom(KAFKA_USERS, body)
                logger.info("kafka_user.created", user=user_name)
                return

            drifted = False
            labels = user.setdefault("metadata", {}).setdefault("labels", {})
            if labels.get(CLUSTER_LABEL) != self.cluster_name:
                labels[CLUSTER_LABEL] = self.cluster_name
                drifted = True
            spec = user.setdefault("spec", {})
            if (spec.get("authentication") or {}).get("type") != "tls":
                spec["authentication"] = {"type": "tls"}
                drifted = True
            authorization = spec.get("authorization") or {}
            if authorization.get("type") != "simple":
                spec["authorization"] = {
                    "type": "simple",
                    "acls": authorization.get("acls") or [],
                }
                drifted = True
            if not drifted:
                logger.debug("kafka_user.unchanged", user=user_name)
                return
            await self._kube.replace_custom(KAFKA_USERS, user_name, user)
            logger.info("kafka_user.updated", user=user_name)

        await self._with_conflict_retry(_attempt)

    async def grant_read(self, user_name: str, topic_pattern: str) -> None:
        await self._grant(user_name, topic_pattern, read_acls(topic_pattern))

    async def grant_write(self, user_name: str, topic_pattern: str) -> None:
        await self._grant(user_name, topic_pattern, write_acls(topic_pattern))

    async def _grant(
        self, user_name: str, topic_pattern: str, wanted: list[AclEntry]
    ) -> None:
        async def _attempt() -> None:
            user = await self._kube.get_custom(KAFKA_USERS, user_name)
            if user is None:
                msg = f"KafkaUser {user_name} not found"
                raise TransportError(msg)
            authorization = user.setdefault("spec", {}).setdefault(
                "authorization", {"type": "simple"}
            )
            merged, added = merge_acls(authorization.get("acls") or [], wanted)
            if not added:
                logger.debug(
                    "kafka_user.acl_present", user=user_name, topic=topic_pattern
                )
                return
            authorization["acls"] = merged
            await self._kube.replace_custom(KAFKA_USERS, user_name, user)
            logger.info(
                "kafka_user.acl_added",
                user=user_name,
                topic=topic_pattern,
                operations=[op for a in added for op in a["operations"]],
            )

        await self._with_conflict_retry(_attempt)

    async def delete_user(self, user_name: str) -> None:
        if await self._kube.delete_custom(KAFKA_USERS, user_name):
            logger.info("kafka_user.deleted", user=user_name)
        else:
            logger.info("kafka_user.already_deleted", user=user_name)

    # -- Topics ------------------------------------------------------------------------

    def generate_cluster_topic(self, cluster_name: str) -> ClusterTopic:
        return generate_cluster_topic(cluster_name)

    def _new_topic(self, topic: str) -> dict[str, Any]:
        kafka = self._config.kafka
        return {
            "apiVersion": STRIMZI_API_VERSION,
            "kind": "KafkaTopic",
            "metadata": {
                "name": topic,
                "namespace": self._config.namespace,
                "labels": {CLUSTER_LABEL: self.cluster_name},
            },
            "spec": {
                "topicName": topic,
                "partitions": kafka.topic_partitions,
                "replicas": kafka.replication_factor,
            },
        }

    async def _ensure_topic(self, topic: str) -> None:
        if await self._kube.get_custom(KAFKA_TOPICS, topic) is not None:
            logger.debug("kafka_topic.exists", topic=topic)
            return
        try:
            await self._kube.create_custom(KAFKA_TOPICS, self._new_topic(topic))
        except ApiException as exc:
            if not is_conflict(exc):
                raise
            logger.debug("kafka_topic.exists", topic=topic)
            return
        logger.info("kafka_topic.created", topic=topic)

    async def create_and_update_topic(self, topic: ClusterTopic) -> None:
        for name in topic.topics:
            await self._ensure_topic(name)

    async def delete_topic(self, topic: ClusterTopic) -> None:
        """Delete the cluster's own status topic; shared topics stay."""
        if await self._kube.delete_custom(KAFKA_TOPICS, topic.status_topic):
            logger.info("kafka_topic.deleted", topic=topic.status_topic)
        else:
            logger.info("kafka_topic.already_deleted", topic=topic.status_topic)
