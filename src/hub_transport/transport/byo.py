"""Bring-your-own Kafka: the connection is read from a user-supplied secret."""

from __future__ import annotations

import structlog
from pydantic import SecretStr

from hub_transport.config.models import TransportConfig, TransportMode
from hub_transport.kube import KubeClient
from hub_transport.transport.connection import ConnectionDescriptor
from hub_transport.transport.errors import TransportConfigError
from hub_transport.transport.topics import ClusterTopic, generate_cluster_topic

logger = structlog.get_logger()

BOOTSTRAP_SERVER_KEY = "bootstrap_server"
CA_CERT_KEY = "ca.crt"
CLIENT_CERT_KEY = "client.crt"
CLIENT_KEY_KEY = "client.key"
CLUSTER_ID_KEY = "cluster_id"

REQUIRED_KEYS = (BOOTSTRAP_SERVER_KEY, CA_CERT_KEY, CLIENT_CERT_KEY, CLIENT_KEY_KEY)


def parse_transport_secret(name: str, data: dict[str, bytes]) -> ConnectionDescriptor:
    """Build a descriptor from the BYO secret's fields."""
    missing = [k for k in REQUIRED_KEYS if not data.get(k)]
    if missing:
        msg = f"Transport secret {name} is missing required field(s): {missing}"
        raise TransportConfigError(msg)
    try:
        return ConnectionDescriptor(
            bootstrap_server=data[BOOTSTRAP_SERVER_KEY].decode().strip(),
            ca_cert=data[CA_CERT_KEY].decode(),
            client_cert=data[CLIENT_CERT_KEY].decode(),
            client_key=SecretStr(data[CLIENT_KEY_KEY].decode()),
            cluster_id=data.get(CLUSTER_ID_KEY, b"").decode().strip(),
        )
    except UnicodeDecodeError as exc:
        msg = f"Transport secret {name} contains non-UTF-8 data"
        raise TransportConfigError(msg) from exc


class BYOTransporter:
    """The broker is run elsewhere; principals and topics are the user's concern.

    Every provisioning operation is a no-op; only the connection is read.
    """

    mode = TransportMode.BYO

    def __init__(
        self, kube: KubeClient, secret_data: dict[str, bytes] | None = None
    ) -> None:
        self._kube = kube
        self._secret_data = secret_data

    async def create_update_cluster(self, config: TransportConfig) -> bool:
        return False

    async def get_connection(self, config: TransportConfig) -> ConnectionDescriptor:
        data = self._secret_data
        if data is None:
            data = await self._kube.get_secret(config.transport_secret_name)
        if data is None:
            msg = f"Transport secret {config.transport_secret_name} not found"
            raise TransportConfigError(msg)
        conn = parse_transport_secret(config.transport_secret_name, data)
        logger.info(
            "byo.connection_loaded",
            secret=config.transport_secret_name,
            bootstrap_server=conn.bootstrap_server,
        )
        return conn

    async def ensure_hub_access(self, config: TransportConfig) -> None:
        return None

    def generate_user_name(self, cluster_name: str) -> str:
        return ""

    def generate_cluster_topic(self, cluster_name: str) -> ClusterTopic:
        return generate_cluster_topic(cluster_name)

    async def create_and_update_user(self, user_name: str) -> None:
        return None

    async def grant_read(self, user_name: str, topic_pattern: str) -> None:
        return None

    async def grant_write(self, user_name: str, topic_pattern: str) -> None:
        return None

    async def delete_user(self, user_name: str) -> None:
        return None

    async def create_and_update_topic(self, topic: ClusterTopic) -> None:
        return None

    async def delete_topic(self, topic: ClusterTopic) -> None:
        return None
