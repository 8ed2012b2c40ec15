"""Transporter protocol, the contract shared by the BYO and managed variants."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from hub_transport.config.models import TransportConfig, TransportMode
from hub_transport.transport.connection import ConnectionDescriptor
from hub_transport.transport.topics import ClusterTopic


@runtime_checkable
class Transporter(Protocol):
    """Provisions the Kafka access surface for the hub and its managed clusters."""

    mode: TransportMode

    async def create_update_cluster(self, config: TransportConfig) -> bool:
        """Converge the broker cluster; return whether an update was written."""
        ...

    async def get_connection(self, config: TransportConfig) -> ConnectionDescriptor:
        """Return the hub's connection, raising if it isn't available yet."""
        ...

    async def ensure_hub_access(self, config: TransportConfig) -> None:
        """Ensure the hub principal, its grants and the shared topics."""
        ...

    def generate_user_name(self, cluster_name: str) -> str: ...

    def generate_cluster_topic(self, cluster_name: str) -> ClusterTopic: ...

    async def create_and_update_user(self, user_name: str) -> None: ...

    async def grant_read(self, user_name: str, topic_pattern: str) -> None: ...

    async def grant_write(self, user_name: str, topic_pattern: str) -> None: ...

    async def delete_user(self, user_name: str) -> None: ...

    async def create_and_update_topic(self, topic: ClusterTopic) -> None: ...

    async def delete_topic(self, topic: ClusterTopic) -> None: ...
