"""Topic naming conventions for the hub and its managed (spoke) clusters."""

from __future__ import annotations

from dataclasses import dataclass

SPEC_TOPIC = "spec"
EVENT_TOPIC = "event"
STATUS_TOPIC_TEMPLATE = "status.{}"
# Regex matching every cluster's status topic
STATUS_TOPIC_PATTERN = "^status.*"


@dataclass(frozen=True)
class ClusterTopic:
    spec_topic: str
    event_topic: str
    status_topic: str
    status_topic_pattern: str

    @property
    def topics(self) -> list[str]:
        """Distinct concrete topic names, shared topics first."""
        return [self.spec_topic, self.event_topic, self.status_topic]


def status_topic_name(cluster_name: str) -> str:
    """Build a per-cluster status topic name: ``status.<cluster>``."""
    return STATUS_TOPIC_TEMPLATE.format(cluster_name)


def generate_cluster_topic(cluster_name: str) -> ClusterTopic:
    """Return the topic set for one managed cluster.

    ``spec`` and ``event`` are shared by every cluster; the status topic is
    per cluster and is matched by :data:`STATUS_TOPIC_PATTERN`.
    """
    return ClusterTopic(
        spec_topic=SPEC_TOPIC,
        event_topic=EVENT_TOPIC,
        status_topic=status_topic_name(cluster_name),
        status_topic_pattern=STATUS_TOPIC_PATTERN,
    )
