"""Transport reconciliation errors."""

from __future__ import annotations


class TransportError(Exception):
    """Base class for transport reconciliation failures."""


class TransportConfigError(TransportError):
    """Configuration or BYO secret content is malformed; retrying won't help
    until it is corrected."""


class ReadinessTimeoutError(TransportError):
    """The Kafka cluster did not become ready within the polling timeout."""


class ClusterNotReadyError(TransportError):
    """A resource the connection depends on has not been issued yet."""
