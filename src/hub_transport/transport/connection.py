"""Connection descriptor and the process-wide publisher consumers read it from."""

from __future__ import annotations

import threading

from pydantic import BaseModel, SecretStr

from hub_transport.config.models import TransportMode


class ConnectionDescriptor(BaseModel, frozen=True):
    """Everything a Kafka client needs to reach the platform broker."""

    bootstrap_server: str
    ca_cert: str
    client_cert: str
    client_key: SecretStr
    cluster_id: str = ""


class ConnectionPublisher:
    """Holds the current transport mode and connection descriptor.

    Written by the reconciler, read by any number of producer/consumer
    components on other threads or event loops. Every access takes the lock,
    and :meth:`snapshot` returns mode and descriptor as one consistent pair.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._mode = TransportMode.UNSET
        self._conn: ConnectionDescriptor | None = None

    def get(self) -> ConnectionDescriptor | None:
        with self._lock:
            return self._conn

    def set(self, conn: ConnectionDescriptor | None) -> None:
        with self._lock:
            self._conn = conn

    def get_mode(self) -> TransportMode:
        with self._lock:
            return self._mode

    def set_mode(self, mode: TransportMode) -> None:
        with self._lock:
            self._mode = mode

    def switch_mode(self, mode: TransportMode) -> bool:
        """Select *mode*; on an actual transition the descriptor of the old
        mode is withdrawn. Returns whether the mode changed."""
        with self._lock:
            if self._mode == mode:
                return False
            self._mode = mode
            self._conn = None
            return True

    def publish(self, mode: TransportMode, conn: ConnectionDescriptor) -> None:
        """Set mode and descriptor together."""
        with self._lock:
            self._mode = mode
            self._conn = conn

    def snapshot(self) -> tuple[TransportMode, ConnectionDescriptor | None]:
        with self._lock:
            return self._mode, self._conn

    def reset(self) -> None:
        with self._lock:
            self._mode = TransportMode.UNSET
            self._conn = None
