"""confluent-kafka client config for a published connection, plus a health probe."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog
from confluent_kafka.admin import AdminClient

from hub_transport.transport.connection import ConnectionDescriptor

logger = structlog.get_logger()

CA_FILE = "ca.crt"
CERT_FILE = "client.crt"
KEY_FILE = "client.key"


def write_cert_files(
    conn: ConnectionDescriptor, cert_dir: str | Path
) -> dict[str, Path]:
    """Write the descriptor's PEM material to *cert_dir* and return the paths."""
    directory = Path(cert_dir)
    directory.mkdir(parents=True, exist_ok=True)
    paths = {name: directory / name for name in (CA_FILE, CERT_FILE, KEY_FILE)}
    paths[CA_FILE].write_text(conn.ca_cert)
    paths[CERT_FILE].write_text(conn.client_cert)
    _write_private(paths[KEY_FILE], conn.client_key.get_secret_value())
    return paths


def _write_private(path: Path, content: str) -> None:
    """Write *content* to a file that is never readable by other users."""
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w") as f:
        # O_CREAT mode does not apply to an existing file
        os.fchmod(f.fileno(), 0o600)
        f.write(content)


def build_kafka_client_config(
    conn: ConnectionDescriptor, cert_dir: str | Path
) -> dict[str, Any]:
    """Build confluent_kafka config entries for mutual-TLS access.

    Returns a dict to pass to Consumer/Producer/AdminClient constructors.
    """
    paths = write_cert_files(conn, cert_dir)
    return {
        "bootstrap.servers": conn.bootstrap_server,
        "security.protocol": "SSL",
        "ssl.ca.location": str(paths[CA_FILE]),
        "ssl.certificate.location": str(paths[CERT_FILE]),
        "ssl.key.location": str(paths[KEY_FILE]),
    }


@dataclass
class ConnectionHealth:
    healthy: bool
    detail: str = ""


def probe_connection(
    conn: ConnectionDescriptor, cert_dir: str | Path, timeout: float = 5.0
) -> ConnectionHealth:
    """Probe broker connectivity with the published credentials."""
    try:
        admin = AdminClient(build_kafka_client_config(conn, cert_dir))
        meta = admin.list_topics(timeout=timeout)
        return ConnectionHealth(healthy=True, detail=f"{len(meta.brokers)} broker(s)")
    except Exception as exc:
        logger.warning(
            "transport.probe_failed",
            bootstrap_server=conn.bootstrap_server,
            error=str(exc),
        )
        return ConnectionHealth(healthy=False, detail=str(exc))
