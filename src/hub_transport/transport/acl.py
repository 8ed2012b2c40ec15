"""KafkaUser naming and ACL entry construction."""

from __future__ import annotations

from typing import Any, Literal

from hub_transport.kube import STRIMZI_API_VERSION

USER_NAME_SUFFIX = "-kafka-user"
CLUSTER_LABEL = "strimzi.io/cluster"

Operation = Literal["Read", "Write"]

AclEntry = dict[str, Any]


def generate_user_name(cluster_name: str) -> str:
    """Build the principal name for a managed cluster: ``<cluster>-kafka-user``."""
    return f"{cluster_name}{USER_NAME_SUFFIX}"


def topic_resource(topic_pattern: str) -> dict[str, str]:
    """Translate a topic name or wildcard into a Strimzi ACL resource.

    ``^status.*`` and ``status.*`` both become the ``prefix`` resource
    ``status.``; anything without a trailing wildcard is ``literal``.
    """
    name = topic_pattern.removeprefix("^")
    if name.endswith(".*"):
        return {"type": "topic", "name": name[:-2] + ".", "patternType": "prefix"}
    if name.endswith("*") and name != "*":
        return {"type": "topic", "name": name[:-1], "patternType": "prefix"}
    return {"type": "topic", "name": name, "patternType": "literal"}


def topic_acl(topic_pattern: str, operation: Operation) -> AclEntry:
    return {
        "host": "*",
        "operations": [operation],
        "resource": topic_resource(topic_pattern),
    }


def consumer_group_acl() -> AclEntry:
    """Read access on every consumer group, needed by any topic reader."""
    return {
        "host": "*",
        "operations": ["Read"],
        "resource": {"type": "group", "name": "*", "patternType": "literal"},
    }


def read_acls(topic_pattern: str) -> list[AclEntry]:
    return [topic_acl(topic_pattern, "Read"), consumer_group_acl()]


def write_acls(topic_pattern: str) -> list[AclEntry]:
    return [topic_acl(topic_pattern, "Write")]


def acl_key(acl: AclEntry) -> tuple[str, str, str, frozenset[str]]:
    resource = acl.get("resource") or {}
    operations = acl.get("operations")
    if operations is None and acl.get("operation"):
        operations = [acl["operation"]]
    return (
        resource.get("type", ""),
        resource.get("name", ""),
        resource.get("patternType", "literal"),
        frozenset(operations or []),
    )


def merge_acls(
    existing: list[AclEntry], wanted: list[AclEntry]
) -> tuple[list[AclEntry], list[AclEntry]]:
    """Append the *wanted* entries that are not already present.

    Returns ``(merged, added)``; ``added`` is empty when nothing changed.
    """
    seen = {acl_key(a) for a in existing}
    merged = list(existing)
    added: list[AclEntry] = []
    for acl in wanted:
        key = acl_key(acl)
        if key in seen:
            continue
        seen.add(key)
        merged.append(acl)
        added.append(acl)
    return merged, added


def new_kafka_user(name: str, namespace: str, cluster_name: str) -> dict[str, Any]:
    return {
        "apiVersion": STRIMZI_API_VERSION,
        "kind": "KafkaUser",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "labels": {CLUSTER_LABEL: cluster_name},
        },
        "spec": {
            "authentication": {"type": "tls"},
            "authorization": {"type": "simple", "acls": []},
        },
    }
