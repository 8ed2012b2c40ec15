"""Desired Strimzi ``Kafka`` spec and the per-field comparators used to diff it.

The desired spec is rebuilt from :class:`TransportConfig` on every reconcile.
Only the fields listed in :data:`MANAGED_FIELDS` are owned here; everything
else on the live object (operator defaults, user edits) is left as found.
Set-valued fields (tolerations, image-pull secrets, node-selector terms) are
compared as sets and quantities are compared after parsing, so a live object
that is only reordered or reformatted is reported as unchanged.
"""

from __future__ import annotations

import copy
from collections.abc import Callable
from decimal import Decimal
from typing import Any

from kubernetes.utils import parse_quantity

from hub_transport.config.models import TransportConfig
from hub_transport.kube import STRIMZI_API_VERSION

Spec = dict[str, Any]

_MISSING: Any = object()


# -- Scheduling --------------------------------------------------------------------


def node_affinity(node_selector: dict[str, str]) -> dict[str, Any] | None:
    """AND every node-selector key into one required node-selector term."""
    if not node_selector:
        return None
    expressions = []
    for key, value in sorted(node_selector.items()):
        if value:
            expressions.append({"key": key, "operator": "In", "values": [value]})
        else:
            expressions.append({"key": key, "operator": "Exists"})
    return {
        "requiredDuringSchedulingIgnoredDuringExecution": {
            "nodeSelectorTerms": [{"matchExpressions": expressions}]
        }
    }


def toleration_key(toleration: dict[str, Any]) -> tuple[Any, ...]:
    return (
        toleration.get("key") or "",
        toleration.get("operator") or "Equal",
        toleration.get("value") or "",
        toleration.get("effect") or "",
        toleration.get("tolerationSeconds"),
    )


def merge_tolerations(
    configured: list[dict[str, Any]], applied: list[dict[str, Any]]
) -> list[dict[str, Any]]:
    """De-duplicated union: configured tolerations first, then previously
    applied ones that are no longer configured."""
    seen: set[tuple[Any, ...]] = set()
    merged: list[dict[str, Any]] = []
    for toleration in [*configured, *applied]:
        key = toleration_key(toleration)
        if key in seen:
            continue
        seen.add(key)
        merged.append(toleration)
    return merged


def applied_tolerations(live_spec: Spec) -> list[dict[str, Any]]:
    """Every toleration currently set on any component's pod template."""
    found: list[dict[str, Any]] = []
    for component in COMPONENTS:
        found.extend(_get(live_spec, f"{component}.template.pod.tolerations") or [])
    return merge_tolerations([], found)


def pod_template(
    config: TransportConfig, tolerations: list[dict[str, Any]]
) -> dict[str, Any] | None:
    pod: dict[str, Any] = {}
    affinity = node_affinity(config.node_selector)
    if affinity is not None:
        pod["affinity"] = {"nodeAffinity": affinity}
    if tolerations:
        pod["tolerations"] = tolerations
    if config.image_pull_secret:
        pod["imagePullSecrets"] = [{"name": config.image_pull_secret}]
    return {"pod": pod} if pod else None


# -- Desired spec --------------------------------------------------------------------

COMPONENTS = ("kafka", "zookeeper", "entityOperator")


def _storage(config: TransportConfig) -> dict[str, Any]:
    kafka = config.kafka
    if kafka.storage_type == "ephemeral":
        return {"type": "ephemeral"}
    storage: dict[str, Any] = {
        "type": "persistent-claim",
        "size": kafka.storage_size,
        "deleteClaim": False,
    }
    if kafka.storage_class:
        storage["class"] = kafka.storage_class
    return storage


def _broker_config(replication_factor: int) -> dict[str, Any]:
    min_isr = max(1, replication_factor - 1)
    return {
        "default.replication.factor": replication_factor,
        "offsets.topic.replication.factor": replication_factor,
        "transaction.state.log.replication.factor": replication_factor,
        "transaction.state.log.min.isr": min_isr,
        "min.insync.replicas": min_isr,
    }


def build_kafka_spec(
    config: TransportConfig, applied: list[dict[str, Any]] | None = None
) -> Spec:
    """Compute the desired ``Kafka`` spec.

    *applied* are the tolerations already on the live object; they are merged
    in so that a narrower configuration never drops them.
    """
    kafka = config.kafka
    assert kafka.replication_factor is not None
    configured = [t.to_k8s() for t in config.tolerations]
    template = pod_template(config, merge_tolerations(configured, applied or []))
    resources = config.resources.to_k8s() if config.resources else None

    spec: Spec = {
        "kafka": {
            "version": kafka.version,
            "replicas": kafka.replicas,
            "listeners": [
                {
                    "name": "tls",
                    "port": kafka.listener_port,
                    "type": kafka.listener_type,
                    "tls": True,
                    "authentication": {"type": "tls"},
                }
            ],
            "authorization": {"type": "simple"},
            "config": _broker_config(kafka.replication_factor),
            "storage": _storage(config),
        },
        "zookeeper": {
            "replicas": kafka.zookeeper_replicas,
            "storage": _storage(config),
        },
        "entityOperator": {
            "topicOperator": {},
            "userOperator": {},
        },
    }
    if resources:
        spec["kafka"]["resources"] = resources
        spec["zookeeper"]["resources"] = copy.deepcopy(resources)
        spec["entityOperator"]["topicOperator"]["resources"] = copy.deepcopy(resources)
        spec["entityOperator"]["userOperator"]["resources"] = copy.deepcopy(resources)
    if template:
        for component in COMPONENTS:
            spec[component]["template"] = copy.deepcopy(template)
    return spec


def new_kafka_cluster(config: TransportConfig) -> dict[str, Any]:
    return {
        "apiVersion": STRIMZI_API_VERSION,
        "kind": "Kafka",
        "metadata": {"name": config.kafka.name, "namespace": config.namespace},
        "spec": build_kafka_spec(config),
    }


# -- Comparators -----------------------------------------------------------------------


def _get(data: Any, path: str) -> Any:
    for part in path.split("."):
        if not isinstance(data, dict) or part not in data:
            return None
        data = data[part]
    return data


def _quantities(section: dict[str, Any] | None) -> dict[str, Decimal]:
    return {k: parse_quantity(v) for k, v in (section or {}).items()}


def resources_equal(a: dict[str, Any] | None, b: dict[str, Any] | None) -> bool:
    a, b = a or {}, b or {}
    return all(
        _quantities(a.get(section)) == _quantities(b.get(section))
        for section in ("requests", "limits")
    )


def _selector_terms(affinity: dict[str, Any] | None) -> frozenset[frozenset[Any]]:
    required = _get(
        affinity, "nodeAffinity.requiredDuringSchedulingIgnoredDuringExecution"
    )
    terms = (required or {}).get("nodeSelectorTerms") or []
    return frozenset(
        frozenset(
            (e.get("key"), e.get("operator"), tuple(sorted(e.get("values") or [])))
            for e in term.get("matchExpressions") or []
        )
        for term in terms
    )


def affinity_equal(a: dict[str, Any] | None, b: dict[str, Any] | None) -> bool:
    return _selector_terms(a) == _selector_terms(b)


def tolerations_equal(a: list[Any] | None, b: list[Any] | None) -> bool:
    return {toleration_key(t) for t in a or []} == {toleration_key(t) for t in b or []}


def pull_secrets_equal(a: list[Any] | None, b: list[Any] | None) -> bool:
    return {s.get("name") for s in a or []} == {s.get("name") for s in b or []}


def template_equal(a: dict[str, Any] | None, b: dict[str, Any] | None) -> bool:
    pod_a = _get(a, "pod") or {}
    pod_b = _get(b, "pod") or {}
    return (
        affinity_equal(pod_a.get("affinity"), pod_b.get("affinity"))
        and tolerations_equal(pod_a.get("tolerations"), pod_b.get("tolerations"))
        and pull_secrets_equal(
            pod_a.get("imagePullSecrets"), pod_b.get("imagePullSecrets")
        )
    )


def storage_equal(a: dict[str, Any] | None, b: dict[str, Any] | None) -> bool:
    a, b = a or {}, b or {}
    if a.get("type") != b.get("type") or a.get("class") != b.get("class"):
        return False
    size_a, size_b = a.get("size"), b.get("size")
    if size_a is None or size_b is None:
        return size_a == size_b
    return parse_quantity(size_a) == parse_quantity(size_b)


def broker_config_equal(
    live: dict[str, Any] | None, desired: dict[str, Any] | None
) -> bool:
    """Compare only the keys we set; other broker settings are not ours."""
    live = live or {}
    return all(str(live.get(k)) == str(v) for k, v in (desired or {}).items())


def exact_equal(a: Any, b: Any) -> bool:
    return a == b


MANAGED_FIELDS: list[tuple[str, Callable[[Any, Any], bool]]] = [
    ("kafka.version", exact_equal),
    ("kafka.replicas", exact_equal),
    ("kafka.listeners", exact_equal),
    ("kafka.authorization", exact_equal),
    ("kafka.config", broker_config_equal),
    ("kafka.storage", storage_equal),
    ("kafka.resources", resources_equal),
    ("kafka.template", template_equal),
    ("zookeeper.replicas", exact_equal),
    ("zookeeper.storage", storage_equal),
    ("zookeeper.resources", resources_equal),
    ("zookeeper.template", template_equal),
    ("entityOperator.topicOperator.resources", resources_equal),
    ("entityOperator.userOperator.resources", resources_equal),
    ("entityOperator.template", template_equal),
]


def changed_fields(live_spec: Spec, desired_spec: Spec) -> list[str]:
    """Return the managed field paths whose live value differs from desired."""
    return [
        path
        for path, equal in MANAGED_FIELDS
        if not equal(_get(live_spec, path), _get(desired_spec, path))
    ]


# -- Apply ----------------------------------------------------------------------------


def _set(data: dict[str, Any], path: str, value: Any) -> None:
    *parents, leaf = path.split(".")
    for part in parents:
        data = data.setdefault(part, {})
    if value is _MISSING:
        data.pop(leaf, None)
    else:
        data[leaf] = copy.deepcopy(value)


def _apply_template(
    spec: dict[str, Any], path: str, desired: dict[str, Any] | None
) -> None:
    """Overlay the scheduling fields of a pod template, keeping anything else."""
    template = dict(_get(spec, path) or {})
    pod = dict(template.get("pod") or {})
    desired_pod = (desired or {}).get("pod") or {}

    affinity = dict(pod.get("affinity") or {})
    node = (desired_pod.get("affinity") or {}).get("nodeAffinity")
    if node is not None:
        affinity["nodeAffinity"] = node
    else:
        affinity.pop("nodeAffinity", None)

    scheduling = {
        "affinity": affinity,
        "tolerations": desired_pod.get("tolerations"),
        "imagePullSecrets": desired_pod.get("imagePullSecrets"),
    }
    for key, value in scheduling.items():
        if value:
            pod[key] = value
        else:
            pod.pop(key, None)

    if pod:
        template["pod"] = pod
    else:
        template.pop("pod", None)
    _set(spec, path, template if template else _MISSING)


def apply_desired(live: dict[str, Any], desired_spec: Spec) -> dict[str, Any]:
    """Return a copy of the live ``Kafka`` object with the managed fields set
    to their desired values."""
    updated = copy.deepcopy(live)
    spec = updated.setdefault("spec", {})
    for path, _ in MANAGED_FIELDS:
        desired = _get(desired_spec, path)
        if path.endswith(".template"):
            _apply_template(spec, path, desired)
        elif path == "kafka.config":
            config = dict(_get(spec, path) or {})
            config.update(desired or {})
            _set(spec, path, config)
        else:
            _set(spec, path, _MISSING if desired is None else desired)
    return updated
