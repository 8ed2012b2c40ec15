"""Pydantic configuration models for the transport reconciler."""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Literal, Self

from kubernetes.utils import parse_quantity
from pydantic import BaseModel, Field, field_validator, model_validator


class TransportMode(StrEnum):
    """Transport modes selected by the reconciler."""

    UNSET = "unset"
    BYO = "byo"
    MANAGED = "managed"


class ResourceRequirements(BaseModel):
    """Compute requests/limits applied to every broker sub-component."""

    requests: dict[str, str] = Field(default_factory=dict)
    limits: dict[str, str] = Field(default_factory=dict)

    @field_validator("requests", "limits")
    @classmethod
    def validate_quantities(cls, v: dict[str, str]) -> dict[str, str]:
        for name, quantity in v.items():
            try:
                parse_quantity(quantity)
            except ValueError as exc:
                msg = f"Invalid quantity for '{name}': {quantity!r}"
                raise ValueError(msg) from exc
        return v

    def to_k8s(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.requests:
            out["requests"] = dict(sorted(self.requests.items()))
        if self.limits:
            out["limits"] = dict(sorted(self.limits.items()))
        return out


class Toleration(BaseModel, frozen=True):
    """A pod toleration, as it appears in a Kubernetes pod template."""

    key: str | None = None
    operator: Literal["Exists", "Equal"] = "Equal"
    value: str | None = None
    effect: Literal["NoSchedule", "PreferNoSchedule", "NoExecute"] | None = None
    toleration_seconds: int | None = None

    @model_validator(mode="after")
    def check_operator(self) -> Self:
        if self.operator == "Exists" and self.value:
            msg = "toleration value must be empty when operator is 'Exists'"
            raise ValueError(msg)
        return self

    def to_k8s(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.effect is not None:
            out["effect"] = self.effect
        if self.key is not None:
            out["key"] = self.key
        out["operator"] = self.operator
        if self.toleration_seconds is not None:
            out["tolerationSeconds"] = self.toleration_seconds
        if self.value:
            out["value"] = self.value
        return out


class KafkaClusterConfig(BaseModel):
    """Shape of the operator-provisioned Strimzi Kafka cluster."""

    name: str = "kafka"
    replicas: int = Field(default=3, ge=1)
    zookeeper_replicas: int = Field(default=3, ge=1)
    storage_type: Literal["ephemeral", "persistent-claim"] = "persistent-claim"
    storage_size: str | None = "10Gi"
    storage_class: str | None = None
    version: str = "3.5.0"
    # Defaults to min(replicas, 3) when unset
    replication_factor: int | None = Field(default=None, ge=1)
    listener_type: Literal["internal", "route", "loadbalancer", "nodeport"] = (
        "internal"
    )
    listener_port: int = Field(default=9093, ge=1, le=65535)
    topic_partitions: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def check_storage_and_replication(self) -> Self:
        if self.storage_type == "persistent-claim":
            if not self.storage_size:
                msg = "storage_size is required when storage_type is 'persistent-claim'"
                raise ValueError(msg)
            try:
                parse_quantity(self.storage_size)
            except ValueError as exc:
                msg = f"Invalid storage_size: {self.storage_size!r}"
                raise ValueError(msg) from exc
        if self.replication_factor is None:
            self.replication_factor = min(self.replicas, 3)
        elif self.replication_factor > self.replicas:
            msg = (
                f"replication_factor ({self.replication_factor}) cannot exceed "
                f"replicas ({self.replicas})"
            )
            raise ValueError(msg)
        return self


class ReadinessConfig(BaseModel):
    """Readiness polling of the Kafka cluster."""

    interval_seconds: float = Field(default=1.0, gt=0)
    timeout_seconds: float = Field(default=600.0, gt=0)


class RetryConfig(BaseModel):
    """Outer reconcile retry and local conflict retry settings."""

    initial_wait_seconds: float = Field(default=1.0, gt=0)
    max_wait_seconds: float = Field(default=30.0, gt=0)
    # 1.0 keeps a fixed interval between attempts
    multiplier: float = Field(default=1.0, ge=1.0)
    conflict_max_attempts: int = Field(default=5, ge=1)
    conflict_wait_seconds: float = Field(default=0.1, ge=0.0)


class TransportConfig(BaseModel):
    """Top-level transport configuration for one platform deployment."""

    namespace: str = Field(min_length=1)
    transport_secret_name: str = "multicluster-global-hub-transport"
    hub_user_name: str = "global-hub-kafka-user"
    node_selector: dict[str, str] = Field(default_factory=dict)
    tolerations: list[Toleration] = Field(default_factory=list)
    image_pull_secret: str | None = None
    resources: ResourceRequirements | None = None
    kafka: KafkaClusterConfig = KafkaClusterConfig()
    readiness: ReadinessConfig = ReadinessConfig()
    retry: RetryConfig = RetryConfig()
    wait_ready: bool = True
