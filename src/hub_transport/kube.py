"""Async wrapper around the Kubernetes API for Strimzi custom resources and secrets."""

from __future__ import annotations

import asyncio
import base64
from collections.abc import Callable
from functools import partial
from typing import Any, TypeVar

import structlog
from kubernetes import client, config
from kubernetes.client.rest import ApiException

logger = structlog.get_logger()

STRIMZI_GROUP = "kafka.strimzi.io"
STRIMZI_VERSION = "v1beta2"
STRIMZI_API_VERSION = f"{STRIMZI_GROUP}/{STRIMZI_VERSION}"

KAFKAS = "kafkas"
KAFKA_USERS = "kafkausers"
KAFKA_TOPICS = "kafkatopics"

_T = TypeVar("_T")


def is_not_found(exc: BaseException) -> bool:
    return isinstance(exc, ApiException) and exc.status == 404


def is_conflict(exc: BaseException) -> bool:
    return isinstance(exc, ApiException) and exc.status == 409


def load_api_client() -> client.ApiClient:
    """Build an ApiClient from in-cluster config, falling back to kubeconfig."""
    try:
        config.load_incluster_config()
        logger.info("kube.config_loaded", source="incluster")
    except config.ConfigException:
        config.load_kube_config()
        logger.info("kube.config_loaded", source="kubeconfig")
    return client.ApiClient()


class KubeClient:
    """Namespaced access to Strimzi resources and secrets.

    The kubernetes client is blocking, so every call runs in the default
    executor. A missing object is reported as ``None`` (or ``False`` for
    deletes); every other API failure propagates as ``ApiException``.
    """

    def __init__(
        self, namespace: str, api_client: client.ApiClient | None = None
    ) -> None:
        self._namespace = namespace
        api_client = api_client or load_api_client()
        self._custom = client.CustomObjectsApi(api_client)
        self._core = client.CoreV1Api(api_client)

    @property
    def namespace(self) -> str:
        return self._namespace

    async def _call(self, fn: Callable[..., _T], **kwargs: Any) -> _T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(fn, **kwargs))

    # -- Custom resources --------------------------------------------------------

    async def get_custom(self, plural: str, name: str) -> dict[str, Any] | None:
        try:
            return await self._call(
                self._custom.get_namespaced_custom_object,
                group=STRIMZI_GROUP,
                version=STRIMZI_VERSION,
                namespace=self._namespace,
                plural=plural,
                name=name,
            )
        except ApiException as exc:
            if is_not_found(exc):
                return None
            raise

    async def create_custom(self, plural: str, body: dict[str, Any]) -> dict[str, Any]:
        created = await self._call(
            self._custom.create_namespaced_custom_object,
            group=STRIMZI_GROUP,
            version=STRIMZI_VERSION,
            namespace=self._namespace,
            plural=plural,
            body=body,
        )
        logger.debug("kube.created", plural=plural, name=body["metadata"]["name"])
        return created

    async def replace_custom(
        self, plural: str, name: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        """Replace the object; ``body`` must carry the read resourceVersion."""
        replaced = await self._call(
            self._custom.replace_namespaced_custom_object,
            group=STRIMZI_GROUP,
            version=STRIMZI_VERSION,
            namespace=self._namespace,
            plural=plural,
            name=name,
            body=body,
        )
        logger.debug("kube.replaced", plural=plural, name=name)
        return replaced

    async def delete_custom(self, plural: str, name: str) -> bool:
        try:
            await self._call(
                self._custom.delete_namespaced_custom_object,
                group=STRIMZI_GROUP,
                version=STRIMZI_VERSION,
                namespace=self._namespace,
                plural=plural,
                name=name,
            )
        except ApiException as exc:
            if is_not_found(exc):
                return False
            raise
        logger.debug("kube.deleted", plural=plural, name=name)
        return True

    # -- Secrets -------------------------------------------------------------------

    async def get_secret(self, name: str) -> dict[str, bytes] | None:
        """Return the secret's decoded data, or ``None`` when it doesn't exist."""
        try:
            secret = await self._call(
                self._core.read_namespaced_secret,
                name=name,
                namespace=self._namespace,
            )
        except ApiException as exc:
            if is_not_found(exc):
                return None
            raise
        return {k: base64.b64decode(v) for k, v in (secret.data or {}).items()}
