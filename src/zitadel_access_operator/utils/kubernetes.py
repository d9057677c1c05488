"""
Kubernetes utilities for the Zitadel access operator.

This module provides helper functions for interacting with the Kubernetes API:
- Kubernetes client management and configuration
- Owner references linking generated objects to their SecuredApplication
- Idempotent create-or-update of the Ingress and the credential Secret
- Finalizer and status writes on SecuredApplication objects, retried on
  optimistic concurrency conflicts

The kubernetes client is synchronous; the async wrappers run each call in a
worker thread so the event loop is never blocked.
"""

import asyncio
import base64
import logging
from collections.abc import Callable
from typing import Any

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from ..constants import (
    API_GROUP,
    API_VERSION,
    COMPONENT_CREDENTIALS,
    COMPONENT_INGRESS,
    COMPONENT_LABEL_KEY,
    CREDENTIALS_CLIENT_ID_KEY,
    CREDENTIALS_CLIENT_SECRET_KEY,
    FINALIZER,
    INSTANCE_LABEL_KEY,
    OPERATOR_LABEL_KEY,
    OPERATOR_LABEL_VALUE,
    PLURAL,
    STATUS_WRITE_MAX_ATTEMPTS,
)
from ..errors import KubernetesAPIError
from ..models.cluster import CredentialSecretRequest, IngressRequest, OwnerReference
from ..models.secured_application import SecuredApplicationStatus

logger = logging.getLogger(__name__)

# Results of an apply call
APPLY_CREATED = "created"
APPLY_UPDATED = "updated"
APPLY_UNCHANGED = "unchanged"


def get_kubernetes_client() -> client.ApiClient:
    """
    Get configured Kubernetes API client.

    Tries the in-cluster service account first and falls back to the local
    kubeconfig for development.

    Returns:
        Configured Kubernetes API client
    """
    try:
        config.load_incluster_config()
        logger.debug("Loaded in-cluster Kubernetes configuration")
    except config.ConfigException:
        try:
            config.load_kube_config()
            logger.debug("Loaded kubeconfig from local environment")
        except config.ConfigException as e:
            logger.error(f"Failed to load Kubernetes configuration: {e}")
            raise

    return client.ApiClient()


def _api_error(action: str, e: ApiException) -> KubernetesAPIError:
    return KubernetesAPIError(
        f"Failed to {action}: {e.status} {e.reason}",
        reason=e.reason,
        retryable=e.status is None or e.status >= 500 or e.status in (409, 429),
        status_code=e.status,
    )


def resource_labels(instance: str, component: str) -> dict[str, str]:
    return {
        OPERATOR_LABEL_KEY: OPERATOR_LABEL_VALUE,
        INSTANCE_LABEL_KEY: instance,
        COMPONENT_LABEL_KEY: component,
    }


def link_ownership(resource: Any, owner: OwnerReference) -> None:
    """
    Make owner the controlling owner of resource for garbage collection.

    An existing reference to the same owner UID is replaced, so calling this
    repeatedly leaves exactly one reference.

    Args:
        resource: Kubernetes model object with a metadata attribute
        owner: The SecuredApplication owning the resource
    """
    if resource.metadata.owner_references is None:
        resource.metadata.owner_references = []

    owner_ref = client.V1OwnerReference(
        api_version=owner.api_version,
        kind=owner.kind,
        name=owner.name,
        uid=owner.uid,
        controller=True,
        block_owner_deletion=True,
    )

    resource.metadata.owner_references = [
        ref for ref in resource.metadata.owner_references if ref.uid != owner.uid
    ] + [owner_ref]


def is_owned_by(resource: Any, owner: OwnerReference) -> bool:
    for ref in resource.metadata.owner_references or []:
        if ref.uid == owner.uid and ref.controller and ref.block_owner_deletion:
            return True
    return False


def build_ingress(request: IngressRequest, owner: OwnerReference) -> client.V1Ingress:
    """Render the desired Ingress for a SecuredApplication."""
    ingress = client.V1Ingress(
        api_version="networking.k8s.io/v1",
        kind="Ingress",
        metadata=client.V1ObjectMeta(
            name=request.name,
            namespace=request.namespace,
            labels=dict(request.labels)
            or resource_labels(request.name, COMPONENT_INGRESS),
            annotations=dict(request.annotations),
        ),
        spec=client.V1IngressSpec(
            ingress_class_name=request.ingress_class_name,
            rules=[
                client.V1IngressRule(
                    host=request.host,
                    http=client.V1HTTPIngressRuleValue(
                        paths=[
                            client.V1HTTPIngressPath(
                                path=request.path,
                                path_type=request.path_type,
                                backend=client.V1IngressBackend(
                                    service=client.V1IngressServiceBackend(
                                        name=request.service_name,
                                        port=client.V1ServiceBackendPort(
                                            number=request.service_port
                                        ),
                                    )
                                ),
                            )
                        ]
                    ),
                )
            ],
        ),
    )
    link_ownership(ingress, owner)
    return ingress


def _ingress_route(ingress: client.V1Ingress) -> tuple | None:
    """Flatten the fields of an Ingress this operator manages for comparison."""
    spec = ingress.spec
    if spec is None or not spec.rules or len(spec.rules) != 1:
        return None
    rule = spec.rules[0]
    if rule.http is None or not rule.http.paths or len(rule.http.paths) != 1:
        return None
    path = rule.http.paths[0]
    service = path.backend.service if path.backend else None
    if service is None or service.port is None:
        return None
    return (
        spec.ingress_class_name,
        rule.host,
        path.path,
        path.path_type,
        service.name,
        service.port.number,
    )


def ingress_matches(existing: client.V1Ingress, desired: client.V1Ingress) -> bool:
    """True when existing already has the desired route, annotations and labels."""
    existing_labels = existing.metadata.labels or {}
    desired_labels = desired.metadata.labels or {}
    return (
        _ingress_route(existing) == _ingress_route(desired)
        and (existing.metadata.annotations or {})
        == (desired.metadata.annotations or {})
        and all(existing_labels.get(k) == v for k, v in desired_labels.items())
    )


def _encode(value: str) -> str:
    return base64.b64encode(value.encode()).decode()


def build_credentials_secret(
    request: CredentialSecretRequest, owner: OwnerReference
) -> client.V1Secret:
    """Render the Secret holding the OIDC client credentials."""
    secret = client.V1Secret(
        api_version="v1",
        kind="Secret",
        metadata=client.V1ObjectMeta(
            name=request.name,
            namespace=request.namespace,
            labels=dict(request.labels)
            or resource_labels(owner.name, COMPONENT_CREDENTIALS),
        ),
        type="Opaque",
        data={
            CREDENTIALS_CLIENT_ID_KEY: _encode(request.client_id),
            CREDENTIALS_CLIENT_SECRET_KEY: _encode(request.client_secret),
        },
    )
    link_ownership(secret, owner)
    return secret


class ClusterObjectClient:
    """
    Create-or-update of the cluster objects owned by a SecuredApplication.

    Writes are skipped when the stored object already matches. Objects are
    never deleted here; garbage collection follows the owner reference.
    """

    def __init__(self, api_client: client.ApiClient | None = None):
        self._api_client = api_client

    @property
    def api_client(self) -> client.ApiClient:
        if self._api_client is None:
            self._api_client = get_kubernetes_client()
        return self._api_client

    async def apply_ingress(
        self, request: IngressRequest, owner: OwnerReference
    ) -> str:
        """
        Create or update the Ingress described by request.

        Args:
            request: Desired Ingress
            owner: SecuredApplication owning the Ingress

        Returns:
            One of "created", "updated" or "unchanged"

        Raises:
            KubernetesAPIError: If a read or write fails
        """
        return await asyncio.to_thread(self._apply_ingress, request, owner)

    def _apply_ingress(self, request: IngressRequest, owner: OwnerReference) -> str:
        api = client.NetworkingV1Api(self.api_client)
        desired = build_ingress(request, owner)

        try:
            existing = api.read_namespaced_ingress(request.name, request.namespace)
        except ApiException as e:
            if e.status != 404:
                raise _api_error(f"read ingress {request.name}", e) from e
            existing = None

        try:
            if existing is None:
                api.create_namespaced_ingress(request.namespace, desired)
                logger.info(f"Created ingress {request.namespace}/{request.name}")
                return APPLY_CREATED

            if ingress_matches(existing, desired) and is_owned_by(existing, owner):
                return APPLY_UNCHANGED

            existing.spec = desired.spec
            existing.metadata.annotations = desired.metadata.annotations
            existing.metadata.labels = {
                **(existing.metadata.labels or {}),
                **desired.metadata.labels,
            }
            link_ownership(existing, owner)
            api.replace_namespaced_ingress(request.name, request.namespace, existing)
            logger.info(f"Updated ingress {request.namespace}/{request.name}")
            return APPLY_UPDATED
        except ApiException as e:
            raise _api_error(f"apply ingress {request.name}", e) from e

    async def apply_credentials_secret(
        self, request: CredentialSecretRequest, owner: OwnerReference
    ) -> str:
        """
        Create or update the Secret holding the OIDC client credentials.

        Returns:
            One of "created", "updated" or "unchanged"

        Raises:
            KubernetesAPIError: If a read or write fails
        """
        return await asyncio.to_thread(self._apply_credentials_secret, request, owner)

    def _apply_credentials_secret(
        self, request: CredentialSecretRequest, owner: OwnerReference
    ) -> str:
        api = client.CoreV1Api(self.api_client)
        desired = build_credentials_secret(request, owner)

        try:
            existing = api.read_namespaced_secret(request.name, request.namespace)
        except ApiException as e:
            if e.status != 404:
                raise _api_error(f"read secret {request.name}", e) from e
            existing = None

        try:
            if existing is None:
                api.create_namespaced_secret(request.namespace, desired)
                logger.info(f"Created secret {request.namespace}/{request.name}")
                return APPLY_CREATED

            if (existing.data or {}) == desired.data and is_owned_by(existing, owner):
                return APPLY_UNCHANGED

            existing.data = desired.data
            existing.string_data = None
            existing.type = desired.type
            existing.metadata.labels = {
                **(existing.metadata.labels or {}),
                **desired.metadata.labels,
            }
            link_ownership(existing, owner)
            api.replace_namespaced_secret(request.name, request.namespace, existing)
            logger.info(f"Updated secret {request.namespace}/{request.name}")
            return APPLY_UPDATED
        except ApiException as e:
            raise _api_error(f"apply secret {request.name}", e) from e


class SecuredApplicationStore:
    """
    Reads and writes SecuredApplication objects.

    Finalizer and status changes use read-modify-replace with the object's
    resourceVersion; a 409 Conflict re-reads the object and re-applies the
    change, up to STATUS_WRITE_MAX_ATTEMPTS times. A missing object is a no-op.
    """

    def __init__(
        self,
        api_client: client.ApiClient | None = None,
        max_attempts: int = STATUS_WRITE_MAX_ATTEMPTS,
    ):
        self._api_client = api_client
        self.max_attempts = max_attempts

    @property
    def api_client(self) -> client.ApiClient:
        if self._api_client is None:
            self._api_client = get_kubernetes_client()
        return self._api_client

    async def add_finalizer(self, namespace: str, name: str) -> None:
        """Add the operator finalizer if it is not present yet."""

        def mutate(obj: dict[str, Any]) -> bool:
            finalizers = obj["metadata"].setdefault("finalizers", [])
            if FINALIZER in finalizers:
                return False
            finalizers.append(FINALIZER)
            return True

        await asyncio.to_thread(self._modify, namespace, name, mutate, False)

    async def remove_finalizer(self, namespace: str, name: str) -> None:
        def mutate(obj: dict[str, Any]) -> bool:
            finalizers = obj["metadata"].get("finalizers") or []
            if FINALIZER not in finalizers:
                return False
            obj["metadata"]["finalizers"] = [f for f in finalizers if f != FINALIZER]
            return True

        await asyncio.to_thread(self._modify, namespace, name, mutate, False)

    async def write_status(
        self, namespace: str, name: str, status: SecuredApplicationStatus
    ) -> None:
        """
        Persist status through the status sub-resource.

        Keys written by other actors are preserved; every key of status
        replaces the stored value.
        """
        payload = status.to_status()

        def mutate(obj: dict[str, Any]) -> bool:
            current = obj.get("status") or {}
            merged = {**current, **payload}
            if merged == current:
                return False
            obj["status"] = merged
            return True

        await asyncio.to_thread(self._modify, namespace, name, mutate, True)

    def _modify(
        self,
        namespace: str,
        name: str,
        mutate: Callable[[dict[str, Any]], bool],
        status_subresource: bool,
    ) -> None:
        api = client.CustomObjectsApi(self.api_client)

        for attempt in range(1, self.max_attempts + 1):
            try:
                obj = api.get_namespaced_custom_object(
                    API_GROUP, API_VERSION, namespace, PLURAL, name
                )
            except ApiException as e:
                if e.status == 404:
                    logger.debug(f"SecuredApplication {namespace}/{name} is gone")
                    return
                raise _api_error(f"read SecuredApplication {name}", e) from e

            if not mutate(obj):
                return

            # The body carries metadata.resourceVersion from the read above
            try:
                if status_subresource:
                    api.replace_namespaced_custom_object_status(
                        API_GROUP, API_VERSION, namespace, PLURAL, name, obj
                    )
                else:
                    api.replace_namespaced_custom_object(
                        API_GROUP, API_VERSION, namespace, PLURAL, name, obj
                    )
                return
            except ApiException as e:
                if e.status == 404:
                    return
                if e.status == 409 and attempt < self.max_attempts:
                    logger.debug(
                        f"Conflict writing SecuredApplication {namespace}/{name}, "
                        f"retrying ({attempt}/{self.max_attempts})"
                    )
                    continue
                raise _api_error(f"update SecuredApplication {name}", e) from e
