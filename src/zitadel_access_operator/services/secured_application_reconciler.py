"""
SecuredApplication reconciler - converges Zitadel, Cloudflare Access and
Kubernetes to the desired state of one SecuredApplication.

A pass runs these steps in order and stops at the first failure:

1. teardown when the resource is being deleted, otherwise ensure the finalizer
2. resolve the Zitadel project by name
3. check that every requested role exists (nothing is mutated before this)
4. update, adopt or create the Zitadel OIDC application
5. write the credential Secret when a client secret was just issued
6. update, adopt or create the Cloudflare Access application
7. update, adopt or create the role-based allow policy
8. create or update the Ingress when routing is configured
9. record success

Every failure writes a Ready=False condition together with the identifiers
resolved so far, so that a retry adopts or updates instead of creating
duplicates.
"""

import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from ..constants import (
    COMPONENT_CREDENTIALS,
    COMPONENT_INGRESS,
    KIND,
    REASON_CLOUDFLARE_CREATE_FAILED,
    REASON_CLOUDFLARE_DELETE_FAILED,
    REASON_CLOUDFLARE_LOOKUP_FAILED,
    REASON_CLOUDFLARE_UPDATE_FAILED,
    REASON_FINALIZER_ADD_FAILED,
    REASON_FINALIZER_REMOVAL_FAILED,
    REASON_INGRESS_FAILED,
    REASON_INVALID_SPEC,
    REASON_POLICY_FAILED,
    REASON_PROJECT_LOOKUP_FAILED,
    REASON_PROJECT_NOT_FOUND,
    REASON_RECONCILED,
    REASON_ROLE_LOOKUP_FAILED,
    REASON_ROLE_NOT_FOUND,
    REASON_SECRET_FAILED,
    REASON_ZITADEL_APP_FAILED,
    REASON_ZITADEL_DELETE_FAILED,
    ROLE_CLAIM_NAME,
    SUCCESS_RECONCILIATION,
)
from ..errors import ExternalServiceError, ReconciliationError
from ..models.cloudflare import AccessAppRequest, AccessPolicyRequest, OIDCClaimRule
from ..models.cluster import CredentialSecretRequest, IngressRequest, OwnerReference
from ..models.secured_application import (
    Descriptor,
    SecuredApplicationSpec,
    SecuredApplicationStatus,
)
from ..models.zitadel import OIDCApp, Project
from ..observability.metrics import metrics_collector
from ..utils.cloudflare_access import CloudflareAccessClient
from ..utils.kubernetes import (
    ClusterObjectClient,
    SecuredApplicationStore,
    resource_labels,
)
from ..utils.zitadel_admin import ZitadelClient
from .base_reconciler import BaseReconciler, ReconcileResult, ScheduleDecision


class ReconcilerConfig(BaseModel):
    """Operator-wide settings the engine needs, fixed for its lifetime."""

    model_config = ConfigDict(frozen=True)

    cloudflare_idp_id: str
    session_duration: str = "24h"
    role_claim_name: str = ROLE_CLAIM_NAME
    transient_retry_seconds: int = 30
    policy_retry_seconds: int = 300


class SecuredApplicationReconciler(BaseReconciler):
    """
    Convergence engine for SecuredApplication resources.

    Adapters are injected so the engine holds no connection state of its own
    and can be driven by in-memory fakes.
    """

    resource_type = "securedapplication"

    def __init__(
        self,
        zitadel: ZitadelClient,
        cloudflare: CloudflareAccessClient,
        cluster: ClusterObjectClient,
        store: SecuredApplicationStore,
        config: ReconcilerConfig,
    ):
        """
        Initialize the reconciler.

        Args:
            zitadel: Zitadel Management API adapter
            cloudflare: Cloudflare Access adapter
            cluster: Ingress and Secret adapter
            store: SecuredApplication finalizer and status store
            config: Operator-wide engine settings
        """
        super().__init__(store, transient_retry_seconds=config.transient_retry_seconds)
        self.zitadel = zitadel
        self.cloudflare = cloudflare
        self.cluster = cluster
        self.config = config

    @asynccontextmanager
    async def _step(self, reason: str) -> AsyncIterator[None]:
        """Turn any error raised inside the block into a failure with reason."""
        try:
            yield
        except ReconciliationError:
            raise
        except Exception as e:
            raise ReconciliationError(
                reason,
                str(e),
                retryable=not isinstance(e, ExternalServiceError) or e.retryable,
                delay=self.config.transient_retry_seconds,
                cause=e,
            ) from e

    def _policy_error(self, reason: str, message: str) -> ReconciliationError:
        return ReconciliationError(
            reason, message, retryable=False, delay=self.config.policy_retry_seconds
        )

    def _owner(self, descriptor: Descriptor) -> OwnerReference:
        return OwnerReference(name=descriptor.name, uid=descriptor.uid, kind=KIND)

    async def do_reconcile(self, descriptor: Descriptor) -> ReconcileResult:
        started = time.time()
        progress = descriptor.status.model_copy(deep=True)

        try:
            if descriptor.pending_deletion:
                return await self._teardown(descriptor)

            async with self._step(REASON_FINALIZER_ADD_FAILED):
                if not descriptor.cleanup_marker:
                    await self.store.add_finalizer(
                        descriptor.namespace, descriptor.name
                    )

            spec = self._parse_spec(descriptor)
            project = await self._resolve_project(spec)

            await self._validate_roles(spec, project)

            app = await self._converge_oidc_app(descriptor, spec, project, progress)
            if app.client_secret:
                await self._persist_credentials(descriptor, spec, app)

            await self._converge_access_app(descriptor, spec, progress)
            await self._converge_access_policy(spec, progress)

            if spec.tunnel is not None:
                await self._converge_ingress(descriptor, spec)
        except ReconciliationError as e:
            return await self._fail(descriptor, progress, e, started)

        return await self._succeed(
            descriptor, progress, REASON_RECONCILED, SUCCESS_RECONCILIATION
        )

    async def _teardown(self, descriptor: Descriptor) -> ReconcileResult:
        """
        Delete external objects and release the finalizer.

        Ingress and Secret are left to garbage collection through their owner
        references.
        """
        if not descriptor.cleanup_marker:
            return ReconcileResult(status=None, schedule=ScheduleDecision.never())

        if bool(descriptor.spec.get("deleteProtection")):
            self.logger.info(
                f"Delete protection enabled for {descriptor.namespace}/"
                f"{descriptor.name}, keeping Zitadel and Cloudflare resources",
                resource_name=descriptor.name,
                namespace=descriptor.namespace,
                step="teardown",
            )
        else:
            status = descriptor.status
            if status.zitadel_app_id and status.project_id:
                async with self._step(REASON_ZITADEL_DELETE_FAILED):
                    await self.zitadel.delete_app(
                        status.project_id, status.zitadel_app_id
                    )
            if status.access_application_id:
                async with self._step(REASON_CLOUDFLARE_DELETE_FAILED):
                    await self.cloudflare.delete_access_app(
                        status.access_application_id
                    )

        async with self._step(REASON_FINALIZER_REMOVAL_FAILED):
            await self.store.remove_finalizer(descriptor.namespace, descriptor.name)

        metrics_collector.forget_resource(descriptor.namespace, descriptor.name)
        self.logger.log_step(
            "teardown",
            descriptor.name,
            descriptor.namespace,
            f"Released {descriptor.namespace}/{descriptor.name}",
        )
        return ReconcileResult(status=None, schedule=ScheduleDecision.never())

    def _parse_spec(self, descriptor: Descriptor) -> SecuredApplicationSpec:
        try:
            return SecuredApplicationSpec.model_validate(descriptor.spec)
        except PydanticValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in e.errors()
            )
            raise self._policy_error(
                REASON_INVALID_SPEC, f"Invalid spec: {problems}"
            ) from e

    async def _resolve_project(self, spec: SecuredApplicationSpec) -> Project:
        async with self._step(REASON_PROJECT_LOOKUP_FAILED):
            project = await self.zitadel.get_project_by_name(spec.access.project)
        if project is None:
            raise self._policy_error(
                REASON_PROJECT_NOT_FOUND,
                f'Zitadel project "{spec.access.project}" not found',
            )
        return project

    async def _validate_roles(
        self, spec: SecuredApplicationSpec, project: Project
    ) -> None:
        async with self._step(REASON_ROLE_LOOKUP_FAILED):
            roles = await self.zitadel.list_project_roles(project.id)
        existing = {role.key for role in roles}
        for requested in spec.access.roles:
            if requested not in existing:
                raise self._policy_error(
                    REASON_ROLE_NOT_FOUND,
                    f'role "{requested}" does not exist in Zitadel project '
                    f'"{spec.access.project}"',
                )

    async def _converge_oidc_app(
        self,
        descriptor: Descriptor,
        spec: SecuredApplicationSpec,
        project: Project,
        progress: SecuredApplicationStatus,
    ) -> OIDCApp:
        """
        Update the known application, adopt one by name, or create one.

        projectId is only recorded together with the application ID.

        Returns:
            The application; client_secret is only set when it was created
        """
        config = spec.to_oidc_app_config(descriptor.name)

        async with self._step(REASON_ZITADEL_APP_FAILED):
            # An app ID recorded under another project is not reused
            if progress.zitadel_app_id and progress.project_id == project.id:
                try:
                    await self.zitadel.update_app(
                        project.id, progress.zitadel_app_id, config
                    )
                    return OIDCApp(
                        id=progress.zitadel_app_id, client_id=progress.client_id
                    )
                except ExternalServiceError as e:
                    if not e.is_not_found:
                        raise
                    self.logger.warning(
                        f"Zitadel application {progress.zitadel_app_id} no longer "
                        "exists, looking it up by name",
                        resource_name=descriptor.name,
                        namespace=descriptor.namespace,
                        step="oidc_app",
                    )

            existing = await self.zitadel.get_app_by_name(project.id, descriptor.name)
            if existing is not None:
                await self.zitadel.update_app(project.id, existing.id, config)
                app = existing
                action = "Adopted"
            else:
                app = await self.zitadel.create_app(project.id, config)
                action = "Created"

        progress.project_id = project.id
        progress.zitadel_app_id = app.id
        progress.client_id = app.client_id
        self.logger.log_step(
            "oidc_app",
            descriptor.name,
            descriptor.namespace,
            f"{action} Zitadel OIDC application {app.id} (client {app.client_id})",
        )
        return app

    async def _persist_credentials(
        self, descriptor: Descriptor, spec: SecuredApplicationSpec, app: OIDCApp
    ) -> None:
        request = CredentialSecretRequest(
            name=spec.credentials_secret_name(descriptor.name),
            namespace=descriptor.namespace,
            client_id=app.client_id,
            client_secret=app.client_secret,
            labels=resource_labels(descriptor.name, COMPONENT_CREDENTIALS),
        )
        async with self._step(REASON_SECRET_FAILED):
            await self.cluster.apply_credentials_secret(
                request, self._owner(descriptor)
            )
        metrics_collector.record_secret_write(descriptor.namespace)
        self.logger.log_step(
            "credentials",
            descriptor.name,
            descriptor.namespace,
            f"Wrote OIDC credentials to secret {request.name}",
        )

    async def _converge_access_app(
        self,
        descriptor: Descriptor,
        spec: SecuredApplicationSpec,
        progress: SecuredApplicationStatus,
    ) -> None:
        request = AccessAppRequest(
            name=descriptor.name,
            domain=spec.host,
            session_duration=self.config.session_duration,
        )

        current = None
        if progress.access_application_id:
            async with self._step(REASON_CLOUDFLARE_LOOKUP_FAILED):
                current = await self.cloudflare.get_access_app(
                    progress.access_application_id
                )
            if current is None:
                # Removed out of band; the policy went with it
                progress.access_application_id = ""
                progress.access_policy_id = ""

        if current is None:
            async with self._step(REASON_CLOUDFLARE_LOOKUP_FAILED):
                current = await self.cloudflare.find_access_app_by_domain(spec.host)
            if current is not None:
                self.logger.log_step(
                    "access_app",
                    descriptor.name,
                    descriptor.namespace,
                    f"Adopting Cloudflare access application {current.id}",
                )

        if current is None:
            async with self._step(REASON_CLOUDFLARE_CREATE_FAILED):
                created = await self.cloudflare.create_access_app(request)
            progress.access_application_id = created.id
            return

        if current.id != progress.access_application_id:
            progress.access_application_id = current.id
            progress.access_policy_id = ""

        if not current.matches(request):
            async with self._step(REASON_CLOUDFLARE_UPDATE_FAILED):
                await self.cloudflare.update_access_app(current.id, request)

    async def _converge_access_policy(
        self, spec: SecuredApplicationSpec, progress: SecuredApplicationStatus
    ) -> None:
        """Converge the whole rule set: one OIDC claim rule per role."""
        app_id = progress.access_application_id
        request = AccessPolicyRequest.from_rules(
            [
                OIDCClaimRule(
                    identity_provider_id=self.config.cloudflare_idp_id,
                    claim_name=self.config.role_claim_name,
                    claim_value=role,
                )
                for role in spec.access.roles
            ]
        )

        async with self._step(REASON_POLICY_FAILED):
            current = None
            if progress.access_policy_id:
                current = await self.cloudflare.get_access_policy(
                    app_id, progress.access_policy_id
                )
            if current is None:
                current = await self.cloudflare.find_access_policy_by_name(
                    app_id, request.name
                )

            if current is None:
                current = await self.cloudflare.create_access_policy(app_id, request)
            elif not current.matches(request):
                await self.cloudflare.update_access_policy(app_id, current.id, request)

        progress.access_policy_id = current.id

    async def _converge_ingress(
        self, descriptor: Descriptor, spec: SecuredApplicationSpec
    ) -> None:
        backend = spec.tunnel.backend
        request = IngressRequest(
            name=descriptor.name,
            namespace=descriptor.namespace,
            host=spec.host,
            path=spec.ingress_path(),
            path_type=spec.ingress_path_type(),
            service_name=backend.service_name,
            service_port=backend.service_port,
            ingress_class_name=spec.ingress_class_name(),
            annotations=spec.ingress_annotations(),
            labels=resource_labels(descriptor.name, COMPONENT_INGRESS),
        )
        async with self._step(REASON_INGRESS_FAILED):
            result = await self.cluster.apply_ingress(request, self._owner(descriptor))
        self.logger.log_step(
            "ingress",
            descriptor.name,
            descriptor.namespace,
            f"Ingress {descriptor.namespace}/{descriptor.name} {result}",
        )
