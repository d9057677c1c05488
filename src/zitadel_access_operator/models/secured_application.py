"""
Pydantic models for SecuredApplication resources.

This module defines type-safe data models for the SecuredApplication
specification and status, plus the Descriptor value handed to the
convergence engine for a single pass.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..constants import (
    CF_BACKEND_PROTOCOL_ANNOTATION,
    CREDENTIALS_SECRET_SUFFIX,
    DEFAULT_ACCESS_TOKEN_TYPE,
    DEFAULT_APP_TYPE,
    DEFAULT_AUTH_METHOD_TYPE,
    DEFAULT_GRANT_TYPES,
    DEFAULT_INGRESS_CLASS,
    DEFAULT_INGRESS_PATH,
    DEFAULT_INGRESS_PATH_TYPE,
    DEFAULT_RESPONSE_TYPES,
)
from .zitadel import OIDCAppConfig


class Access(BaseModel):
    """Zitadel project and roles required to reach the application."""

    model_config = {"populate_by_name": True}

    project: str = Field(..., min_length=1, description="Zitadel project name")
    roles: list[str] = Field(
        ..., min_length=1, description="Zitadel project roles allowed access"
    )

    @field_validator("roles")
    @classmethod
    def validate_roles(cls, v: list[str]) -> list[str]:
        if any(not role for role in v):
            raise ValueError("Role names must not be empty")
        # Keep first occurrence order, drop duplicates
        return list(dict.fromkeys(v))


class OIDCConfig(BaseModel):
    """Overrides for the Zitadel OIDC application."""

    model_config = {"populate_by_name": True}

    redirect_uris: list[str] = Field(
        default_factory=list,
        alias="redirectURIs",
        description="Defaults to https://{host}/callback",
    )
    post_logout_redirect_uris: list[str] = Field(
        default_factory=list, alias="postLogoutRedirectURIs"
    )
    response_types: list[str] = Field(default_factory=list, alias="responseTypes")
    grant_types: list[str] = Field(default_factory=list, alias="grantTypes")
    app_type: str | None = Field(None, alias="appType")
    auth_method_type: str | None = Field(None, alias="authMethodType")
    access_token_type: str | None = Field(None, alias="accessTokenType")
    dev_mode: bool = Field(
        False, alias="devMode", description="Allow http redirect URIs"
    )
    id_token_role_assertion: bool = Field(False, alias="idTokenRoleAssertion")
    id_token_userinfo_assertion: bool = Field(False, alias="idTokenUserinfoAssertion")
    access_token_role_assertion: bool = Field(False, alias="accessTokenRoleAssertion")
    client_secret_ref: str | None = Field(
        None,
        alias="clientSecretRef",
        description="Name of the Secret receiving the OIDC credentials",
    )


class Backend(BaseModel):
    """Kubernetes Service the Ingress routes to."""

    model_config = {"populate_by_name": True}

    service_name: str = Field(..., min_length=1, alias="serviceName")
    service_port: int = Field(..., ge=1, le=65535, alias="servicePort")
    protocol: str | None = Field(
        None, description="Backend protocol override (e.g. https)"
    )


class IngressConfig(BaseModel):
    """Overrides for the generated Ingress."""

    model_config = {"populate_by_name": True}

    class_name: str | None = Field(None, alias="className")
    annotations: dict[str, str] = Field(default_factory=dict)
    path: str | None = None
    path_type: Literal["Prefix", "Exact", "ImplementationSpecific"] | None = Field(
        None, alias="pathType"
    )


class TunnelConfig(BaseModel):
    """Routing configuration. When absent no Ingress is created."""

    model_config = {"populate_by_name": True}

    backend: Backend
    ingress: IngressConfig | None = None


class SecuredApplicationSpec(BaseModel):
    """
    Specification for a SecuredApplication resource.

    Registers an OIDC application in Zitadel, protects the host with a
    Cloudflare Access policy based on Zitadel roles, and optionally routes
    traffic to a backend Service.
    """

    model_config = {"populate_by_name": True}

    host: str = Field(..., min_length=1, description="Public hostname")
    access: Access
    oidc: OIDCConfig | None = None
    tunnel: TunnelConfig | None = None
    delete_protection: bool = Field(
        False,
        alias="deleteProtection",
        description="Keep Zitadel and Cloudflare resources when deleted",
    )

    @field_validator("host")
    @classmethod
    def validate_host(cls, v: str) -> str:
        if "://" in v or "/" in v:
            raise ValueError("host must be a bare hostname without scheme or path")
        return v.lower()

    def to_oidc_app_config(self, app_name: str) -> OIDCAppConfig:
        """Resolve OIDC overrides against the fixed defaults."""
        oidc = self.oidc or OIDCConfig()
        return OIDCAppConfig(
            name=app_name,
            redirect_uris=oidc.redirect_uris or [f"https://{self.host}/callback"],
            post_logout_redirect_uris=oidc.post_logout_redirect_uris,
            response_types=oidc.response_types or list(DEFAULT_RESPONSE_TYPES),
            grant_types=oidc.grant_types or list(DEFAULT_GRANT_TYPES),
            app_type=oidc.app_type or DEFAULT_APP_TYPE,
            auth_method_type=oidc.auth_method_type or DEFAULT_AUTH_METHOD_TYPE,
            access_token_type=oidc.access_token_type or DEFAULT_ACCESS_TOKEN_TYPE,
            dev_mode=oidc.dev_mode,
            id_token_role_assertion=oidc.id_token_role_assertion,
            id_token_userinfo_assertion=oidc.id_token_userinfo_assertion,
            access_token_role_assertion=oidc.access_token_role_assertion,
        )

    def credentials_secret_name(self, resource_name: str) -> str:
        if self.oidc and self.oidc.client_secret_ref:
            return self.oidc.client_secret_ref
        return f"{resource_name}{CREDENTIALS_SECRET_SUFFIX}"

    def ingress_class_name(self) -> str:
        ingress = self.tunnel.ingress if self.tunnel else None
        if ingress and ingress.class_name:
            return ingress.class_name
        return DEFAULT_INGRESS_CLASS

    def ingress_path(self) -> str:
        ingress = self.tunnel.ingress if self.tunnel else None
        if ingress and ingress.path:
            return ingress.path
        return DEFAULT_INGRESS_PATH

    def ingress_path_type(self) -> str:
        ingress = self.tunnel.ingress if self.tunnel else None
        if ingress and ingress.path_type:
            return ingress.path_type
        return DEFAULT_INGRESS_PATH_TYPE

    def ingress_annotations(self) -> dict[str, str]:
        """User annotations plus the backend protocol annotation, if any."""
        if not self.tunnel:
            return {}
        annotations: dict[str, str] = {}
        if self.tunnel.ingress:
            annotations.update(self.tunnel.ingress.annotations)
        if self.tunnel.backend.protocol:
            annotations[CF_BACKEND_PROTOCOL_ANNOTATION] = self.tunnel.backend.protocol
        return annotations


class Condition(BaseModel):
    """A Kubernetes-style status condition."""

    model_config = {"populate_by_name": True}

    type: str
    status: Literal["True", "False", "Unknown"]
    reason: str
    message: str = ""
    last_transition_time: str = Field(..., alias="lastTransitionTime")
    observed_generation: int | None = Field(None, alias="observedGeneration")


class SecuredApplicationStatus(BaseModel):
    """
    Status persisted on the SecuredApplication status sub-resource.

    The OIDC client secret is never part of the status.
    """

    model_config = {"populate_by_name": True}

    project_id: str = Field("", alias="projectId")
    zitadel_app_id: str = Field("", alias="zitadelAppId")
    client_id: str = Field("", alias="clientId")
    access_application_id: str = Field("", alias="accessApplicationId")
    access_policy_id: str = Field("", alias="accessPolicyId")
    ready: bool = False
    conditions: list[Condition] = Field(default_factory=list)
    observed_generation: int | None = Field(None, alias="observedGeneration")

    @classmethod
    def from_status(cls, status: dict[str, Any] | None) -> "SecuredApplicationStatus":
        """Parse a raw status dict, ignoring keys owned by other writers."""
        if not status:
            return cls()
        known = {
            key: value
            for key, value in status.items()
            if key
            in {
                "projectId",
                "zitadelAppId",
                "clientId",
                "accessApplicationId",
                "accessPolicyId",
                "ready",
                "conditions",
                "observedGeneration",
            }
            and value is not None
        }
        return cls.model_validate(known)

    def to_status(self) -> dict[str, Any]:
        """Serialize for the Kubernetes API."""
        return self.model_dump(by_alias=True, exclude_none=True)


class Descriptor(BaseModel):
    """
    Everything the convergence engine needs for one pass.

    Lifecycle is expressed through two flags instead of platform deletion
    semantics: pending_deletion mirrors metadata.deletionTimestamp and
    cleanup_marker mirrors the presence of the operator finalizer.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    namespace: str
    uid: str
    generation: int = 0
    spec: dict[str, Any]
    status: SecuredApplicationStatus = Field(default_factory=SecuredApplicationStatus)
    pending_deletion: bool = False
    cleanup_marker: bool = False

    @classmethod
    def from_body(
        cls,
        meta: dict[str, Any],
        spec: dict[str, Any],
        status: dict[str, Any] | None,
        finalizer: str,
    ) -> "Descriptor":
        """Build a descriptor from the pieces kopf hands to a handler."""
        return cls(
            name=meta["name"],
            namespace=meta["namespace"],
            uid=meta.get("uid", ""),
            generation=meta.get("generation") or 0,
            spec=dict(spec or {}),
            status=SecuredApplicationStatus.from_status(status),
            pending_deletion=bool(meta.get("deletionTimestamp")),
            cleanup_marker=finalizer in (meta.get("finalizers") or []),
        )
