"""
Typed requests for the Kubernetes objects owned by a SecuredApplication.
"""

from pydantic import BaseModel, ConfigDict, Field

from ..constants import API_GROUP_VERSION, KIND


class OwnerReference(BaseModel):
    """Owner of a cluster-native object, used for garbage collection."""

    model_config = ConfigDict(frozen=True)

    name: str
    uid: str
    kind: str = KIND
    api_version: str = API_GROUP_VERSION


class IngressRequest(BaseModel):
    """A single-host, single-path Ingress pointing at one Service port."""

    name: str
    namespace: str
    host: str
    path: str
    path_type: str
    service_name: str
    service_port: int
    ingress_class_name: str
    annotations: dict[str, str] = Field(default_factory=dict)
    labels: dict[str, str] = Field(default_factory=dict)


class CredentialSecretRequest(BaseModel):
    """The OIDC client credentials written once, right after app creation."""

    name: str
    namespace: str
    client_id: str
    client_secret: str = Field(..., repr=False)
    labels: dict[str, str] = Field(default_factory=dict)
