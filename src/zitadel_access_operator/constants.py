"""
Constants used throughout the Zitadel access operator.

This module defines all constant values used by the operator including:
- CRD coordinates and the finalizer used for cleanup coordination
- Resource labels and annotations
- Default OIDC and Ingress configuration values
- Status condition reasons
"""

# Custom resource coordinates
API_GROUP = "access.zitadel.com"
API_VERSION = "v1alpha1"
API_GROUP_VERSION = f"{API_GROUP}/{API_VERSION}"
KIND = "SecuredApplication"
PLURAL = "securedapplications"

# Finalizer preventing removal of a SecuredApplication until
# Zitadel and Cloudflare cleanup has run
FINALIZER = "access.zitadel.com/finalizer"

# Label constants for resource identification and management
OPERATOR_LABEL_KEY = "app.kubernetes.io/managed-by"
OPERATOR_LABEL_VALUE = "zitadel-access-operator"
INSTANCE_LABEL_KEY = "access.zitadel.com/secured-application"
COMPONENT_LABEL_KEY = "access.zitadel.com/component"

COMPONENT_CREDENTIALS = "oidc-credentials"
COMPONENT_INGRESS = "ingress"

# Annotation understood by the cloudflare tunnel ingress controller
CF_BACKEND_PROTOCOL_ANNOTATION = (
    "cloudflare-tunnel-ingress-controller.strrl.dev/backend-protocol"
)

# The custom:roles claim is a flat array produced by a Zitadel Action.
# Cloudflare Access cannot match Zitadel's default nested role claim.
ROLE_CLAIM_NAME = "custom:roles"

# Cloudflare Access defaults
ACCESS_APP_TYPE = "self_hosted"
ACCESS_POLICY_NAME = "Allow Zitadel roles"
ACCESS_POLICY_DECISION = "allow"
ACCESS_POLICY_PRECEDENCE = 1
CLOUDFLARE_API_BASE_URL = "https://api.cloudflare.com/client/v4"

# Zitadel OIDC defaults
DEFAULT_RESPONSE_TYPES = ["OIDC_RESPONSE_TYPE_CODE"]
DEFAULT_GRANT_TYPES = ["OIDC_GRANT_TYPE_AUTHORIZATION_CODE"]
DEFAULT_APP_TYPE = "OIDC_APP_TYPE_WEB"
DEFAULT_AUTH_METHOD_TYPE = "OIDC_AUTH_METHOD_TYPE_BASIC"
DEFAULT_ACCESS_TOKEN_TYPE = "OIDC_TOKEN_TYPE_BEARER"
ZITADEL_TEXT_QUERY_EQUALS = "TEXT_QUERY_METHOD_EQUALS"
ZITADEL_NO_CHANGES_MARKER = "No changes"

# Credential secret
CREDENTIALS_SECRET_SUFFIX = "-oidc"
CREDENTIALS_CLIENT_ID_KEY = "clientId"
CREDENTIALS_CLIENT_SECRET_KEY = "clientSecret"

# Ingress defaults
DEFAULT_INGRESS_CLASS = "cloudflare-tunnel"
DEFAULT_INGRESS_PATH = "/"
DEFAULT_INGRESS_PATH_TYPE = "Prefix"

# Condition type constants (following Kubernetes conventions)
CONDITION_READY = "Ready"

# Condition status constants
CONDITION_TRUE = "True"
CONDITION_FALSE = "False"
CONDITION_UNKNOWN = "Unknown"

# Condition reasons, one per pipeline step outcome
REASON_RECONCILED = "Reconciled"
REASON_INVALID_SPEC = "InvalidSpec"
REASON_FINALIZER_ADD_FAILED = "FinalizerAddFailed"
REASON_FINALIZER_REMOVAL_FAILED = "FinalizerRemovalFailed"
REASON_ZITADEL_DELETE_FAILED = "ZitadelDeleteFailed"
REASON_CLOUDFLARE_DELETE_FAILED = "CloudflareDeleteFailed"
REASON_PROJECT_LOOKUP_FAILED = "ProjectLookupFailed"
REASON_PROJECT_NOT_FOUND = "ProjectNotFound"
REASON_ROLE_LOOKUP_FAILED = "RoleLookupFailed"
REASON_ROLE_NOT_FOUND = "RoleNotFound"
REASON_ZITADEL_APP_FAILED = "ZitadelAppFailed"
REASON_SECRET_FAILED = "SecretFailed"
REASON_CLOUDFLARE_LOOKUP_FAILED = "CloudflareLookupFailed"
REASON_CLOUDFLARE_UPDATE_FAILED = "CloudflareUpdateFailed"
REASON_CLOUDFLARE_CREATE_FAILED = "CloudflareCreateFailed"
REASON_POLICY_FAILED = "PolicyFailed"
REASON_INGRESS_FAILED = "IngressFailed"
REASON_UNEXPECTED_ERROR = "UnexpectedError"

# Reasons that require a spec correction rather than waiting out an outage
POLICY_FAILURE_REASONS = frozenset(
    {REASON_INVALID_SPEC, REASON_PROJECT_NOT_FOUND, REASON_ROLE_NOT_FOUND}
)

# Status write retries on optimistic concurrency conflicts
STATUS_WRITE_MAX_ATTEMPTS = 5

# Success message templates
SUCCESS_RECONCILIATION = "All resources are up to date"
