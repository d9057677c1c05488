"""
Utils package - Adapters and helpers for Zitadel access operator functionality.

Contains helper modules for:
- Zitadel Management API interactions
- Cloudflare Access API interactions
- Kubernetes resource management and the SecuredApplication store
- Ready condition tracking
"""

from zitadel_access_operator.utils.cloudflare_access import CloudflareAccessClient
from zitadel_access_operator.utils.kubernetes import (
    ClusterObjectClient,
    SecuredApplicationStore,
    link_ownership,
)
from zitadel_access_operator.utils.zitadel_admin import ZitadelClient

__all__ = [
    "CloudflareAccessClient",
    "ClusterObjectClient",
    "SecuredApplicationStore",
    "ZitadelClient",
    "link_ownership",
]
