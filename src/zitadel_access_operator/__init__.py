"""
Zitadel Access Operator - Kubernetes operator that secures applications with
Zitadel and Cloudflare Access.

A SecuredApplication resource is converged into:
- A Zitadel OIDC application inside an existing Zitadel project
- A Cloudflare Access application guarded by a role-claim allow policy
- An optional Ingress routing traffic through a Cloudflare tunnel
- A Kubernetes Secret holding the OIDC client credentials
"""

__version__ = "0.1.0"
