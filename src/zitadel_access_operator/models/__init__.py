"""
Models package - Pydantic models for type-safe resource handling.

Defines data models for:
- SecuredApplication specifications, status and the engine descriptor
- Zitadel Management API requests and responses
- Cloudflare Access API requests and responses
- Kubernetes objects owned by a SecuredApplication
"""
