"""
Cloudflare Access API client utilities.

Covers the account-scoped Access endpoints the operator uses: self-hosted
access applications and their allow policies. Every response is wrapped in
the Cloudflare v4 envelope ({"success", "errors", "result", "result_info"}).
"""

import logging
from typing import Any

import httpx

from ..constants import CLOUDFLARE_API_BASE_URL
from ..errors import CloudflareAPIError
from ..models.cloudflare import (
    AccessApp,
    AccessAppRequest,
    AccessPolicy,
    AccessPolicyRequest,
)
from .http_client import BaseAPIClient

logger = logging.getLogger(__name__)

# Page size for list endpoints
PER_PAGE = 50


class CloudflareAccessClient(BaseAPIClient):
    """Client for Cloudflare Access applications and policies of one account."""

    service_name = "cloudflare"
    error_class = CloudflareAPIError

    def __init__(
        self,
        account_id: str,
        token: str,
        timeout: float = 30.0,
        base_url: str = CLOUDFLARE_API_BASE_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(base_url, token, timeout=timeout, transport=transport)
        self.account_id = account_id

    @property
    def _apps_path(self) -> str:
        return f"/accounts/{self.account_id}/access/apps"

    async def _call(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send a request and unwrap the v4 envelope."""
        response = await self._make_request(method, path, json=json, params=params)
        envelope = response.json() if response.content else {}
        if envelope.get("success") is False:
            raise CloudflareAPIError(
                f"{method} {path} reported errors: {envelope.get('errors')}",
                status_code=response.status_code,
                response_body=response.text,
            )
        return envelope

    async def _list(self, path: str) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        page = 1
        while True:
            envelope = await self._call(
                "GET", path, params={"page": page, "per_page": PER_PAGE}
            )
            items.extend(envelope.get("result") or [])
            total_pages = (envelope.get("result_info") or {}).get("total_pages") or 1
            if page >= total_pages:
                return items
            page += 1

    async def list_access_apps(self) -> list[AccessApp]:
        items = await self._list(self._apps_path)
        return [AccessApp.model_validate(item) for item in items]

    async def find_access_app_by_domain(self, domain: str) -> AccessApp | None:
        """
        Find the access application protecting a domain.

        Args:
            domain: Hostname to match exactly

        Returns:
            The application, or None when no application uses the domain
        """
        for app in await self.list_access_apps():
            if app.domain == domain:
                return app
        return None

    async def get_access_app(self, app_id: str) -> AccessApp | None:
        try:
            envelope = await self._call("GET", f"{self._apps_path}/{app_id}")
        except CloudflareAPIError as e:
            if e.is_not_found:
                return None
            raise
        return AccessApp.model_validate(envelope["result"])

    async def create_access_app(self, request: AccessAppRequest) -> AccessApp:
        envelope = await self._call("POST", self._apps_path, json=request.model_dump())
        app = AccessApp.model_validate(envelope["result"])
        logger.info(
            f"Created Cloudflare access application {request.domain} ({app.id})"
        )
        return app

    async def update_access_app(
        self, app_id: str, request: AccessAppRequest
    ) -> AccessApp:
        envelope = await self._call(
            "PUT", f"{self._apps_path}/{app_id}", json=request.model_dump()
        )
        return AccessApp.model_validate(envelope["result"])

    async def delete_access_app(self, app_id: str) -> None:
        """Delete an access application; a missing application is not an error."""
        try:
            await self._call("DELETE", f"{self._apps_path}/{app_id}")
            logger.info(f"Deleted Cloudflare access application {app_id}")
        except CloudflareAPIError as e:
            if e.is_not_found:
                logger.info(f"Cloudflare access application {app_id} already deleted")
                return
            raise

    async def list_access_policies(self, app_id: str) -> list[AccessPolicy]:
        items = await self._list(f"{self._apps_path}/{app_id}/policies")
        return [AccessPolicy.model_validate(item) for item in items]

    async def get_access_policy(
        self, app_id: str, policy_id: str
    ) -> AccessPolicy | None:
        try:
            envelope = await self._call(
                "GET", f"{self._apps_path}/{app_id}/policies/{policy_id}"
            )
        except CloudflareAPIError as e:
            if e.is_not_found:
                return None
            raise
        return AccessPolicy.model_validate(envelope["result"])

    async def find_access_policy_by_name(
        self, app_id: str, name: str
    ) -> AccessPolicy | None:
        for policy in await self.list_access_policies(app_id):
            if policy.name == name:
                return policy
        return None

    async def create_access_policy(
        self, app_id: str, request: AccessPolicyRequest
    ) -> AccessPolicy:
        envelope = await self._call(
            "POST", f"{self._apps_path}/{app_id}/policies", json=request.model_dump()
        )
        policy = AccessPolicy.model_validate(envelope["result"])
        logger.info(f"Created Cloudflare access policy {policy.id} on {app_id}")
        return policy

    async def update_access_policy(
        self, app_id: str, policy_id: str, request: AccessPolicyRequest
    ) -> AccessPolicy:
        envelope = await self._call(
            "PUT",
            f"{self._apps_path}/{app_id}/policies/{policy_id}",
            json=request.model_dump(),
        )
        return AccessPolicy.model_validate(envelope["result"])
