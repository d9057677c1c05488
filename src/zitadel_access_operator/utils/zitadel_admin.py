"""
Zitadel Management API client utilities.

This module provides a typed interface to the parts of the Zitadel
Management API (v1) the operator needs:
- Project lookup by exact name
- Project role listing
- OIDC application lookup, creation, update and deletion

Lookups return None when nothing matches. Deleting an application that no
longer exists and updating one whose configuration is unchanged both count
as success.
"""

import logging

import httpx

from ..constants import ZITADEL_NO_CHANGES_MARKER
from ..errors import ZitadelAPIError
from ..models.zitadel import (
    AppSearchResult,
    CreateOIDCAppResponse,
    OIDCApp,
    OIDCAppConfig,
    Project,
    ProjectRole,
    SearchRequest,
)
from .http_client import BaseAPIClient

logger = logging.getLogger(__name__)


def _is_no_changes(error: ZitadelAPIError) -> bool:
    return (
        error.status_code == 400
        and error.response_body is not None
        and ZITADEL_NO_CHANGES_MARKER in error.response_body
    )


class ZitadelClient(BaseAPIClient):
    """
    Client for the Zitadel Management API authenticated with a personal
    access token.
    """

    service_name = "zitadel"
    error_class = ZitadelAPIError

    def _is_expected_failure(self, response: httpx.Response) -> bool:
        if response.status_code == 400 and ZITADEL_NO_CHANGES_MARKER in response.text:
            return True
        return super()._is_expected_failure(response)

    async def _search(self, path: str, request: SearchRequest) -> list[dict]:
        response = await self._make_request("POST", path, json=request.payload())
        # An empty search omits the result key entirely
        return response.json().get("result") or []

    async def get_project_by_name(self, name: str) -> Project | None:
        """
        Look up a project by its exact name.

        Args:
            name: Project name

        Returns:
            The project, or None if no project has that name

        Raises:
            ZitadelAPIError: If the search fails
        """
        results = await self._search(
            "/management/v1/projects/_search", SearchRequest.by_name(name)
        )
        for item in results:
            project = Project.model_validate(item)
            if project.name == name:
                return project
        return None

    async def list_project_roles(self, project_id: str) -> list[ProjectRole]:
        """List every role defined on a project."""
        results = await self._search(
            f"/management/v1/projects/{project_id}/roles/_search", SearchRequest()
        )
        return [ProjectRole.model_validate(item) for item in results]

    async def get_app_by_name(self, project_id: str, name: str) -> OIDCApp | None:
        """
        Look up an application of a project by its exact name.

        The result never carries a client secret.
        """
        results = await self._search(
            f"/management/v1/projects/{project_id}/apps/_search",
            SearchRequest.by_name(name),
        )
        for item in results:
            app = AppSearchResult.model_validate(item)
            if app.name == name:
                return app.to_app()
        return None

    async def create_app(self, project_id: str, config: OIDCAppConfig) -> OIDCApp:
        """
        Create an OIDC application.

        This is the only call that returns the client secret.

        Args:
            project_id: Owning project ID
            config: Application configuration

        Returns:
            The created application including its client secret
        """
        response = await self._make_request(
            "POST",
            f"/management/v1/projects/{project_id}/apps/oidc",
            json=config.create_payload(),
        )
        app = CreateOIDCAppResponse.model_validate(response.json()).to_app()
        logger.info(f"Created Zitadel OIDC application {config.name} ({app.id})")
        return app

    async def update_app(
        self, project_id: str, app_id: str, config: OIDCAppConfig
    ) -> None:
        """
        Replace the OIDC configuration of an application.

        Raises:
            ZitadelAPIError: If the update fails for any reason other than
                the configuration already being up to date
        """
        try:
            await self._make_request(
                "PUT",
                f"/management/v1/projects/{project_id}/apps/{app_id}/oidc_config",
                json=config.update_payload(),
            )
        except ZitadelAPIError as e:
            if _is_no_changes(e):
                logger.debug(f"Zitadel application {app_id} already up to date")
                return
            raise

    async def delete_app(self, project_id: str, app_id: str) -> None:
        """Delete an application; a missing application is not an error."""
        try:
            await self._make_request(
                "DELETE", f"/management/v1/projects/{project_id}/apps/{app_id}"
            )
            logger.info(f"Deleted Zitadel application {app_id}")
        except ZitadelAPIError as e:
            if e.is_not_found:
                logger.info(f"Zitadel application {app_id} already deleted")
                return
            raise
