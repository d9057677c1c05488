"""
Shared httpx plumbing for the external API clients.

Both the Zitadel and the Cloudflare client authenticate with a static bearer
token, send and receive JSON, and turn HTTP failures into an
ExternalServiceError subclass carrying the status code and response body.
"""

import logging
from typing import Any

import httpx

from ..errors import ExternalServiceError
from ..observability.metrics import metrics_collector

logger = logging.getLogger(__name__)


class BaseAPIClient:
    """
    Bearer-token JSON client on top of a lazily created httpx.AsyncClient.

    Subclasses set service_name and error_class.
    """

    service_name = "external"
    error_class: type[ExternalServiceError] = ExternalServiceError

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Args:
            base_url: API root every request path is appended to
            token: Bearer token sent with each request
            timeout: Per-request timeout in seconds
            transport: Optional transport override (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self._token = token
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
                headers={
                    "Authorization": f"Bearer {self._token}",
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
                transport=self._transport,
                follow_redirects=False,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _make_request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """
        Send a request and raise error_class for transport errors and non-2xx.

        Args:
            method: HTTP method
            path: Path relative to base_url
            json: JSON request body
            params: Query parameters

        Returns:
            The successful response

        Raises:
            ExternalServiceError: error_class with status_code and response_body
        """
        client = self._get_client()

        try:
            response = await client.request(method, path, json=json, params=params)
        except httpx.HTTPError as e:
            metrics_collector.record_api_request(self.service_name, method, None)
            logger.error(
                f"{self.service_name} request failed: {method} {path} - {e}",
                extra={"service": self.service_name, "http_method": method},
            )
            raise self.error_class(f"{method} {path} failed: {e}") from e

        metrics_collector.record_api_request(
            self.service_name, method, response.status_code
        )

        if response.is_success:
            return response

        error = self.error_class(
            f"{method} {path} failed",
            status_code=response.status_code,
            response_body=response.text or "<no content>",
        )
        if not self._is_expected_failure(response):
            logger.error(
                f"{self.service_name} request failed: {method} {path} "
                f"(HTTP {response.status_code})",
                extra={
                    "service": self.service_name,
                    "http_method": method,
                    "http_status": response.status_code,
                    "response_body": error.body_preview(1024),
                },
            )
        raise error

    def _is_expected_failure(self, response: httpx.Response) -> bool:
        """Responses callers routinely handle, such as lookups that miss."""
        return response.status_code == 404
