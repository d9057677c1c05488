"""Unit tests for the Cloudflare Access API client."""

import json

import httpx
import pytest

from zitadel_access_operator.errors import CloudflareAPIError
from zitadel_access_operator.models.cloudflare import (
    AccessAppRequest,
    AccessPolicy,
    AccessPolicyRequest,
    OIDCClaimRule,
)
from zitadel_access_operator.utils.cloudflare_access import CloudflareAccessClient

APPS = "/client/v4/accounts/acc-1/access/apps"


def envelope(result, **extra) -> dict:
    return {"success": True, "errors": [], "messages": [], "result": result, **extra}


def make_client(handler) -> CloudflareAccessClient:
    return CloudflareAccessClient(
        "acc-1", "cf-token", transport=httpx.MockTransport(handler)
    )


@pytest.fixture
def requests() -> list[httpx.Request]:
    return []


class TestAccessApps:
    @pytest.mark.asyncio
    async def test_find_by_domain_walks_every_page(self, requests):
        pages = {
            "1": [{"id": "a-1", "domain": "other.example.com"}],
            "2": [{"id": "a-2", "domain": "grafana.example.com", "name": "grafana"}],
        }

        def handler(request):
            requests.append(request)
            page = request.url.params["page"]
            return httpx.Response(
                200,
                json=envelope(
                    pages[page], result_info={"page": int(page), "total_pages": 2}
                ),
            )

        app = await make_client(handler).find_access_app_by_domain(
            "grafana.example.com"
        )

        assert app.id == "a-2"
        assert [r.url.params["page"] for r in requests] == ["1", "2"]
        assert requests[0].url.params["per_page"] == "50"
        assert requests[0].url.path == APPS
        assert requests[0].headers["Authorization"] == "Bearer cf-token"

    @pytest.mark.asyncio
    async def test_find_by_domain_returns_none(self):
        def handler(request):
            return httpx.Response(200, json=envelope([]))

        assert await make_client(handler).find_access_app_by_domain("x.dev") is None

    @pytest.mark.asyncio
    async def test_get_missing_app_returns_none(self):
        def handler(request):
            return httpx.Response(
                404,
                json={"success": False, "errors": [{"code": 7003}], "result": None},
            )

        assert await make_client(handler).get_access_app("gone") is None

    @pytest.mark.asyncio
    async def test_create_sends_self_hosted_app(self, requests):
        def handler(request):
            requests.append(request)
            body = json.loads(request.content)
            return httpx.Response(200, json=envelope({"id": "a-1", **body}))

        app = await make_client(handler).create_access_app(
            AccessAppRequest(
                name="grafana", domain="grafana.example.com", session_duration="24h"
            )
        )

        assert app.id == "a-1"
        assert requests[0].method == "POST"
        assert json.loads(requests[0].content) == {
            "name": "grafana",
            "domain": "grafana.example.com",
            "type": "self_hosted",
            "session_duration": "24h",
        }

    @pytest.mark.asyncio
    async def test_update_uses_put(self, requests):
        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=envelope({"id": "a-1"}))

        await make_client(handler).update_access_app(
            "a-1",
            AccessAppRequest(name="g", domain="g.example.com", session_duration="1h"),
        )

        assert requests[0].method == "PUT"
        assert requests[0].url.path == f"{APPS}/a-1"

    @pytest.mark.asyncio
    async def test_unsuccessful_envelope_raises(self):
        def handler(request):
            return httpx.Response(
                200,
                json={
                    "success": False,
                    "errors": [{"code": 12130, "message": "domain in use"}],
                    "result": None,
                },
            )

        with pytest.raises(CloudflareAPIError) as exc_info:
            await make_client(handler).create_access_app(
                AccessAppRequest(name="g", domain="g.example.com", session_duration="1h")
            )

        assert "domain in use" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_delete_missing_app_succeeds(self):
        def handler(request):
            return httpx.Response(404, json={"success": False, "errors": []})

        await make_client(handler).delete_access_app("gone")

    @pytest.mark.asyncio
    async def test_delete_failure_raises(self):
        def handler(request):
            return httpx.Response(500, text="internal error")

        with pytest.raises(CloudflareAPIError) as exc_info:
            await make_client(handler).delete_access_app("a-1")

        assert exc_info.value.status_code == 500


class TestAccessPolicies:
    @pytest.fixture
    def policy_request(self) -> AccessPolicyRequest:
        return AccessPolicyRequest.from_rules(
            [
                OIDCClaimRule(
                    identity_provider_id="idp-1",
                    claim_name="custom:roles",
                    claim_value="admin",
                )
            ]
        )

    @pytest.mark.asyncio
    async def test_create_policy_payload(self, requests, policy_request):
        def handler(request):
            requests.append(request)
            return httpx.Response(
                200, json=envelope({"id": "p-1", **json.loads(request.content)})
            )

        policy = await make_client(handler).create_access_policy("a-1", policy_request)

        assert requests[0].url.path == f"{APPS}/a-1/policies"
        assert json.loads(requests[0].content) == {
            "name": "Allow Zitadel roles",
            "decision": "allow",
            "precedence": 1,
            "include": [
                {
                    "oidc": {
                        "identity_provider_id": "idp-1",
                        "claim_name": "custom:roles",
                        "claim_value": "admin",
                    }
                }
            ],
        }
        assert policy.matches(policy_request)

    @pytest.mark.asyncio
    async def test_find_policy_by_name(self):
        def handler(request):
            return httpx.Response(
                200,
                json=envelope(
                    [
                        {"id": "p-0", "name": "Bypass health checks"},
                        {"id": "p-1", "name": "Allow Zitadel roles"},
                    ]
                ),
            )

        policy = await make_client(handler).find_access_policy_by_name(
            "a-1", "Allow Zitadel roles"
        )

        assert policy.id == "p-1"

    @pytest.mark.asyncio
    async def test_get_missing_policy_returns_none(self):
        def handler(request):
            return httpx.Response(404, json={"success": False, "errors": []})

        assert await make_client(handler).get_access_policy("a-1", "p-1") is None

    @pytest.mark.asyncio
    async def test_update_policy_uses_put(self, requests, policy_request):
        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=envelope({"id": "p-1"}))

        await make_client(handler).update_access_policy("a-1", "p-1", policy_request)

        assert requests[0].method == "PUT"
        assert requests[0].url.path == f"{APPS}/a-1/policies/p-1"


class TestPolicyMatching:
    def rule(self, value: str) -> OIDCClaimRule:
        return OIDCClaimRule(
            identity_provider_id="idp-1", claim_name="custom:roles", claim_value=value
        )

    def test_extra_rule_kinds_do_not_match(self):
        request = AccessPolicyRequest.from_rules([self.rule("admin")])
        policy = AccessPolicy(
            id="p-1",
            **{
                **request.model_dump(),
                "include": [*request.model_dump()["include"], {"everyone": {}}],
            },
        )

        assert policy.claim_rules() == [self.rule("admin")]
        assert not policy.matches(request)

    def test_rule_order_matters(self):
        forward = AccessPolicyRequest.from_rules([self.rule("a"), self.rule("b")])
        reverse = AccessPolicyRequest.from_rules([self.rule("b"), self.rule("a")])
        policy = AccessPolicy(id="p-1", **forward.model_dump())

        assert policy.matches(forward)
        assert not policy.matches(reverse)
