"""
Unit tests for Pydantic models.

These tests verify that the data models correctly validate input, resolve
defaults and serialize to the JSON shapes the APIs expect.
"""

import pytest
from pydantic import ValidationError

from tests.fixtures.secured_application import TUNNELED_SECURED_APPLICATION
from zitadel_access_operator.constants import CF_BACKEND_PROTOCOL_ANNOTATION, FINALIZER
from zitadel_access_operator.models.secured_application import (
    Descriptor,
    SecuredApplicationSpec,
    SecuredApplicationStatus,
)
from zitadel_access_operator.models.zitadel import (
    AppSearchResult,
    CreateOIDCAppResponse,
    OIDCAppConfig,
    SearchRequest,
)


def _spec(**overrides) -> SecuredApplicationSpec:
    return SecuredApplicationSpec.model_validate(
        {**TUNNELED_SECURED_APPLICATION["spec"], **overrides}
    )


class TestSecuredApplicationSpec:
    """Test cases for the SecuredApplication spec."""

    def test_roles_are_deduplicated_in_order(self):
        spec = _spec(access={"project": "infra", "roles": ["b", "a", "b"]})

        assert spec.access.roles == ["b", "a"]

    @pytest.mark.parametrize(
        "access",
        [
            {"project": "infra", "roles": []},
            {"project": "", "roles": ["admin"]},
            {"project": "infra", "roles": [""]},
            {"roles": ["admin"]},
        ],
    )
    def test_invalid_access(self, access):
        with pytest.raises(ValidationError):
            _spec(access=access)

    @pytest.mark.parametrize(
        "host", ["", "https://grafana.example.com", "grafana.example.com/path"]
    )
    def test_invalid_host(self, host):
        with pytest.raises(ValidationError):
            _spec(host=host)

    def test_host_is_lowercased(self):
        assert _spec(host="Grafana.Example.COM").host == "grafana.example.com"

    def test_port_range(self):
        with pytest.raises(ValidationError):
            _spec(tunnel={"backend": {"serviceName": "grafana", "servicePort": 0}})

    def test_oidc_defaults(self):
        config = _spec().to_oidc_app_config("grafana")

        assert config.redirect_uris == ["https://grafana.example.com/callback"]
        assert config.post_logout_redirect_uris == []
        assert config.app_type == "OIDC_APP_TYPE_WEB"
        assert config.access_token_type == "OIDC_TOKEN_TYPE_BEARER"

    def test_oidc_overrides(self):
        spec = _spec(
            oidc={
                "redirectURIs": ["http://localhost:3000/cb"],
                "grantTypes": ["OIDC_GRANT_TYPE_REFRESH_TOKEN"],
                "authMethodType": "OIDC_AUTH_METHOD_TYPE_POST",
                "devMode": True,
                "idTokenRoleAssertion": True,
            }
        )

        config = spec.to_oidc_app_config("grafana")

        assert config.redirect_uris == ["http://localhost:3000/cb"]
        assert config.grant_types == ["OIDC_GRANT_TYPE_REFRESH_TOKEN"]
        assert config.auth_method_type == "OIDC_AUTH_METHOD_TYPE_POST"
        assert config.response_types == ["OIDC_RESPONSE_TYPE_CODE"]
        assert config.dev_mode is True
        assert config.id_token_role_assertion is True

    def test_credentials_secret_name(self):
        assert _spec().credentials_secret_name("grafana") == "grafana-oidc"
        spec = _spec(oidc={"clientSecretRef": "custom"})
        assert spec.credentials_secret_name("grafana") == "custom"

    def test_ingress_defaults_without_tunnel(self):
        spec = SecuredApplicationSpec.model_validate(
            {"host": "a.example.com", "access": {"project": "p", "roles": ["r"]}}
        )

        assert spec.tunnel is None
        assert spec.ingress_annotations() == {}
        assert spec.ingress_class_name() == "cloudflare-tunnel"
        assert spec.delete_protection is False

    def test_backend_protocol_wins_over_user_annotation(self):
        spec = _spec(
            tunnel={
                "backend": {
                    "serviceName": "grafana",
                    "servicePort": 443,
                    "protocol": "https",
                },
                "ingress": {"annotations": {CF_BACKEND_PROTOCOL_ANNOTATION: "http"}},
            }
        )

        assert spec.ingress_annotations() == {CF_BACKEND_PROTOCOL_ANNOTATION: "https"}


class TestStatusAndDescriptor:
    def test_from_status_ignores_foreign_keys(self):
        status = SecuredApplicationStatus.from_status(
            {"projectId": "p-1", "kopf": {"progress": {}}, "clientId": None}
        )

        assert status.project_id == "p-1"
        assert status.client_id == ""

    def test_from_status_handles_missing_status(self):
        assert SecuredApplicationStatus.from_status(None) == SecuredApplicationStatus()

    def test_descriptor_from_body(self):
        meta = {
            **TUNNELED_SECURED_APPLICATION["metadata"],
            "generation": 4,
            "finalizers": ["other", FINALIZER],
            "deletionTimestamp": "2026-01-01T00:00:00Z",
        }

        descriptor = Descriptor.from_body(
            meta, TUNNELED_SECURED_APPLICATION["spec"], {"ready": True}, FINALIZER
        )

        assert descriptor.generation == 4
        assert descriptor.cleanup_marker is True
        assert descriptor.pending_deletion is True
        assert descriptor.status.ready is True
        assert descriptor.spec["host"] == "grafana.example.com"

    def test_descriptor_without_finalizer(self):
        descriptor = Descriptor.from_body(
            {"name": "a", "namespace": "b"}, {}, None, FINALIZER
        )

        assert descriptor.cleanup_marker is False
        assert descriptor.pending_deletion is False
        assert descriptor.uid == ""


class TestZitadelModels:
    def test_search_by_name_payload(self):
        assert SearchRequest.by_name("infra").payload() == {
            "queries": [
                {"nameQuery": {"name": "infra", "method": "TEXT_QUERY_METHOD_EQUALS"}}
            ]
        }

    def test_update_payload_omits_name(self):
        config = OIDCAppConfig(name="grafana", dev_mode=True)

        assert "name" in config.create_payload()
        assert "name" not in config.update_payload()
        assert config.update_payload()["devMode"] is True

    def test_search_result_without_oidc_config(self):
        app = AppSearchResult.model_validate({"id": "a-1", "name": "api"}).to_app()

        assert app.client_id == ""

    def test_create_response_carries_secret(self):
        app = CreateOIDCAppResponse.model_validate(
            {"appId": "a-1", "clientId": "c-1", "clientSecret": "s"}
        ).to_app()

        assert app.client_secret == "s"
        assert "clientSecret='s'" not in repr(app)
