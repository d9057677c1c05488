"""Unit tests for operator start-up checks and wiring."""

from unittest.mock import MagicMock, patch

import pytest
from pydantic import SecretStr

from zitadel_access_operator import operator
from zitadel_access_operator.errors import ConfigurationError
from zitadel_access_operator.services import SecuredApplicationReconciler


@pytest.fixture
def configured(monkeypatch):
    settings = operator.operator_settings
    monkeypatch.setattr(settings, "zitadel_url", "https://zitadel.example.com")
    monkeypatch.setattr(settings, "zitadel_token", SecretStr("pat"))
    monkeypatch.setattr(settings, "cloudflare_api_token", SecretStr("cf"))
    monkeypatch.setattr(settings, "cloudflare_account_id", "acc-1")
    monkeypatch.setattr(settings, "cloudflare_idp_id", "idp-1")
    return settings


def test_validate_credentials_passes_when_configured(configured):
    operator.validate_credentials()


def test_validate_credentials_lists_missing_variables(configured, monkeypatch):
    monkeypatch.setattr(configured, "zitadel_token", SecretStr(""))
    monkeypatch.setattr(configured, "cloudflare_idp_id", "")

    with pytest.raises(ConfigurationError) as exc_info:
        operator.validate_credentials()

    message = str(exc_info.value)
    assert "ZITADEL_TOKEN" in message
    assert "CLOUDFLARE_IDP_ID" in message
    assert "ZITADEL_URL" not in message


def test_build_reconciler_wires_adapters(configured):
    with patch.object(operator, "get_kubernetes_client", return_value=MagicMock()):
        reconciler = operator.build_reconciler()

    assert isinstance(reconciler, SecuredApplicationReconciler)
    assert reconciler.zitadel.base_url == "https://zitadel.example.com"
    assert reconciler.cloudflare.account_id == "acc-1"
    assert reconciler.config.cloudflare_idp_id == "idp-1"
