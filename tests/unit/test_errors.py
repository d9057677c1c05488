"""Unit tests for the operator error hierarchy."""

import kopf

from zitadel_access_operator.errors import (
    CloudflareAPIError,
    ConfigurationError,
    KubernetesAPIError,
    ReconciliationError,
    ZitadelAPIError,
)


class TestExternalServiceErrors:
    def test_zitadel_error_includes_status(self):
        error = ZitadelAPIError("POST /x failed", status_code=503, response_body="down")

        assert str(error).startswith("Zitadel API error: HTTP 503: POST /x failed")
        assert error.retryable
        assert not error.is_not_found

    def test_not_found(self):
        assert CloudflareAPIError("gone", status_code=404).is_not_found

    def test_body_preview_truncates(self):
        error = CloudflareAPIError("x", status_code=500, response_body="a" * 50)

        assert error.body_preview(10) == "aaaaaaaaaa...<truncated>"
        assert CloudflareAPIError("x").body_preview() is None

    def test_kubernetes_forbidden_is_not_retryable(self):
        error = KubernetesAPIError("denied", reason="Forbidden", status_code=403)

        assert not error.retryable
        assert "(reason: Forbidden)" in str(error)


class TestKopfConversion:
    def test_configuration_error_is_permanent(self):
        error = ConfigurationError("Missing required configuration: ZITADEL_URL")

        converted = error.as_kopf_error()

        assert isinstance(converted, kopf.PermanentError)
        assert "ZITADEL_URL" in str(converted)

    def test_retryable_error_keeps_delay(self):
        error = ReconciliationError("PolicyFailed", "boom", delay=45)

        converted = error.as_kopf_error()

        assert isinstance(converted, kopf.TemporaryError)
        assert converted.delay == 45


def test_reconciliation_error_message_has_no_guidance_suffix():
    error = ReconciliationError("SecretFailed", "connection reset")

    assert str(error) == "connection reset"
    assert error.reason == "SecretFailed"
