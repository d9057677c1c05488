#!/usr/bin/env python3
"""
Zitadel Access Operator - Main entry point for the kopf-based operator.

The operator protects applications with Zitadel OIDC and Cloudflare Access:
- Registers an OIDC application per SecuredApplication in Zitadel
- Guards the public host with a Cloudflare Access policy on Zitadel roles
- Routes traffic through a cloudflare-tunnel Ingress when requested

Usage:
    python -m zitadel_access_operator.operator
    # Or with kopf directly:
    kopf run -m zitadel_access_operator.operator --all-namespaces

Environment Variables:
    ZITADEL_URL, ZITADEL_TOKEN: Zitadel instance and personal access token
    CLOUDFLARE_API_TOKEN, CLOUDFLARE_ACCOUNT_ID, CLOUDFLARE_IDP_ID: Cloudflare
        Access credentials and the identity provider configured for Zitadel
    ZITADEL_ACCESS_OPERATOR_NAMESPACES: Comma-separated list of namespaces to watch
    LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
"""

import logging
import sys

import kopf

from zitadel_access_operator.constants import API_GROUP

# Importing the handler module registers its decorators with kopf
from zitadel_access_operator.handlers import secured_application  # noqa: F401
from zitadel_access_operator.errors import ConfigurationError
from zitadel_access_operator.handlers.secured_application import (
    build_reconciler_config,
)
from zitadel_access_operator.observability.logging import setup_structured_logging
from zitadel_access_operator.observability.metrics import MetricsServer
from zitadel_access_operator.services import SecuredApplicationReconciler
from zitadel_access_operator.settings import settings as operator_settings
from zitadel_access_operator.utils.cloudflare_access import CloudflareAccessClient
from zitadel_access_operator.utils.kubernetes import (
    ClusterObjectClient,
    SecuredApplicationStore,
    get_kubernetes_client,
)
from zitadel_access_operator.utils.zitadel_admin import ZitadelClient

# Global reference to metrics server for cleanup
_global_metrics_server: MetricsServer | None = None


def configure_logging() -> None:
    """Configure structured logging for the operator based on operator_settings."""
    setup_structured_logging(
        log_level=operator_settings.log_level.upper(),
        enable_json_formatting=operator_settings.json_logs,
        correlation_id_enabled=operator_settings.correlation_ids,
        log_health_probes=operator_settings.log_health_probes,
    )


def validate_credentials() -> None:
    """
    Fail start-up when operator credentials are missing.

    Raises:
        ConfigurationError: Listing every missing environment variable
    """
    missing = operator_settings.missing_credentials()
    if missing:
        raise ConfigurationError(
            f"Missing required configuration: {', '.join(missing)}",
            user_action="Set the listed environment variables on the operator deployment",
        )


def build_reconciler() -> SecuredApplicationReconciler:
    """Wire the adapters and the engine from operator_settings."""
    api_client = get_kubernetes_client()
    return SecuredApplicationReconciler(
        zitadel=ZitadelClient(
            operator_settings.zitadel_url,
            operator_settings.zitadel_token.get_secret_value(),
            timeout=operator_settings.http_timeout_seconds,
        ),
        cloudflare=CloudflareAccessClient(
            operator_settings.cloudflare_account_id,
            operator_settings.cloudflare_api_token.get_secret_value(),
            timeout=operator_settings.http_timeout_seconds,
        ),
        cluster=ClusterObjectClient(api_client),
        store=SecuredApplicationStore(api_client),
        config=build_reconciler_config(operator_settings),
    )


@kopf.on.startup()
async def startup_handler(
    settings: kopf.OperatorSettings, memo: kopf.Memo, **_
) -> None:
    """
    Operator startup configuration.

    Validates credentials, builds the reconciler into the memo, moves kopf's
    own bookkeeping into annotations and starts the metrics server.
    """
    logging.info("Starting Zitadel Access Operator...")

    try:
        validate_credentials()
    except ConfigurationError as e:
        logging.error(str(e))
        raise e.as_kopf_error() from e

    # The engine replaces the status sub-resource; kopf state must live elsewhere
    settings.persistence.progress_storage = kopf.AnnotationsProgressStorage(
        prefix=API_GROUP
    )
    settings.persistence.diffbase_storage = kopf.AnnotationsDiffBaseStorage(
        prefix=API_GROUP
    )
    settings.posting.level = logging.WARNING
    settings.watching.reconnect_backoff = 1.0
    settings.execution.max_workers = 20

    watched_namespaces = operator_settings.watched_namespaces
    if watched_namespaces:
        logging.info(f"Watching namespaces: {', '.join(watched_namespaces)}")
    else:
        logging.info("Watching all namespaces (cluster-wide mode)")

    memo.reconciler = build_reconciler()

    try:
        metrics_server = MetricsServer(
            port=operator_settings.metrics_port, host=operator_settings.metrics_host
        )
        await metrics_server.start()

        global _global_metrics_server
        _global_metrics_server = metrics_server
    except Exception as e:
        logging.error(f"Failed to start metrics server: {e}")
        logging.warning("Continuing without metrics server")


@kopf.on.cleanup()
async def cleanup_handler(memo: kopf.Memo, **_) -> None:
    """Close API clients and stop the metrics server on shutdown."""
    logging.info("Shutting down Zitadel Access Operator...")

    reconciler = getattr(memo, "reconciler", None)
    if reconciler is not None:
        await reconciler.zitadel.close()
        await reconciler.cloudflare.close()

    global _global_metrics_server
    if _global_metrics_server:
        await _global_metrics_server.stop()
        _global_metrics_server = None


@kopf.on.probe(id="status")
async def status_probe(**_) -> dict[str, str]:
    return {"status": "ok", "operator": "zitadel-access-operator"}


def main() -> None:
    """
    Main entry point for the operator.

    Configures logging, then runs kopf either cluster-wide or restricted to
    ZITADEL_ACCESS_OPERATOR_NAMESPACES.
    """
    configure_logging()

    watched_namespaces = operator_settings.watched_namespaces

    try:
        if watched_namespaces:
            kopf.run(
                namespaces=watched_namespaces,
                liveness_endpoint="http://0.0.0.0:8080/healthz",
            )
        else:
            kopf.run(
                clusterwide=True,
                liveness_endpoint="http://0.0.0.0:8080/healthz",
            )
    except KeyboardInterrupt:
        logging.info("Received shutdown signal")
        sys.exit(0)
    except Exception as e:
        logging.error(f"Operator failed with error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
