"""One reconciliation run: credentials, clients, engine."""

from __future__ import annotations

import logging
import time
import uuid

from scripts.sso_sync.config import SyncConfig
from scripts.sso_sync.engine import Reconciler
from scripts.sso_sync.logging_config import run_context
from scripts.sso_sync.providers.aws_scim import ScimClient, ScimCredentials
from scripts.sso_sync.providers.google_workspace import (
    GoogleAdminCredentials,
    GoogleDirectoryClient,
)
from scripts.sso_sync.secrets import load_json_secret

logger = logging.getLogger("sso_sync.runner")


def build_reconciler(
    config: SyncConfig, source: GoogleDirectoryClient, target: ScimClient
) -> Reconciler:
    return Reconciler(
        source,
        target,
        sync_mode=config.sync_mode,
        result_cap=config.result_cap,
        user_query=config.google_api_query_for_users,
        group_query=config.google_api_query_for_groups,
        user_filter=config.user_filter,
        group_filter=config.group_filter,
    )


def run_sync(config: SyncConfig) -> dict[str, int]:
    """Resolve credentials, run the reconciliation, return mutation counts.

    Any hard failure propagates; mutations already applied stay applied and
    the next run converges from there.
    """
    run_id = str(uuid.uuid4())
    started = time.monotonic()

    with run_context(run_id=run_id, sync_mode=config.sync_mode.value):
        google_creds = GoogleAdminCredentials.from_secret(load_json_secret(config.google_creds))
        scim_creds = ScimCredentials.from_secret(load_json_secret(config.scim_creds))

        with GoogleDirectoryClient(google_creds, retry=config.retry) as source, \
                ScimClient(scim_creds, retry=config.retry) as target:
            logger.info("Sync started")
            try:
                results = build_reconciler(config, source, target).run()
            except Exception as exc:
                logger.error(
                    "Sync failed: %s", exc,
                    exc_info=True,
                    extra={"duration_s": round(time.monotonic() - started, 3)},
                )
                raise

        logger.info(
            "Sync complete: %s", results,
            extra={
                "records": sum(results.values()),
                "duration_s": round(time.monotonic() - started, 3),
            },
        )
    return results
