"""AWS Lambda handler for the Google Workspace -> AWS SSO sync.

Deployed as a Lambda function triggered by a single EventBridge schedule
rule, so invocations never overlap. Every setting may be passed in the
event and falls back to the environment:

  {
    "security_hub_google_creds": {"region": "eu-central-1", "id": "google-admin"},
    "security_hub_scim_creds": {"region": "eu-central-1", "id": "aws-sso-scim"},
    "google_api_query_for_groups": "email:aws-*",
    "include_groups_regexes": ["^aws-.*@example.org$"],
    "sync_strategie": "GroupMembersOnly"
  }
"""

from __future__ import annotations

import json
import logging
import os
import sys

# Ensure the project root is on sys.path for Lambda packaging
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "..", ".."))

from scripts.sso_sync.config import load_config
from scripts.sso_sync.errors import ConfigError
from scripts.sso_sync.logging_config import configure_logging
from scripts.sso_sync.runner import run_sync

logger = logging.getLogger("sso_sync.lambda")


def handler(event: dict, context) -> dict:
    """Lambda entry point."""
    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))
    event = event if isinstance(event, dict) else {}

    try:
        config = load_config(event)
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return {"statusCode": 400, "body": json.dumps({"error": str(exc)})}

    logger.info("Lambda invoked (mode=%s)", config.sync_mode.value)
    try:
        results = run_sync(config)
    except Exception as exc:
        logger.error("Sync failed: %s", exc, exc_info=True)
        return {"statusCode": 500, "body": json.dumps({"error": str(exc)})}

    return {"statusCode": 200, "body": json.dumps({"results": results})}
