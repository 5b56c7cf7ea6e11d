"""Cloud-native secret resolution for the Google and SCIM credentials.

Credentials are JSON documents. They are fetched from AWS Secrets Manager
(region + secret id, or an ``aws-secret://`` reference), from GCP Secret
Manager (``gcp-secret://``), or given inline as literal JSON for local
development.
"""

from __future__ import annotations

import json
import logging
import os
import time
from typing import Any

import boto3
import requests
from botocore.exceptions import ClientError
from google.api_core.exceptions import GoogleAPICallError
from google.cloud import secretmanager

from scripts.sso_sync.config import CredentialRef, SecretRef
from scripts.sso_sync.errors import SecretError

logger = logging.getLogger("sso_sync.secrets")

# Prefixes that indicate a cloud secret reference
_AWS_PREFIX = "aws-secret://"
_GCP_PREFIX = "gcp-secret://"

_THROTTLING_CODES = {"ThrottlingException", "TooManyRequestsException", "Throttling"}
_THROTTLE_DELAY_S = 0.25
_MAX_THROTTLE_RETRIES = 20

_GCP_PROJECT_METADATA_URL = "http://metadata.google.internal/computeMetadata/v1/project/project-id"


def resolve_secret(value: str) -> str:
    """Resolve a secret reference to its plaintext value.

    Supported formats:
      - "aws-secret://secret-name"         -> AWS Secrets Manager
      - "aws-secret://secret-name#key"     -> AWS Secrets Manager (JSON key)
      - "gcp-secret://project/secret/ver"  -> GCP Secret Manager
      - anything else                      -> returned as-is (env var / literal)
    """
    if value.startswith(_AWS_PREFIX):
        return _resolve_aws_secret(value[len(_AWS_PREFIX):])
    if value.startswith(_GCP_PREFIX):
        return _resolve_gcp_secret(value[len(_GCP_PREFIX):])
    return value


def get_secret_value(secret_id: str, region: str) -> str:
    """Fetch the AWSCURRENT version of a secret, waiting out throttling."""
    client = boto3.client("secretsmanager", region_name=region)
    attempt = 0
    while True:
        try:
            resp = client.get_secret_value(SecretId=secret_id, VersionStage="AWSCURRENT")
            break
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code in _THROTTLING_CODES and attempt < _MAX_THROTTLE_RETRIES:
                logger.info("Cooling down to prevent request limits")
                time.sleep(_THROTTLE_DELAY_S)
                attempt += 1
                continue
            raise SecretError(f"Unable to fetch SecretValue with id: {secret_id}: {exc}") from exc

    if resp.get("SecretString") is not None:
        return resp["SecretString"]
    if resp.get("SecretBinary") is not None:
        return resp["SecretBinary"].decode("utf-8")
    raise SecretError(f"Neither SecretString nor SecretBinary is set for id: {secret_id}")


def _resolve_aws_secret(ref: str) -> str:
    """Fetch a secret from AWS Secrets Manager.

    ref format: "secret-name" or "secret-name#json_key"
    """
    secret_name, _, json_key = ref.partition("#")
    region = os.environ.get("AWS_REGION", "us-east-1")
    secret_string = get_secret_value(secret_name, region)
    if not json_key:
        return secret_string

    try:
        data = json.loads(secret_string)
    except json.JSONDecodeError as exc:
        raise SecretError(f"Secret {secret_name} is not JSON, cannot select key {json_key!r}") from exc
    if not isinstance(data, dict) or json_key not in data:
        raise SecretError(f"Secret {secret_name} has no key {json_key!r}")
    value = data[json_key]
    # Nested objects are passed on as JSON text.
    return value if isinstance(value, str) else json.dumps(value)


def _gcp_secret_name(ref: str) -> str:
    """Expand a bare secret name to its full resource path on the latest version."""
    if ref.startswith("projects/"):
        return ref
    project = os.environ.get("GCP_PROJECT_ID") or _gcp_project_from_metadata()
    return f"projects/{project}/secrets/{ref}/versions/latest"


def _resolve_gcp_secret(ref: str) -> str:
    """Fetch a credential document from GCP Secret Manager.

    ref format: "projects/PROJECT/secrets/NAME/versions/VERSION" or "NAME"
    """
    name = _gcp_secret_name(ref)
    client = secretmanager.SecretManagerServiceClient()
    try:
        response = client.access_secret_version(request={"name": name})
    except GoogleAPICallError as exc:
        raise SecretError(f"Unable to access GCP secret {name}: {exc}") from exc
    return response.payload.data.decode("utf-8")


def _gcp_project_from_metadata() -> str:
    try:
        resp = requests.get(_GCP_PROJECT_METADATA_URL, headers={"Metadata-Flavor": "Google"}, timeout=2)
        resp.raise_for_status()
    except requests.RequestException as exc:
        raise SecretError("Cannot determine GCP project ID. Set GCP_PROJECT_ID env var.") from exc
    return resp.text.strip()


def load_json_secret(ref: CredentialRef) -> dict[str, Any]:
    """Resolve a credential reference and parse it as a JSON object."""
    if isinstance(ref, SecretRef):
        raw = get_secret_value(ref.id, ref.region)
        label = ref.id
    else:
        raw = resolve_secret(ref)
        label = ref.split("#", 1)[0] if ref.startswith((_AWS_PREFIX, _GCP_PREFIX)) else "<inline>"
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise SecretError(
            f"Unable to parse secret value. Value is not valid JSON. Id: {label}"
        ) from exc
    if not isinstance(data, dict):
        raise SecretError(f"Secret {label} must contain a JSON object")
    return data
