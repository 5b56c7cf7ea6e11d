"""Configuration via Lambda event and environment variables.

Every setting can be given in the invocation event (Lambda) or as an
environment variable; the event wins. Credentials are never read here, only
references to them:
  - {"region": ..., "id": ...}        -> AWS Secrets Manager secret
  - "aws-secret://name", "gcp-secret://name", or a literal JSON document
Resolution happens in runner.py, after the whole configuration validated.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from dotenv import load_dotenv

from scripts.sso_sync.errors import ConfigError
from scripts.sso_sync.filters import PatternFilter

DEFAULT_RESULT_CAP = 50


class SyncMode(str, Enum):
    ALL_USERS = "all_users"
    GROUP_MEMBERS_ONLY = "group_members_only"

    @classmethod
    def parse(cls, value: str) -> "SyncMode":
        """Accept "AllUsers", "all_users", "all-users" and the JSON-quoted forms."""
        normalized = value.strip().strip('"').replace("-", "_")
        aliases = {
            "allusers": cls.ALL_USERS,
            "all_users": cls.ALL_USERS,
            "groupmembersonly": cls.GROUP_MEMBERS_ONLY,
            "group_members_only": cls.GROUP_MEMBERS_ONLY,
        }
        try:
            return aliases[normalized.lower()]
        except KeyError:
            raise ConfigError(
                f"{value!r} is not a valid sync mode (AllUsers | GroupMembersOnly)"
            ) from None


@dataclass(frozen=True)
class SecretRef:
    region: str
    id: str


CredentialRef = Union[SecretRef, str]


@dataclass(frozen=True)
class RetryConfig:
    delay_s: float = 0.25
    max_retries: int = 40


@dataclass(frozen=True)
class SchedulerConfig:
    interval_min: int = 60
    misfire_grace_time: int = 300


@dataclass(frozen=True)
class SyncConfig:
    google_creds: CredentialRef
    scim_creds: CredentialRef
    sync_mode: SyncMode = SyncMode.GROUP_MEMBERS_ONLY
    google_api_query_for_users: Optional[str] = None
    google_api_query_for_groups: Optional[str] = None
    user_filter: PatternFilter = field(default_factory=PatternFilter)
    group_filter: PatternFilter = field(default_factory=PatternFilter)
    result_cap: int = DEFAULT_RESULT_CAP
    retry: RetryConfig = field(default_factory=RetryConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)


# ------------------------------------------------------------------
# Parsing helpers
# ------------------------------------------------------------------


def _lookup(event: dict[str, Any], key: str, env_var: str) -> Any:
    """Event value if present, else the env var, else None. Empty env values count as unset."""
    if event.get(key) is not None:
        return event[key]
    value = os.environ.get(env_var)
    if value is None or value == "":
        return None
    return value


def _parse_secret_ref(value: Any, label: str) -> SecretRef:
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"{label}: {value!r} is not a valid json object") from exc
    if not isinstance(value, dict) or not value.get("region") or not value.get("id"):
        raise ConfigError(f"{label} must be an object with 'region' and 'id'")
    return SecretRef(region=str(value["region"]), id=str(value["id"]))


def _credential_ref(
    event: dict[str, Any], key: str, env_var: str, direct_env_var: str
) -> CredentialRef:
    raw = _lookup(event, key, env_var)
    if raw is not None:
        return _parse_secret_ref(raw, key)
    direct = os.environ.get(direct_env_var, "")
    if direct:
        return direct
    raise ConfigError(
        f"Either the event must contain {key!r} or one of the env variables "
        f"{env_var} / {direct_env_var} must be defined"
    )


def _pattern_list(event: dict[str, Any], key: str, env_var: str) -> Optional[list[str]]:
    raw = _lookup(event, key, env_var)
    if raw is None:
        return None
    if isinstance(raw, str):
        return raw.split(",")
    if isinstance(raw, list) and all(isinstance(p, str) for p in raw):
        return raw
    raise ConfigError(f"{key} must be a list of strings")


def _positive_int(raw: Any, label: str, default: int) -> int:
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"{label} must be an integer, got {raw!r}") from None
    if value < 1:
        raise ConfigError(f"{label} must be >= 1, got {value}")
    return value


def _delay(raw: Optional[str], label: str, default: float) -> float:
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{label} must be a number, got {raw!r}") from None
    if value < 0:
        raise ConfigError(f"{label} must not be negative")
    return value


def _sync_mode(event: dict[str, Any]) -> SyncMode:
    raw = _lookup(event, "sync_mode", "SYNC_MODE")
    if raw is None:
        # Older deployments use the "strategie" spelling.
        raw = _lookup(event, "sync_strategie", "SYNC_STRATEGIE")
    if raw is None:
        return SyncMode.GROUP_MEMBERS_ONLY
    return SyncMode.parse(str(raw))


def load_config(event: Optional[dict[str, Any]] = None) -> SyncConfig:
    """Build the sync configuration from an invocation event and the environment.

    All validation (regexes, sync mode, numbers, credential references)
    happens here so that a broken configuration fails before any remote call.
    """
    load_dotenv()
    event = event or {}

    user_filter = PatternFilter.from_patterns(
        include=_pattern_list(event, "include_users_regexes", "INCLUDE_USERS_REGEXES"),
        ignore=_pattern_list(event, "ignore_users_regexes", "IGNORE_USERS_REGEXES"),
        label="users",
    )
    group_filter = PatternFilter.from_patterns(
        include=_pattern_list(event, "include_groups_regexes", "INCLUDE_GROUPS_REGEXES"),
        ignore=_pattern_list(event, "ignore_groups_regexes", "IGNORE_GROUPS_REGEXES"),
        label="groups",
    )

    retry = RetryConfig(
        delay_s=_delay(os.environ.get("SCIM_RETRY_DELAY_S"), "SCIM_RETRY_DELAY_S", 0.25),
        max_retries=_positive_int(os.environ.get("SCIM_MAX_RETRIES"), "SCIM_MAX_RETRIES", 40),
    )

    return SyncConfig(
        google_creds=_credential_ref(
            event, "security_hub_google_creds", "SH_GOOGLE_CREDS", "GOOGLE_CREDS_SECRET"
        ),
        scim_creds=_credential_ref(
            event, "security_hub_scim_creds", "SH_SCIM_CREDS", "SCIM_CREDS_SECRET"
        ),
        sync_mode=_sync_mode(event),
        google_api_query_for_users=_lookup(
            event, "google_api_query_for_users", "GOOGLE_API_QUERY_FOR_USERS"
        ),
        google_api_query_for_groups=_lookup(
            event, "google_api_query_for_groups", "GOOGLE_API_QUERY_FOR_GROUPS"
        ),
        user_filter=user_filter,
        group_filter=group_filter,
        result_cap=_positive_int(
            _lookup(event, "result_cap", "RESULT_CAP"), "result_cap", DEFAULT_RESULT_CAP
        ),
        retry=retry,
        scheduler=SchedulerConfig(
            interval_min=_positive_int(os.environ.get("SYNC_INTERVAL_MIN"), "SYNC_INTERVAL_MIN", 60),
            misfire_grace_time=_positive_int(
                os.environ.get("SYNC_MISFIRE_GRACE_S"), "SYNC_MISFIRE_GRACE_S", 300
            ),
        ),
    )
