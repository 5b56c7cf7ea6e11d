"""Google Workspace directory client: groups, users, memberships via Admin SDK."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from scripts.sso_sync.base_provider import BaseProvider
from scripts.sso_sync.config import RetryConfig
from scripts.sso_sync.errors import DirectoryError, SecretError
from scripts.sso_sync.models import SourceGroup, SourceUser

logger = logging.getLogger("sso_sync.google_workspace")

SCOPES = [
    "https://www.googleapis.com/auth/admin.directory.user.readonly",
    "https://www.googleapis.com/auth/admin.directory.group.readonly",
    "https://www.googleapis.com/auth/admin.directory.group.member.readonly",
]

USERS_PAGE_SIZE = 500
GROUPS_PAGE_SIZE = 200
MEMBERS_PAGE_SIZE = 200


@dataclass(frozen=True)
class GoogleAdminCredentials:
    admin_email: str
    # Domain-wide delegation needs a service-account key.
    service_account_info: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def domain(self) -> str:
        return self.admin_email.split("@", 1)[1]

    @classmethod
    def from_secret(cls, data: dict[str, Any]) -> "GoogleAdminCredentials":
        """Parse {"mail": ..., "credential_json": <object or JSON string>}."""
        mail = data.get("mail")
        if not mail or "@" not in mail or mail.endswith("@"):
            raise SecretError(f"Mail is invalid: {mail!r}")
        info = data.get("credential_json")
        if info is None:
            raise SecretError("credential_json is required")
        if isinstance(info, str):
            try:
                info = json.loads(info)
            except json.JSONDecodeError as exc:
                raise SecretError("Unable to parse credential_json") from exc
        if not isinstance(info, dict):
            raise SecretError("credential_json must be an object or a JSON string")
        return cls(admin_email=mail, service_account_info=info)


def _is_rate_limited(exc: HttpError) -> bool:
    if exc.resp.status == 429:
        return True
    # Quota errors come back as 403 with a rateLimitExceeded reason.
    return exc.resp.status == 403 and b"ratelimitexceeded" in (exc.content or b"").lower()


class GoogleDirectoryClient(BaseProvider):
    PROVIDER_NAME = "google_workspace"

    def __init__(
        self,
        creds: GoogleAdminCredentials,
        retry: RetryConfig | None = None,
        service: Any = None,
    ) -> None:
        super().__init__(retry)
        self._domain = creds.domain
        if service is not None:
            self._service = service
            return

        if not creds.service_account_info:
            raise SecretError("A service-account key is required for domain-wide delegation")
        credentials = service_account.Credentials.from_service_account_info(
            creds.service_account_info, scopes=SCOPES
        )
        delegated = credentials.with_subject(creds.admin_email)
        self._service = build(
            "admin", "directory_v1", credentials=delegated, cache_discovery=False
        )

    def close(self) -> None:
        close = getattr(self._service, "close", None)
        if close is not None:
            close()

    def _list_all(self, resource: str, key: str, **params: Any) -> list[dict]:
        """Follow nextPageToken until the collection is exhausted."""
        collection = getattr(self._service, resource)()
        items: list[dict] = []
        request = collection.list(**params)
        attempt = 0
        while request is not None:
            try:
                response = request.execute()
            except HttpError as e:
                if _is_rate_limited(e):
                    self._rate_limit_sleep(f"{resource}.list", attempt)
                    attempt += 1
                    continue
                raise DirectoryError(
                    f"Error returned from Google Admin API ({resource}.list): {e}",
                    status=e.resp.status,
                ) from e
            attempt = 0
            items.extend(response.get(key, []))
            request = collection.list_next(request, response)
        return items

    def list_groups(self, query: Optional[str] = None) -> list[SourceGroup]:
        params: dict[str, Any] = {"domain": self._domain, "maxResults": GROUPS_PAGE_SIZE}
        if query:
            params["query"] = query
        groups = [SourceGroup.from_dict(g) for g in self._list_all("groups", "groups", **params)]
        logger.info("Fetched %d Google Workspace groups", len(groups))
        return groups

    def list_users(self, query: Optional[str] = None, include_deleted: bool = False) -> list[SourceUser]:
        params: dict[str, Any] = {
            "domain": self._domain,
            "maxResults": USERS_PAGE_SIZE,
            "showDeleted": "true" if include_deleted else "false",
        }
        if query:
            params["query"] = query
        users = [SourceUser.from_dict(u) for u in self._list_all("users", "users", **params)]
        logger.info(
            "Fetched %d Google Workspace %susers",
            len(users), "deleted " if include_deleted else "",
        )
        return users

    def list_group_members(self, group_id: str) -> set[str]:
        """Emails of the human members of a group, direct and derived."""
        try:
            members = self._list_all(
                "members",
                "members",
                groupKey=group_id,
                includeDerivedMembership=True,
                maxResults=MEMBERS_PAGE_SIZE,
            )
        except DirectoryError as e:
            if e.status == 404:
                logger.warning("Group %s vanished while listing members", group_id)
                return set()
            raise
        return {m["email"] for m in members if m.get("type") == "USER" and m.get("email")}
