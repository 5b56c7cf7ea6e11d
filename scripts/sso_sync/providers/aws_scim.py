"""AWS SSO (IAM Identity Center) SCIM v2 provisioning client.

AWS specifics handled here:
  - listings are capped (50 entries) whatever the real population is
  - throttling shows up as 429, or as 400 with a ThrottlingException body
  - group membership can only be changed through PATCH
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import requests

from scripts.sso_sync.base_provider import BaseProvider
from scripts.sso_sync.config import RetryConfig
from scripts.sso_sync.errors import ScimError, SecretError
from scripts.sso_sync.models import TargetGroup, TargetUser

logger = logging.getLogger("sso_sync.aws_scim")

PATCH_OP_SCHEMA = "urn:ietf:params:scim:api:messages:2.0:PatchOp"
PAGE_SIZE = 100
REQUEST_TIMEOUT_S = 30


@dataclass(frozen=True)
class ScimCredentials:
    endpoint: str
    access_token: str = field(repr=False)

    @classmethod
    def from_secret(cls, data: dict[str, Any]) -> "ScimCredentials":
        """Parse {"endpoint": ..., "access_token": ...}."""
        endpoint = data.get("endpoint")
        token = data.get("access_token")
        if not endpoint or not token:
            raise SecretError("SCIM secret must contain 'endpoint' and 'access_token'")
        return cls(endpoint=endpoint, access_token=token)


def _is_throttled(resp: requests.Response) -> bool:
    if resp.status_code == 429:
        return True
    return resp.status_code == 400 and "ThrottlingException" in resp.text


class ScimClient(BaseProvider):
    PROVIDER_NAME = "aws_scim"

    def __init__(
        self,
        creds: ScimCredentials,
        retry: RetryConfig | None = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        super().__init__(retry)
        self._base = creds.endpoint.rstrip("/")
        self._session = session or requests.Session()
        self._session.headers.update({
            "Authorization": f"Bearer {creds.access_token}",
            "Content-Type": "application/scim+json",
            "Accept": "application/scim+json",
        })

    def close(self) -> None:
        self._session.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        operation: str,
        accept: tuple[int, ...] = (),
        **kwargs: Any,
    ) -> requests.Response:
        """Send a request, retrying throttled responses.

        Statuses listed in ``accept`` are returned to the caller instead of
        raising, so callers can map e.g. 409 or 404 to a result.
        """
        attempt = 0
        while True:
            try:
                resp = self._session.request(
                    method, f"{self._base}{path}", timeout=REQUEST_TIMEOUT_S, **kwargs
                )
            except requests.RequestException as exc:
                raise ScimError(f"Unable to send request to AWS SCIM ({operation}): {exc}") from exc
            if _is_throttled(resp):
                self._rate_limit_sleep(operation, attempt)
                attempt += 1
                continue
            if resp.status_code in accept or 200 <= resp.status_code < 300:
                return resp
            raise ScimError(
                f"Error returned from server ({operation}): HTTP {resp.status_code}",
                status=resp.status_code,
                detail=resp.text[:1000],
            )

    def _json(self, resp: requests.Response, operation: str) -> dict:
        try:
            return resp.json()
        except ValueError as exc:
            raise ScimError(
                f"Could not parse result from AWS SCIM ({operation})", status=resp.status_code
            ) from exc

    def _list(self, path: str, operation: str) -> list[dict]:
        """Page through a collection with startIndex/count."""
        items: list[dict] = []
        start = 1
        while True:
            resp = self._request(
                "GET", path, operation, params={"startIndex": start, "count": PAGE_SIZE}
            )
            data = self._json(resp, operation)
            resources = data.get("Resources", [])
            items.extend(resources)
            start += len(resources)
            total = data.get("totalResults")
            if not resources or total is None or start > int(total):
                return items

    def _search(self, path: str, scim_filter: str, operation: str) -> list[dict]:
        resp = self._request("GET", path, operation, accept=(404,), params={"filter": scim_filter})
        if resp.status_code == 404:
            return []
        return self._json(resp, operation).get("Resources", [])

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def list_users(self) -> list[TargetUser]:
        return [TargetUser.from_dict(u) for u in self._list("/Users", "list_users")]

    def get_user(self, user_name: str) -> Optional[TargetUser]:
        found = self._search("/Users", f'userName eq "{user_name}"', "get_user")
        return TargetUser.from_dict(found[-1]) if found else None

    def create_user(self, user: TargetUser) -> Optional[TargetUser]:
        """Create a user. Returns None when the target reports a conflict."""
        resp = self._request("POST", "/Users", "create_user", accept=(409,), json=user.to_dict())
        if resp.status_code == 409:
            return None
        return TargetUser.from_dict(self._json(resp, "create_user"))

    def delete_user(self, user_id: str) -> None:
        self._request("DELETE", f"/Users/{user_id}", "delete_user")

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    def list_groups(self) -> list[TargetGroup]:
        return [TargetGroup.from_dict(g) for g in self._list("/Groups", "list_groups")]

    def get_group(self, display_name: str) -> TargetGroup:
        found = self._search("/Groups", f'displayName eq "{display_name}"', "get_group")
        if not found:
            raise ScimError(f"Unable to find group with name: {display_name}", status=404)
        return TargetGroup.from_dict(found[-1])

    def create_group(self, group: TargetGroup) -> Optional[TargetGroup]:
        """Create a group. Returns None when the target reports a conflict."""
        resp = self._request("POST", "/Groups", "create_group", accept=(409,), json=group.to_dict())
        if resp.status_code == 409:
            return None
        return TargetGroup.from_dict(self._json(resp, "create_group"))

    def delete_group(self, group_id: str) -> None:
        self._request("DELETE", f"/Groups/{group_id}", "delete_group")

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def is_group_member(self, group_id: str, user_id: str) -> bool:
        found = self._search(
            "/Groups", f'id eq "{group_id}" and members eq "{user_id}"', "is_group_member"
        )
        return bool(found)

    def _patch_members(self, group_id: str, user_id: str, op: str, operation: str) -> None:
        body = {
            "schemas": [PATCH_OP_SCHEMA],
            "Operations": [{
                "op": op,
                "path": "members",
                "value": [{"value": user_id}],
            }],
        }
        self._request("PATCH", f"/Groups/{group_id}", operation, json=body)

    def add_group_member(self, group_id: str, user_id: str) -> None:
        self._patch_members(group_id, user_id, "add", "add_group_member")

    def remove_group_member(self, group_id: str, user_id: str) -> None:
        self._patch_members(group_id, user_id, "remove", "remove_group_member")
