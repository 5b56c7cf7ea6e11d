"""Shared fixtures: in-memory source and target directories."""

from __future__ import annotations

import dataclasses
import itertools
import logging
from typing import Iterable, Optional

import pytest

from scripts.sso_sync.errors import ScimError
from scripts.sso_sync.models import (
    SourceEmail,
    SourceGroup,
    SourceUser,
    SourceUserName,
    TargetEmail,
    TargetGroup,
    TargetUser,
    TargetUserName,
)

MUTATIONS = {
    "create_group",
    "delete_group",
    "create_user",
    "delete_user",
    "add_group_member",
    "remove_group_member",
}


def source_user(email: str, uid: Optional[str] = None, suspended: Optional[bool] = None) -> SourceUser:
    local = email.split("@")[0]
    return SourceUser(
        id=uid or f"g-{local}",
        primary_email=email,
        name=SourceUserName(full_name=f"{local} Test", given_name=local, family_name="Test"),
        suspended=suspended,
        emails=(SourceEmail(address=email, primary=True, type="work"),),
    )


def source_group(email: str) -> SourceGroup:
    return SourceGroup(id=f"gid-{email.split('@')[0]}", email=email)


def target_user(email: str, uid: Optional[str]) -> TargetUser:
    return TargetUser(
        id=uid,
        user_name=email,
        name=TargetUserName(family_name="Test", given_name=email.split("@")[0]),
        display_name=email,
        emails=[TargetEmail(value=email, primary=True)],
    )


class FakeDirectory:
    """Google Workspace stand-in. Memberships are keyed by group email."""

    def __init__(
        self,
        groups: Iterable[SourceGroup] = (),
        users: Iterable[SourceUser] = (),
        members: Optional[dict[str, set[str]]] = None,
        deleted_users: Iterable[SourceUser] = (),
        journal: Optional[list] = None,
    ) -> None:
        self.groups = list(groups)
        self.users = list(users)
        self.members = members or {}
        self.deleted_users = list(deleted_users)
        self.calls = journal if journal is not None else []

    def list_groups(self, query=None):
        self.calls.append(("source.list_groups", query))
        return list(self.groups)

    def list_users(self, query=None, include_deleted=False):
        self.calls.append(("source.list_users", query, include_deleted))
        return list(self.deleted_users if include_deleted else self.users)

    def list_group_members(self, group_id):
        self.calls.append(("source.list_group_members", group_id))
        email = next(g.email for g in self.groups if g.id == group_id)
        return set(self.members.get(email, set()))


class FakeScim:
    """SCIM stand-in with a listing cap and entries hidden from listings."""

    def __init__(
        self,
        groups: Iterable[TargetGroup] = (),
        users: Iterable[TargetUser] = (),
        members: Iterable[tuple[str, str]] = (),
        hidden_groups: Iterable[TargetGroup] = (),
        hidden_users: Iterable[TargetUser] = (),
        journal: Optional[list] = None,
    ) -> None:
        self.groups = {g.display_name: g for g in groups}
        self.users = {u.user_name: u for u in users}
        self.hidden_group_names = {g.display_name for g in hidden_groups}
        self.hidden_user_names = {u.user_name for u in hidden_users}
        self.groups.update({g.display_name: g for g in hidden_groups})
        self.users.update({u.user_name: u for u in hidden_users})
        self.members = set(members)
        self.calls = journal if journal is not None else []
        self._ids = itertools.count(1000)

    @property
    def mutations(self) -> list[tuple]:
        return [c for c in self.calls if c[0] in MUTATIONS]

    def list_groups(self):
        self.calls.append(("target.list_groups",))
        return [dataclasses.replace(g) for n, g in self.groups.items() if n not in self.hidden_group_names]

    def list_users(self):
        self.calls.append(("target.list_users",))
        return [dataclasses.replace(u) for n, u in self.users.items() if n not in self.hidden_user_names]

    def get_group(self, display_name):
        self.calls.append(("get_group", display_name))
        if display_name not in self.groups:
            raise ScimError(f"Unable to find group with name: {display_name}", status=404)
        return dataclasses.replace(self.groups[display_name])

    def get_user(self, user_name):
        self.calls.append(("get_user", user_name))
        user = self.users.get(user_name)
        return dataclasses.replace(user) if user else None

    def create_group(self, group):
        self.calls.append(("create_group", group.display_name))
        if group.display_name in self.groups:
            return None
        created = dataclasses.replace(group, id=f"grp-{next(self._ids)}")
        self.groups[group.display_name] = created
        return dataclasses.replace(created)

    def create_user(self, user):
        self.calls.append(("create_user", user.user_name))
        if user.user_name in self.users:
            return None
        created = dataclasses.replace(user, id=f"usr-{next(self._ids)}")
        self.users[user.user_name] = created
        return dataclasses.replace(created)

    def delete_group(self, group_id):
        self.calls.append(("delete_group", group_id))
        name = next(n for n, g in self.groups.items() if g.id == group_id)
        del self.groups[name]
        self.hidden_group_names.discard(name)
        self.members = {m for m in self.members if m[0] != group_id}

    def delete_user(self, user_id):
        self.calls.append(("delete_user", user_id))
        name = next(n for n, u in self.users.items() if u.id == user_id)
        del self.users[name]
        self.hidden_user_names.discard(name)
        self.members = {m for m in self.members if m[1] != user_id}

    def is_group_member(self, group_id, user_id):
        self.calls.append(("is_group_member", group_id, user_id))
        return (group_id, user_id) in self.members

    def add_group_member(self, group_id, user_id):
        self.calls.append(("add_group_member", group_id, user_id))
        self.members.add((group_id, user_id))

    def remove_group_member(self, group_id, user_id):
        self.calls.append(("remove_group_member", group_id, user_id))
        self.members.discard((group_id, user_id))


@pytest.fixture(autouse=True)
def _reset_sso_sync_logger():
    """configure_logging() detaches the package logger; restore it for caplog."""
    yield
    logger = logging.getLogger("sso_sync")
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def no_dotenv(monkeypatch):
    monkeypatch.setattr("scripts.sso_sync.config.load_dotenv", lambda: None)


CONFIG_ENV_VARS = [
    "SH_GOOGLE_CREDS", "SH_SCIM_CREDS", "GOOGLE_CREDS_SECRET", "SCIM_CREDS_SECRET",
    "GOOGLE_API_QUERY_FOR_USERS", "GOOGLE_API_QUERY_FOR_GROUPS",
    "IGNORE_USERS_REGEXES", "INCLUDE_USERS_REGEXES",
    "IGNORE_GROUPS_REGEXES", "INCLUDE_GROUPS_REGEXES",
    "SYNC_MODE", "SYNC_STRATEGIE", "RESULT_CAP",
    "SYNC_INTERVAL_MIN", "SYNC_MISFIRE_GRACE_S",
    "SCIM_RETRY_DELAY_S", "SCIM_MAX_RETRIES",
]


@pytest.fixture
def clean_env(monkeypatch, no_dotenv):
    for var in CONFIG_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


@pytest.fixture
def creds_env(clean_env):
    clean_env.setenv("SH_GOOGLE_CREDS", '{"region": "eu-central-1", "id": "google-admin"}')
    clean_env.setenv("SH_SCIM_CREDS", '{"region": "eu-central-1", "id": "aws-sso-scim"}')
    return clean_env
