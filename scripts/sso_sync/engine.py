"""Reconciliation of Google Workspace groups/users into AWS SSO over SCIM.

One Reconciler instance owns all lookup tables for exactly one run:

    load()             target users, target groups, source groups, source
                       users, then per-group source membership
    sync_groups()      delete target-only groups, then create source-only ones
    sync_users()       narrow by membership, delete, (sweep deleted), create
    sync_memberships() point-query every (group, user) pair and add/remove

Lookup tables are plain dicts keyed by email / userName / displayName and are
updated after every mutation, so later phases see the current target state.
The target's listings are capped (result_cap); when the user listing hits
the cap an additional deleted-user sweep runs so users hidden by the cap are
still removed.
"""

from __future__ import annotations

import logging
from typing import Callable, Collection, Optional, Protocol

from scripts.sso_sync.config import DEFAULT_RESULT_CAP, SyncMode
from scripts.sso_sync.errors import ReconciliationError
from scripts.sso_sync.filters import PatternFilter
from scripts.sso_sync.mapping import target_group_from_source, target_user_from_source
from scripts.sso_sync.models import SourceGroup, SourceUser, TargetGroup, TargetUser

logger = logging.getLogger("sso_sync.engine")


class DirectorySource(Protocol):
    def list_groups(self, query: Optional[str] = None) -> list[SourceGroup]: ...

    def list_users(
        self, query: Optional[str] = None, include_deleted: bool = False
    ) -> list[SourceUser]: ...

    def list_group_members(self, group_id: str) -> set[str]: ...


class ProvisioningTarget(Protocol):
    def list_groups(self) -> list[TargetGroup]: ...

    def list_users(self) -> list[TargetUser]: ...

    def get_group(self, display_name: str) -> TargetGroup: ...

    def get_user(self, user_name: str) -> Optional[TargetUser]: ...

    def create_group(self, group: TargetGroup) -> Optional[TargetGroup]: ...

    def create_user(self, user: TargetUser) -> Optional[TargetUser]: ...

    def delete_group(self, group_id: str) -> None: ...

    def delete_user(self, user_id: str) -> None: ...

    def is_group_member(self, group_id: str, user_id: str) -> bool: ...

    def add_group_member(self, group_id: str, user_id: str) -> None: ...

    def remove_group_member(self, group_id: str, user_id: str) -> None: ...


# (source, target, keys to keep, keys already deleted) -> keys deleted
AdvancedDeletion = Callable[
    [DirectorySource, ProvisioningTarget, Collection[str], Collection[str]], set[str]
]


def sweep_deleted_users(
    source: DirectorySource,
    target: ProvisioningTarget,
    keep: Collection[str],
    already_deleted: Collection[str],
) -> set[str]:
    """Delete target users whose source account was deleted.

    Used when the target listing was truncated: users missing from the
    listing cannot be found by diffing, so every deleted source user is
    looked up at the target by userName instead.
    """
    deleted: set[str] = set()
    for user in source.list_users(None, include_deleted=True):
        key = user.primary_email
        if key in keep or key in already_deleted or key in deleted:
            continue
        match = target.get_user(key)
        if match is None or match.id is None:
            continue
        logger.info(
            "Deleting user: %s (deleted at source)", key,
            extra={"operation": "delete", "entity_type": "user", "key": key},
        )
        target.delete_user(match.id)
        deleted.add(key)
    return deleted


class Reconciler:
    """Drives the target directory into agreement with the source directory."""

    def __init__(
        self,
        source: DirectorySource,
        target: ProvisioningTarget,
        *,
        sync_mode: SyncMode = SyncMode.GROUP_MEMBERS_ONLY,
        result_cap: int = DEFAULT_RESULT_CAP,
        user_query: Optional[str] = None,
        group_query: Optional[str] = None,
        user_filter: Optional[PatternFilter] = None,
        group_filter: Optional[PatternFilter] = None,
        advanced_deletion: AdvancedDeletion = sweep_deleted_users,
    ) -> None:
        self.source = source
        self.target = target
        self.sync_mode = sync_mode
        self.result_cap = result_cap
        self.user_query = user_query
        self.group_query = group_query
        self.user_filter = user_filter or PatternFilter()
        self.group_filter = group_filter or PatternFilter()
        self.advanced_deletion = advanced_deletion

        self.target_groups: dict[str, TargetGroup] = {}
        self.target_users: dict[str, TargetUser] = {}
        self.source_groups: dict[str, SourceGroup] = {}
        self.source_users: dict[str, SourceUser] = {}
        self.memberships: dict[str, set[str]] = {}

        self.target_users_capped = False
        self.target_groups_capped = False
        self.stats: dict[str, int] = {
            "groups_deleted": 0,
            "groups_created": 0,
            "users_deleted": 0,
            "users_created": 0,
            "memberships_added": 0,
            "memberships_removed": 0,
        }

    # ------------------------------------------------------------------
    # Initialisation
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Fetch both snapshots and build every lookup table from scratch."""
        self.target_users = {u.user_name: u for u in self.target.list_users()}
        self.target_groups = {g.display_name: g for g in self.target.list_groups()}
        self.target_users_capped = len(self.target_users) >= self.result_cap
        self.target_groups_capped = len(self.target_groups) >= self.result_cap
        self._warn_if_capped()

        self.source_groups = {
            g.email: g
            for g in self.source.list_groups(self.group_query)
            if self.group_filter.allows(g.email)
        }
        self.source_users = {
            u.primary_email: u
            for u in self.source.list_users(self.user_query, include_deleted=False)
            if self.user_filter.allows(u.primary_email)
        }
        self.memberships = {}
        for email, group in self.source_groups.items():
            self.memberships[email] = set(self.source.list_group_members(group.id))

        logger.info(
            "Loaded %d/%d source groups/users, %d/%d target groups/users",
            len(self.source_groups), len(self.source_users),
            len(self.target_groups), len(self.target_users),
        )

    def _warn_if_capped(self) -> None:
        if self.target_users_capped:
            logger.warning(
                "There are %d or more users set up in AWS SSO, which cannot return more "
                "than %d users. Falling back to a slower method to keep users in sync.",
                self.result_cap, self.result_cap,
                extra={"entity_type": "user", "records": len(self.target_users)},
            )
        if self.target_groups_capped:
            logger.warning(
                "There are %d or more groups set up in AWS SSO, which cannot return more "
                "than %d groups. Groups deleted in Google may not be deleted in AWS SSO.",
                self.result_cap, self.result_cap,
                extra={"entity_type": "group", "records": len(self.target_groups)},
            )

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    def sync_groups(self) -> None:
        self._delete_groups()
        self._create_groups()

    def _delete_groups(self) -> None:
        stale = [k for k in self.target_groups if k not in self.source_groups]
        for key in stale:
            group = self.target_groups.pop(key)
            if group.id is None:
                logger.debug("Group %s has no id, not deleting", key)
                continue
            logger.info(
                "Deleting group: %s", key,
                extra={"operation": "delete", "entity_type": "group", "key": key},
            )
            self.target.delete_group(group.id)
            self.stats["groups_deleted"] += 1

    def _create_groups(self) -> None:
        missing = [g for k, g in self.source_groups.items() if k not in self.target_groups]
        for source_group in missing:
            key = source_group.email
            logger.info(
                "Creating group: %s", key,
                extra={"operation": "create", "entity_type": "group", "key": key},
            )
            group = self.target.create_group(target_group_from_source(source_group))
            if group is None:
                logger.info("Group %s already exists - fetching instead", key)
                group = self.target.get_group(key)
            else:
                self.stats["groups_created"] += 1
            self.target_groups[group.display_name] = group

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def narrow_users_to_members(self) -> None:
        """Keep only source users that belong to at least one synced group."""
        members: set[str] = set().union(*self.memberships.values())
        self.source_users = {k: u for k, u in self.source_users.items() if k in members}

    def sync_users(self) -> None:
        if self.sync_mode is SyncMode.GROUP_MEMBERS_ONLY:
            self.narrow_users_to_members()
        deleted = self._delete_users()
        if self.target_users_capped:
            swept = self.advanced_deletion(
                self.source, self.target, self.source_users.keys(), deleted
            )
            for key in swept:
                self.target_users.pop(key, None)
            self.stats["users_deleted"] += len(swept)
        self._create_users()

    def _delete_users(self) -> set[str]:
        deleted: set[str] = set()
        stale = [k for k in self.target_users if k not in self.source_users]
        for key in stale:
            user = self.target_users[key]
            if user.id is None:
                logger.debug("User %s has no id, not deleting", key)
                continue
            logger.info(
                "Deleting user: %s", key,
                extra={"operation": "delete", "entity_type": "user", "key": key},
            )
            self.target.delete_user(user.id)
            del self.target_users[key]
            deleted.add(key)
        self.stats["users_deleted"] += len(deleted)
        return deleted

    def _create_users(self) -> None:
        missing = [u for k, u in self.source_users.items() if k not in self.target_users]
        for source_user in missing:
            key = source_user.primary_email
            logger.info(
                "Creating user: %s", key,
                extra={"operation": "create", "entity_type": "user", "key": key},
            )
            user = self.target.create_user(target_user_from_source(source_user))
            if user is None:
                logger.info("User %s already exists - fetching instead", key)
                user = self.target.get_user(key)
                if user is None:
                    raise ReconciliationError(f"Unable to find user with user_name: {key}")
            else:
                self.stats["users_created"] += 1
            self.target_users[user.user_name] = user

    # ------------------------------------------------------------------
    # Memberships
    # ------------------------------------------------------------------

    def sync_memberships(self) -> None:
        # No membership listing is trusted: every pair is queried directly.
        for group_key, members in self.memberships.items():
            group = self.target_groups.get(group_key)
            if group is None or group.id is None:
                logger.info("Group %s has no AWS SSO id, skipping its members", group_key)
                continue
            for user_key, user in self.target_users.items():
                if user.id is None:
                    continue
                at_target = self.target.is_group_member(group.id, user.id)
                at_source = user_key in members
                if at_source and not at_target:
                    logger.info(
                        "Adding user %s to group %s.", user_key, group_key,
                        extra={"operation": "add_member", "entity_type": "membership", "key": group_key},
                    )
                    self.target.add_group_member(group.id, user.id)
                    self.stats["memberships_added"] += 1
                elif at_target and not at_source:
                    logger.info(
                        "Removing user %s from group %s.", user_key, group_key,
                        extra={"operation": "remove_member", "entity_type": "membership", "key": group_key},
                    )
                    self.target.remove_group_member(group.id, user.id)
                    self.stats["memberships_removed"] += 1

    # ------------------------------------------------------------------

    def run(self) -> dict[str, int]:
        """Full reconciliation: load, then groups, users, memberships."""
        self.load()
        self.sync_groups()
        self.sync_users()
        self.sync_memberships()
        return dict(self.stats)
