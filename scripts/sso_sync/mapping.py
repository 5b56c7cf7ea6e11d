"""Shape conversion from Google Workspace entries to SCIM resources."""

from __future__ import annotations

from typing import Optional

from scripts.sso_sync.models import (
    SourceGroup,
    SourceUser,
    TargetEmail,
    TargetGroup,
    TargetUser,
    TargetUserName,
)


def target_group_from_source(group: SourceGroup) -> TargetGroup:
    return TargetGroup(display_name=group.email)


def _primary_email(user: SourceUser) -> Optional[list[TargetEmail]]:
    # AWS SSO accepts a single email; non-primary addresses are dropped.
    for email in user.emails:
        if email.primary is True:
            return [TargetEmail(value=email.address, type=email.type, primary=email.primary)]
    return None


def target_user_from_source(user: SourceUser) -> TargetUser:
    return TargetUser(
        external_id=user.id,
        user_name=user.primary_email,
        name=TargetUserName(
            formatted=user.name.full_name,
            family_name=user.name.family_name,
            given_name=user.name.given_name,
        ),
        display_name=user.name.full_name,
        profile_url=user.thumbnail_photo_url,
        emails=_primary_email(user),
        active=not (user.suspended or False),
    )
