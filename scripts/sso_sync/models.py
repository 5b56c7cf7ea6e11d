"""Snapshots of directory entries on both sides of the sync.

Source entities mirror the Google Admin Directory API resources; target
entities mirror the SCIM v2 resources served by AWS SSO. Only the attributes
the reconciler reads or writes are modelled.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


# ------------------------------------------------------------------
# Source (Google Workspace)
# ------------------------------------------------------------------


@dataclass(frozen=True)
class SourceGroup:
    id: str
    email: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SourceGroup":
        return cls(id=data["id"], email=data["email"])


@dataclass(frozen=True)
class SourceUserName:
    full_name: str = ""
    given_name: str = ""
    family_name: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SourceUserName":
        return cls(
            full_name=data.get("fullName", ""),
            given_name=data.get("givenName", ""),
            family_name=data.get("familyName", ""),
        )


@dataclass(frozen=True)
class SourceEmail:
    address: str
    primary: Optional[bool] = None
    type: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SourceEmail":
        return cls(
            address=data["address"],
            primary=data.get("primary"),
            type=data.get("type"),
        )


@dataclass(frozen=True)
class SourceUser:
    id: str
    primary_email: str
    name: SourceUserName = field(default_factory=SourceUserName)
    suspended: Optional[bool] = None
    thumbnail_photo_url: Optional[str] = None
    emails: tuple[SourceEmail, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SourceUser":
        return cls(
            id=data["id"],
            primary_email=data["primaryEmail"],
            name=SourceUserName.from_dict(data.get("name", {})),
            suspended=data.get("suspended"),
            thumbnail_photo_url=data.get("thumbnailPhotoUrl"),
            emails=tuple(SourceEmail.from_dict(e) for e in data.get("emails", [])),
        )


# ------------------------------------------------------------------
# Target (SCIM)
# ------------------------------------------------------------------


@dataclass
class TargetGroup:
    display_name: str
    id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"displayName": self.display_name}
        if self.id is not None:
            d["id"] = self.id
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TargetGroup":
        return cls(display_name=data["displayName"], id=data.get("id"))


@dataclass
class TargetUserName:
    family_name: str
    given_name: str
    formatted: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "familyName": self.family_name,
            "givenName": self.given_name,
        }
        if self.formatted is not None:
            d["formatted"] = self.formatted
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TargetUserName":
        return cls(
            family_name=data.get("familyName", ""),
            given_name=data.get("givenName", ""),
            formatted=data.get("formatted"),
        )


@dataclass
class TargetEmail:
    value: str
    type: Optional[str] = None
    primary: Optional[bool] = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"value": self.value}
        if self.type is not None:
            d["type"] = self.type
        if self.primary is not None:
            d["primary"] = self.primary
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TargetEmail":
        return cls(value=data["value"], type=data.get("type"), primary=data.get("primary"))


@dataclass
class TargetUser:
    user_name: str
    name: TargetUserName
    display_name: str
    active: bool = True
    id: Optional[str] = None
    external_id: Optional[str] = None
    profile_url: Optional[str] = None
    emails: Optional[list[TargetEmail]] = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for POST /Users. Unset optional attributes are omitted."""
        d: dict[str, Any] = {
            "userName": self.user_name,
            "name": self.name.to_dict(),
            "displayName": self.display_name,
            "active": self.active,
        }
        if self.id is not None:
            d["id"] = self.id
        if self.external_id is not None:
            d["externalId"] = self.external_id
        if self.profile_url is not None:
            d["profileUrl"] = self.profile_url
        if self.emails is not None:
            d["emails"] = [e.to_dict() for e in self.emails]
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TargetUser":
        emails = data.get("emails")
        return cls(
            id=data.get("id"),
            external_id=data.get("externalId"),
            user_name=data["userName"],
            name=TargetUserName.from_dict(data.get("name", {})),
            display_name=data.get("displayName", ""),
            profile_url=data.get("profileUrl"),
            emails=[TargetEmail.from_dict(e) for e in emails] if emails is not None else None,
            active=data.get("active", True),
        )
