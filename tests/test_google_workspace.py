"""Tests for the Google Workspace directory client with a mocked discovery service."""

import json
from unittest.mock import MagicMock

import httplib2
import pytest
from googleapiclient.errors import HttpError

from scripts.sso_sync.config import RetryConfig
from scripts.sso_sync.errors import DirectoryError, SecretError
from scripts.sso_sync.providers import google_workspace
from scripts.sso_sync.providers.google_workspace import (
    GoogleAdminCredentials,
    GoogleDirectoryClient,
)


def _http_error(status, reason="error"):
    content = json.dumps({"error": {"code": status, "message": reason, "errors": [{"reason": reason}]}})
    return HttpError(httplib2.Response({"status": status}), content.encode())


def _pages(collection, *pages):
    """Wire collection.list/list_next to return the given pages in order."""
    requests = []
    for page in pages:
        req = MagicMock()
        if isinstance(page, list):
            req.execute.side_effect = page
        else:
            req.execute.return_value = page
        requests.append(req)
    collection.list.return_value = requests[0]
    collection.list_next.side_effect = requests[1:] + [None]
    return requests


@pytest.fixture
def service():
    return MagicMock()


@pytest.fixture
def client(service, monkeypatch):
    monkeypatch.setattr("scripts.sso_sync.base_provider.time.sleep", lambda _s: None)
    creds = GoogleAdminCredentials(admin_email="admin@example.org")
    return GoogleDirectoryClient(creds, retry=RetryConfig(delay_s=0, max_retries=2), service=service)


def test_list_groups_follows_pages_and_scopes_domain(client, service):
    groups = service.groups.return_value
    _pages(
        groups,
        {"groups": [{"id": "1", "email": "a@example.org"}], "nextPageToken": "t"},
        {"groups": [{"id": "2", "email": "b@example.org"}]},
    )

    result = client.list_groups("email:aws-*")

    assert [g.email for g in result] == ["a@example.org", "b@example.org"]
    kwargs = groups.list.call_args.kwargs
    assert kwargs["domain"] == "example.org"
    assert kwargs["query"] == "email:aws-*"


def test_list_users_deleted_flag(client, service):
    users = service.users.return_value
    _pages(users, {"users": [{"id": "9", "primaryEmail": "gone@example.org", "name": {}}]})

    result = client.list_users(None, include_deleted=True)

    assert result[0].primary_email == "gone@example.org"
    kwargs = users.list.call_args.kwargs
    assert kwargs["showDeleted"] == "true"
    assert "query" not in kwargs


def test_empty_page_without_key(client, service):
    _pages(service.users.return_value, {"kind": "admin#directory#users"})

    assert client.list_users() == []


def test_members_keep_only_human_users_with_derived_membership(client, service):
    members = service.members.return_value
    _pages(members, {"members": [
        {"email": "alice@example.org", "type": "USER"},
        {"email": "nested@example.org", "type": "GROUP"},
        {"email": "bob@example.org", "type": "USER"},
        {"id": "C01", "type": "CUSTOMER"},
    ]})

    result = client.list_group_members("gid-1")

    assert result == {"alice@example.org", "bob@example.org"}
    kwargs = members.list.call_args.kwargs
    assert kwargs["groupKey"] == "gid-1"
    assert kwargs["includeDerivedMembership"] is True


def test_rate_limited_page_is_retried(client, service):
    _pages(service.groups.return_value, [
        _http_error(429, "rateLimitExceeded"),
        _http_error(403, "userRateLimitExceeded"),
        {"groups": [{"id": "1", "email": "a@example.org"}]},
    ])

    assert len(client.list_groups()) == 1


def test_hard_error_is_wrapped(client, service):
    _pages(service.groups.return_value, [_http_error(403, "forbidden")])

    with pytest.raises(DirectoryError) as excinfo:
        client.list_groups()
    assert excinfo.value.status == 403


def test_vanished_group_has_no_members(client, service):
    _pages(service.members.return_value, [_http_error(404, "notFound")])

    assert client.list_group_members("gid-1") == set()


def test_credentials_from_secret_accepts_string_json():
    info = {"type": "service_account", "client_email": "sa@proj.iam.gserviceaccount.com"}

    creds = GoogleAdminCredentials.from_secret({"mail": "admin@example.org", "credential_json": json.dumps(info)})

    assert creds.domain == "example.org"
    assert creds.service_account_info == info
    assert "client_email" not in repr(creds)


@pytest.mark.parametrize("secret", [
    {"mail": "admin@example.org"},
    {"mail": "not-an-email", "credential_json": {}},
    {"mail": "admin@example.org", "credential_json": "{broken"},
    {"mail": "admin@example.org", "credential_json": ["list"]},
])
def test_credentials_from_secret_rejects_bad_values(secret):
    with pytest.raises(SecretError):
        GoogleAdminCredentials.from_secret(secret)


def test_client_delegates_service_account_to_admin(monkeypatch):
    sa_creds = MagicMock()
    from_info = MagicMock(return_value=sa_creds)
    build = MagicMock()
    monkeypatch.setattr(google_workspace.service_account.Credentials, "from_service_account_info", from_info)
    monkeypatch.setattr(google_workspace, "build", build)
    creds = GoogleAdminCredentials(admin_email="admin@example.org", service_account_info={"type": "service_account"})

    GoogleDirectoryClient(creds)

    assert from_info.call_args.kwargs["scopes"] == google_workspace.SCOPES
    sa_creds.with_subject.assert_called_once_with("admin@example.org")
    assert build.call_args.kwargs["credentials"] is sa_creds.with_subject.return_value


def test_client_without_service_account_key_is_rejected():
    with pytest.raises(SecretError, match="service-account key"):
        GoogleDirectoryClient(GoogleAdminCredentials(admin_email="admin@example.org"))
