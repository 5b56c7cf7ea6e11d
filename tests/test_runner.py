"""Tests for run orchestration: secrets -> clients -> reconciler."""

from unittest.mock import MagicMock

import pytest

from conftest import FakeDirectory, FakeScim, source_group, source_user
from scripts.sso_sync import runner
from scripts.sso_sync.config import SecretRef, SyncConfig, SyncMode
from scripts.sso_sync.errors import ScimError

GOOGLE_SECRET = {"mail": "admin@example.org", "credential_json": {"type": "service_account"}}
SCIM_SECRET = {"endpoint": "https://scim.example/v2", "access_token": "t"}


@pytest.fixture
def wired(monkeypatch):
    """Patch secret loading and both client classes with in-memory fakes."""
    source = FakeDirectory(
        groups=[source_group("eng@example.org")],
        users=[source_user("alice@example.org"), source_user("bob@example.org")],
        members={"eng@example.org": {"alice@example.org"}},
    )
    target = FakeScim()

    secrets_by_id = {"google": GOOGLE_SECRET, "scim": SCIM_SECRET}
    monkeypatch.setattr(runner, "load_json_secret", lambda ref: secrets_by_id[ref.id])

    source_cls = MagicMock()
    source_cls.return_value.__enter__.return_value = source
    source_cls.return_value.__exit__.return_value = False
    target_cls = MagicMock()
    target_cls.return_value.__enter__.return_value = target
    target_cls.return_value.__exit__.return_value = False
    monkeypatch.setattr(runner, "GoogleDirectoryClient", source_cls)
    monkeypatch.setattr(runner, "ScimClient", target_cls)
    return source, target, source_cls, target_cls


def _config(**kwargs):
    return SyncConfig(
        google_creds=SecretRef("eu-central-1", "google"),
        scim_creds=SecretRef("eu-central-1", "scim"),
        **kwargs,
    )


def test_run_sync_returns_counts(wired):
    _source, target, source_cls, target_cls = wired

    results = runner.run_sync(_config())

    assert results == {
        "groups_deleted": 0,
        "groups_created": 1,
        "users_deleted": 0,
        "users_created": 1,
        "memberships_added": 1,
        "memberships_removed": 0,
    }
    assert set(target.users) == {"alice@example.org"}
    google_creds = source_cls.call_args.args[0]
    assert google_creds.admin_email == "admin@example.org"
    assert target_cls.call_args.args[0].endpoint == "https://scim.example/v2"
    target_cls.return_value.__exit__.assert_called_once()


def test_run_sync_honours_mode(wired):
    _source, target, _s, _t = wired

    runner.run_sync(_config(sync_mode=SyncMode.ALL_USERS))

    assert set(target.users) == {"alice@example.org", "bob@example.org"}


def test_hard_failure_propagates_and_closes_clients(wired, caplog):
    _source, target, _s, target_cls = wired
    target.create_group = MagicMock(side_effect=ScimError("HTTP 500", status=500))

    with pytest.raises(ScimError):
        runner.run_sync(_config())
    target_cls.return_value.__exit__.assert_called_once()
    assert any("Sync failed" in r.getMessage() for r in caplog.records)
