"""CLI entry point: sync, scheduler, check-config."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Any

from scripts.sso_sync.config import SecretRef, SyncConfig, load_config
from scripts.sso_sync.errors import SyncError
from scripts.sso_sync.filters import PatternFilter
from scripts.sso_sync.logging_config import configure_logging

logger = logging.getLogger("sso_sync.cli")

MODE_CHOICES = ["all_users", "group_members_only"]


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Command-line flags, shaped like a Lambda event so they take precedence."""
    event: dict[str, Any] = {}
    if getattr(args, "mode", None):
        event["sync_mode"] = args.mode
    if getattr(args, "result_cap", None) is not None:
        event["result_cap"] = args.result_cap
    return event


def cmd_sync(args: argparse.Namespace) -> None:
    """Run one reconciliation."""
    from scripts.sso_sync.runner import run_sync

    config = load_config(_overrides(args))
    results = run_sync(config)
    print(" ".join(f"{k}={v}" for k, v in results.items()))


def cmd_scheduler(args: argparse.Namespace) -> None:
    """Start the APScheduler-based scheduling loop."""
    from scripts.sso_sync.scheduler import start_scheduler

    config = load_config(_overrides(args))
    start_scheduler(config)


def _describe_ref(ref) -> str:
    if isinstance(ref, SecretRef):
        return f"secretsmanager:{ref.region}/{ref.id}"
    if ref.startswith(("aws-secret://", "gcp-secret://")):
        return ref.split("#", 1)[0]
    return "<inline>"


def _describe_filter(f: PatternFilter) -> str:
    if f.is_empty:
        return "none"
    parts = []
    if f.include is not None:
        parts.append("include=" + ",".join(p.pattern for p in f.include))
    if f.ignore is not None:
        parts.append("ignore=" + ",".join(p.pattern for p in f.ignore))
    return " ".join(parts)


def describe_config(config: SyncConfig) -> list[tuple[str, str]]:
    """Human-readable, secret-free view of the resolved configuration."""
    return [
        ("google_creds", _describe_ref(config.google_creds)),
        ("scim_creds", _describe_ref(config.scim_creds)),
        ("sync_mode", config.sync_mode.value),
        ("result_cap", str(config.result_cap)),
        ("google_api_query_for_users", config.google_api_query_for_users or ""),
        ("google_api_query_for_groups", config.google_api_query_for_groups or ""),
        ("user_filter", _describe_filter(config.user_filter)),
        ("group_filter", _describe_filter(config.group_filter)),
        ("retry", f"{config.retry.max_retries} x {config.retry.delay_s}s"),
        ("interval_min", str(config.scheduler.interval_min)),
    ]


def cmd_check_config(args: argparse.Namespace) -> None:
    """Validate configuration without contacting either directory."""
    config = load_config(_overrides(args))
    fmt = "{:<28}  {}"
    for name, value in describe_config(config):
        print(fmt.format(name, value))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sso-sync",
        description="Sync Google Workspace users and groups to AWS SSO via SCIM",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "--mode", "-m",
            choices=MODE_CHOICES,
            default=None,
            help="Which source users to sync (default: group_members_only)",
        )
        p.add_argument(
            "--result-cap",
            type=int,
            default=None,
            help="Listing cap of the SCIM endpoint (default: 50)",
        )

    sync_parser = subparsers.add_parser("sync", help="Run one-shot sync")
    add_common(sync_parser)
    sync_parser.set_defaults(func=cmd_sync)

    sched_parser = subparsers.add_parser("scheduler", help="Start scheduled sync loop")
    add_common(sched_parser)
    sched_parser.set_defaults(func=cmd_scheduler)

    check_parser = subparsers.add_parser("check-config", help="Validate and show configuration")
    add_common(check_parser)
    check_parser.set_defaults(func=cmd_check_config)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))

    args = build_parser().parse_args(argv)
    try:
        args.func(args)
    except SyncError as exc:
        logger.error("%s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
