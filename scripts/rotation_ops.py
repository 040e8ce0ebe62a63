#!/usr/bin/env python3
"""
Operator CLI for salt rotation.

Examples:
  python scripts/rotation_ops.py run                 # manual rotation
  python scripts/rotation_ops.py check-overdue       # rotate only if overdue
  python scripts/rotation_ops.py status              # recent attempts
  python scripts/rotation_ops.py snapshots           # list snapshot ids
  python scripts/rotation_ops.py show-snapshot ID    # print define() lines for manual recovery
"""

import argparse
import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from cryptography.exceptions import InvalidTag

from salt_rotation.core.config import get_backup_keep, validate_rotation_config
from salt_rotation.core.orchestrator import get_orchestrator
from salt_rotation.core.schema import TriggerSource
from salt_rotation.core.secret_store import SnapshotNotFound
from salt_rotation.util.logging import logger, audit_event


def _print_report(report):
    if report is None:
        print("⏭️  Rotation skipped (disabled, not overdue, or already in progress)")
        return 0

    attempt = report.attempt
    if report.succeeded:
        print("✅ Rotation succeeded")
    else:
        print("❌ Rotation failed")
        print(f"   Error: {attempt.error if attempt else 'unknown'}")

    print(f"   Trigger: {report.triggered_by.value}")
    print(f"   States: {' -> '.join(s.value for s in report.states)}")
    if report.snapshot_id:
        print(f"   Snapshot: {report.snapshot_id}")
    if report.pruned:
        print(f"   Pruned snapshots: {len(report.pruned)}")
    if attempt:
        print(f"   Duration: {attempt.duration:.2f}s")
    return 0 if report.succeeded else 1


def run_command(args) -> int:
    """CLI command for a manual rotation."""
    issues = validate_rotation_config()
    if issues:
        print(f"❌ Configuration invalid: {issues}")
        return 1

    audit_event("rotation.manual_trigger", {"source": "cli"})
    return _print_report(get_orchestrator().execute(TriggerSource.MANUAL))


def check_overdue_command(args) -> int:
    """CLI command that rotates only when the last success is stale."""
    orchestrator = get_orchestrator()
    if not orchestrator.is_overdue():
        print("✓ Rotation is up to date")
        return 0
    return _print_report(orchestrator.check_overdue_and_run())


def status_command(args) -> int:
    orchestrator = get_orchestrator()
    last = orchestrator.audit_log.most_recent_success_timestamp()

    print("📋 Salt rotation status")
    print(f"   Last success: {last.isoformat(sep=' ') if last else 'never'}")
    print(f"   Overdue: {'yes' if orchestrator.is_overdue() else 'no'}")
    print(f"   Snapshots kept: {len(orchestrator.store.list_snapshot_ids())} (retention {get_backup_keep()})")

    attempts = orchestrator.audit_log.recent_attempts(limit=args.limit)
    if attempts:
        print("   Recent attempts:")
    for attempt in attempts:
        line = f"     {attempt.timestamp.isoformat(sep=' ', timespec='seconds')}  {attempt.status.value:<7}  {attempt.triggered_by.value}"
        if attempt.error:
            line += f"  ({attempt.error[:60]})"
        print(line)
    return 0


def snapshots_command(args) -> int:
    for snapshot_id in get_orchestrator().store.list_snapshot_ids():
        print(snapshot_id)
    return 0


def show_snapshot_command(args) -> int:
    """Print a snapshot as wp-config define() lines for manual restore."""
    try:
        snapshot = get_orchestrator().store.load_snapshot(args.snapshot_id)
    except SnapshotNotFound as e:
        print(f"❌ {e}")
        return 1
    except InvalidTag:
        print("❌ Snapshot could not be decrypted (check ROTATION_BACKUP_MASTER_PASSWORD)")
        logger.error(f"Snapshot decrypt failed for {args.snapshot_id}")
        return 1

    audit_event("snapshot.revealed", {"snapshot_id": snapshot.id, "source": "cli"})
    print(f"// {snapshot.id} captured {snapshot.captured_at.isoformat(sep=' ')}")
    for key, value in snapshot.values.items():
        print(f"define('{key}', '{value}');")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Salt rotation operations",
        prog="python scripts/rotation_ops.py"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Rotate now (manual trigger)")
    run_parser.set_defaults(func=run_command)

    overdue_parser = subparsers.add_parser("check-overdue", help="Rotate only if the last success is stale")
    overdue_parser.set_defaults(func=check_overdue_command)

    status_parser = subparsers.add_parser("status", help="Show rotation status")
    status_parser.add_argument("--limit", type=int, default=10, help="Attempts to show (default: 10)")
    status_parser.set_defaults(func=status_command)

    snapshots_parser = subparsers.add_parser("snapshots", help="List snapshot ids, most recent first")
    snapshots_parser.set_defaults(func=snapshots_command)

    show_parser = subparsers.add_parser("show-snapshot", help="Print a snapshot's values")
    show_parser.add_argument("snapshot_id", help="Snapshot id from 'snapshots'")
    show_parser.set_defaults(func=show_snapshot_command)

    return parser


def main(argv=None) -> int:
    """Main CLI entry point for rotation operations."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
