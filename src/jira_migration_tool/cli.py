"""
Command-line interface for the Jira migration tool.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from .config import create_env_file, load_config, require_valid_config
from .exceptions import ConfigurationError, ConnectionCheckError, MigrationError
from .mappers import classify_issue_type
from .migrator import ClickUpMigrator, ShortcutMigrator, create_migrator
from .utils import format_timestamp, read_keys_file, setup_logging

if TYPE_CHECKING:
    from .config import MigrationConfig
    from .models import JiraIssue, MigrationResult
    from .orchestrator import BulkReport

logger: logging.Logger = logging.getLogger(__name__)


def _add_migration_options(parser: argparse.ArgumentParser) -> None:
    _ = parser.add_argument(
        "--dry-run", "-d", action="store_true", help="Show what would be migrated without changing anything"
    )
    iteration = parser.add_mutually_exclusive_group()
    _ = iteration.add_argument("--iteration", "-i", type=int, help="Assign stories to this iteration (Shortcut only)")
    _ = iteration.add_argument(
        "--current-iteration", "-c", action="store_true", help="Assign stories to the current iteration (Shortcut only)"
    )
    _ = parser.add_argument("--list", "-l", dest="list_id", help="Create tasks in this list (ClickUp only)")
    _ = parser.add_argument("--parent", "-p", dest="parent_task_id", help="Create tasks below this task (ClickUp only)")
    _ = parser.add_argument(
        "--force-update",
        "-u",
        action="store_true",
        help="Only update existing tasks, never create new ones (ClickUp only)",
    )
    _ = parser.add_argument("--no-comments", action="store_true", help="Do not synchronize comments")


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="jira-migrate", description="Migrate Jira issues to Shortcut or ClickUp, creating or updating in place"
    )
    _ = parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    _ = subparsers.add_parser("setup", help="Create .env from .env.example")

    migrate = subparsers.add_parser("migrate", help="Migrate a single Jira issue")
    _ = migrate.add_argument("jira_key", help="Jira issue key (e.g., PROJ-123)")
    _add_migration_options(migrate)

    bulk = subparsers.add_parser("bulk", help="Migrate several Jira issues one after another")
    keys = bulk.add_mutually_exclusive_group(required=True)
    _ = keys.add_argument("--keys", "-k", nargs="+", help="Jira issue keys")
    _ = keys.add_argument("--file", "-f", help="File with one Jira key per line; lines starting with '#' are ignored")
    _add_migration_options(bulk)

    inspect = subparsers.add_parser("inspect", help="Show a Jira issue and how it would be migrated")
    _ = inspect.add_argument("jira_key", help="Jira issue key (e.g., PROJ-123)")

    _ = subparsers.add_parser("test", help="Test the connections to Jira and the destination")

    return parser.parse_args(argv)


def _check_connections(migrator: ShortcutMigrator | ClickUpMigrator) -> None:
    connections = migrator.validate_connections()
    failed = [name for name, ok in connections.items() if not ok]
    if failed:
        msg = f"Failed to connect to {', '.join(failed)}"
        raise ConnectionCheckError(msg)
    logger.info("Connections validated")


def _resolve_iteration(migrator: ShortcutMigrator, args: argparse.Namespace) -> int | None:
    if args.current_iteration:
        iteration = migrator.get_current_iteration()
        if iteration is None:
            logger.warning("No current iteration found, stories keep their iteration")
            return None
        print(f"Using current iteration: {iteration.get('name')} ({iteration.get('id')})")
        return iteration.get("id")
    return args.iteration


def _migration_options(migrator: ShortcutMigrator | ClickUpMigrator, args: argparse.Namespace) -> dict[str, object]:
    sync_comments = False if args.no_comments else None
    if isinstance(migrator, ShortcutMigrator):
        return {"iteration_id": _resolve_iteration(migrator, args), "sync_comments": sync_comments}
    return {
        "list_id": args.list_id,
        "parent_task_id": args.parent_task_id,
        "force_update": args.force_update,
        "sync_comments": sync_comments,
    }


def _print_dry_run(config: MigrationConfig, keys: list[str], options: dict[str, object]) -> None:
    print(f"[DRY RUN] Target platform: {config.target_platform}")
    print("[DRY RUN] Would migrate the following Jira issues:")
    for key in keys:
        print(f"  - {key}")
    for name, value in options.items():
        if value not in (None, False):
            print(f"[DRY RUN] {name}: {value}")


def _print_result(result: MigrationResult) -> None:
    if result.success:
        suffix = " (updated)" if result.was_update else ""
        print(f"  - {result.jira_key} -> {result.destination_url}{suffix}")
        for error in result.sub_resource_errors:
            print(f"      ! {error}")
    else:
        print(f"  - {result.jira_key}: {result.error}")


def _print_bulk_report(report: BulkReport) -> None:
    total = len(report.results)
    print(f"\nSuccessfully migrated: {len(report.succeeded)}/{total}")
    for result in report.succeeded:
        _print_result(result)
    if report.failed:
        print(f"\nFailed to migrate: {len(report.failed)}/{total}")
        for result in report.failed:
            _print_result(result)


def _print_issue(issue: JiraIssue) -> None:
    print("\n=== Jira Issue Details ===")
    print(f"Key: {issue.key}")
    print(f"Summary: {issue.summary}")
    print(f"Type: {issue.issue_type}")
    print(f"Status: {issue.status}")
    if issue.priority:
        print(f"Priority: {issue.priority}")
    if issue.assignee:
        print(f"Assignee: {issue.assignee.display_name}")
    if issue.labels:
        print(f"Labels: {', '.join(issue.labels)}")
    print(f"Created: {format_timestamp(issue.created, local=True)}")
    print(f"Updated: {format_timestamp(issue.updated, local=True)}")
    print(f"Attachments: {len(issue.attachments)}")


def _cmd_migrate(config: MigrationConfig, args: argparse.Namespace, keys: list[str]) -> int:
    migrator = create_migrator(config)
    _check_connections(migrator)
    options = _migration_options(migrator, args)

    if args.dry_run:
        _print_dry_run(config, keys, options)
        return 0

    if args.command == "migrate":
        result = migrator.migrate_issue(keys[0], **options)  # pyright: ignore[reportArgumentType]
        print(f"{'Migrated' if result.success else 'Failed to migrate'} {result.jira_key}:")
        _print_result(result)
        return 0 if result.success else 1

    print(f"Migrating {len(keys)} issue(s)...")
    report = migrator.migrate_bulk(keys, **options)  # pyright: ignore[reportArgumentType]
    _print_bulk_report(report)
    return 0 if report.success else 1


def _cmd_inspect(config: MigrationConfig, jira_key: str) -> int:
    migrator = create_migrator(config)
    issue = migrator.inspect_issue(jira_key)
    _print_issue(issue)
    if isinstance(migrator, ShortcutMigrator):
        print(f"\nWould be migrated as: {classify_issue_type(issue.issue_type).upper()}")
    else:
        print("\nWould be migrated as: TASK")
    return 0


def _print_clickup_target(migrator: ClickUpMigrator) -> None:
    task_list = migrator.get_current_list()
    print(f"ClickUp list: {task_list.get('name', '?')} ({task_list.get('id', '?')})")
    space = migrator.get_current_space()
    if space is not None:
        print(f"ClickUp space: {space.get('name', '?')} ({space.get('id', '?')})")


def _cmd_test(config: MigrationConfig) -> int:
    migrator = create_migrator(config)
    connections = migrator.validate_connections()
    for name, ok in connections.items():
        print(f"{name} connection: {'OK' if ok else 'FAILED'}")
    if all(connections.values()):
        if isinstance(migrator, ClickUpMigrator):
            _print_clickup_target(migrator)
        print("\nAll connections working!")
        return 0
    print("\nSome connections failed. Please check your configuration.")
    return 1


def _keys_from_args(args: argparse.Namespace) -> list[str]:
    if args.command == "migrate":
        return [args.jira_key]
    if args.keys:
        return list(args.keys)
    path = Path(args.file)
    if not path.exists():
        msg = f"File not found: {path}"
        raise ConfigurationError(msg)
    return read_keys_file(path)


def run(args: argparse.Namespace) -> int:
    """Execute the parsed command and return the process exit code."""
    if args.command == "setup":
        if create_env_file():
            print("Created .env file from .env.example. Please edit it with your credentials.")
        return 0

    keys = _keys_from_args(args) if args.command in ("migrate", "bulk") else []
    if args.command == "bulk" and not keys:
        print("No Jira keys found")
        return 1

    config = require_valid_config(load_config())
    logger.info(f"Target platform: {config.target_platform}")

    if args.command == "inspect":
        return _cmd_inspect(config, args.jira_key)
    if args.command == "test":
        return _cmd_test(config)
    return _cmd_migrate(config, args, keys)


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = parse_arguments(argv)

    verbose: bool = getattr(args, "verbose", False)
    setup_logging(verbose=verbose)

    try:
        exit_code = run(args)
    except ConfigurationError as e:
        print(e)
        print('\nRun "jira-migrate setup" to create a configuration file')
        sys.exit(1)
    except MigrationError as e:
        logger.error(str(e))
        sys.exit(1)
    except Exception:
        logger.exception("Migration failed")
        sys.exit(1)

    sys.exit(exit_code)
