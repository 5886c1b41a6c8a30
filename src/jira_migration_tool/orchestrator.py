"""Bulk driver that migrates a list of Jira keys one after another.

Keys are processed strictly in order, one at a time. After every key the
courtesy delay of the injected ``BackoffPolicy`` is applied, independent of
the outcome. A failing key never stops the run: its failed ``MigrationResult``
is collected and the next key is migrated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .models import MigrationResult

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from .rate_limit import BackoffPolicy

logger: logging.Logger = logging.getLogger(__name__)


@dataclass
class BulkStats:
    """Statistics collected during a bulk run."""

    created: int = 0
    updated: int = 0
    failed: int = 0
    sub_resource_failures: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class BulkReport:
    """Result of a bulk run, one ``MigrationResult`` per input key in input order."""

    results: list[MigrationResult] = field(default_factory=list)
    stats: BulkStats = field(default_factory=BulkStats)

    @property
    def succeeded(self) -> list[MigrationResult]:
        return [r for r in self.results if r.success]

    @property
    def failed(self) -> list[MigrationResult]:
        return [r for r in self.results if not r.success]

    @property
    def success(self) -> bool:
        return not self.failed

    def add(self, result: MigrationResult) -> None:
        self.results.append(result)
        if result.sub_resource_errors:
            self.stats.sub_resource_failures += len(result.sub_resource_errors)
            self.stats.errors.extend(f"{result.jira_key}: {error}" for error in result.sub_resource_errors)
        if not result.success:
            self.stats.failed += 1
            self.stats.errors.append(f"{result.jira_key}: {result.error}")
        elif result.was_update:
            self.stats.updated += 1
        else:
            self.stats.created += 1


class BulkMigration:
    """Runs a single-key migration function over many keys.

    Usage:
        bulk = BulkMigration(migrator.migrate_issue, BackoffPolicy(courtesy_delay=1.0))
        report = bulk.run(["PROJ-1", "PROJ-2"])
    """

    _migrate_one: Callable[[str], MigrationResult]
    _policy: BackoffPolicy

    def __init__(self, migrate_one: Callable[[str], MigrationResult], policy: BackoffPolicy) -> None:
        self._migrate_one = migrate_one
        self._policy = policy

    def run(self, keys: Iterable[str]) -> BulkReport:
        report = BulkReport()
        keys = list(keys)
        for index, key in enumerate(keys, start=1):
            logger.info(f"[{index}/{len(keys)}] Migrating {key}")
            try:
                result = self._migrate_one(key)
            except Exception as e:
                # The migrators return failures themselves; this covers other callables
                logger.exception(f"Unexpected error while migrating {key}")
                result = MigrationResult.failure(key, str(e))
            report.add(result)
            self._policy.courtesy_pause()

        logger.info(
            f"Bulk run finished: {report.stats.created} created, {report.stats.updated} updated, "
            f"{report.stats.failed} failed, {report.stats.sub_resource_failures} attachment/comment failure(s)"
        )
        return report
