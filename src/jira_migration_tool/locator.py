"""Find destination records that were created by an earlier migration of the same Jira issue.

Both destinations store the Jira key on the record: Shortcut in the first-class
``external_id`` field, ClickUp in a custom field configured by the user. The
search APIs of both platforms do partial or fuzzy matching, so every candidate
is re-checked for exact equality before it is accepted.

When more than one record carries the same key, the oldest one wins (lowest
Shortcut id, earliest ClickUp creation date) so that repeated runs keep
updating the same record. Duplicates are never merged or deleted here; they
are reported and need manual reconciliation.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, TypeVar

from .shortcut_client import SEARCH_PAGE_SIZE

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from .clickup_client import ClickUpClient
    from .models import ClickUpTask, DestinationKind, ShortcutRecord
    from .shortcut_client import ShortcutClient

logger: logging.Logger = logging.getLogger(__name__)

T = TypeVar("T")


def select_canonical(
    candidates: Sequence[T],
    key: str,
    *,
    order_by: Callable[[T], object],
    describe: Callable[[T], str],
    label: str,
) -> T | None:
    """Pick the canonical record among ``candidates`` using an explicit ordering."""
    if not candidates:
        logger.info(f"No {label} found with external id {key}")
        return None

    ordered = sorted(candidates, key=order_by)  # pyright: ignore[reportArgumentType,reportCallIssue]
    chosen = ordered[0]
    if len(ordered) > 1:
        ids = ", ".join(describe(c) for c in ordered)
        logger.warning(
            f"Found {len(ordered)} {label} records with external id {key} ({ids}); using {describe(chosen)}. "
            "The duplicates need manual reconciliation."
        )
    else:
        logger.info(f"Found existing {label} {describe(chosen)} for {key}")
    return chosen


class ShortcutRecordLocator:
    """Searches Shortcut stories or epics with the ``external-id:`` search operator."""

    _client: ShortcutClient
    kind: DestinationKind

    def __init__(self, client: ShortcutClient, kind: DestinationKind) -> None:
        self._client = client
        self.kind = kind

    def find(self, key: str) -> ShortcutRecord | None:
        query = f"external-id:{key}"
        search = self._client.search_epics if self.kind == "epic" else self._client.search_stories
        results = search(query, page_size=SEARCH_PAGE_SIZE)
        logger.debug(f"Search '{query}' returned {len(results)} {self.kind}(s)")
        matches = [record for record in results if record.external_id == key]
        return select_canonical(
            matches, key, order_by=lambda r: r.id, describe=lambda r: str(r.id), label=self.kind
        )


class ClickUpRecordLocator:
    """Finds ClickUp tasks by the value of the external-id custom field.

    Without a configured custom field there is nothing to correlate on, so
    ``find`` always returns None and every run creates a new task.
    """

    _client: ClickUpClient
    field_id: str | None
    list_id: str | None

    def __init__(self, client: ClickUpClient, field_id: str | None, list_id: str | None = None) -> None:
        self._client = client
        self.field_id = field_id or None
        self.list_id = list_id

    def _matches(self, task: ClickUpTask, key: str) -> bool:
        assert self.field_id is not None
        value = task.custom_fields.get(self.field_id)
        return value is not None and value.equals(key)

    def find(self, key: str) -> ClickUpTask | None:
        if self.field_id is None:
            logger.info("External ID field not configured - a new task will be created")
            return None

        field_id = self.field_id
        tasks = self._client.list_tasks(
            self.list_id, include_closed=True, subtasks=True, custom_field_filter=(field_id, key)
        )
        logger.debug(f"Custom field filter for {key} returned {len(tasks)} task(s)")

        if not tasks:
            # The filter is unreliable for some field types; check every task in the list instead.
            logger.debug("Filter returned no tasks, checking all tasks in the list")
            tasks = []
            for task in self._client.list_tasks(self.list_id, include_closed=True, subtasks=True):
                if field_id not in task.custom_fields:
                    task = self._client.get_task(task.id)  # noqa: PLW2901 - list payload lacks field values
                tasks.append(task)

        matches = [task for task in tasks if self._matches(task, key)]
        return select_canonical(
            matches,
            key,
            order_by=lambda t: (t.date_created, t.id),
            describe=lambda t: t.id,
            label="task",
        )
