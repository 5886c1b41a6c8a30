"""Idempotent migration of Jira issues to Shortcut or ClickUp.

For every Jira key the migrator runs the same sequence of steps:

1. Fetch the Jira issue (with comments when comment sync is enabled)
2. Validate an explicitly requested parent task (ClickUp only)
3. Decide the destination kind (Shortcut epic or story) or the target list (ClickUp)
4. Look for a record created by an earlier run, keyed by the Jira key
5. Build the payload: name, converted description, mapped status and priority,
   labels/tags and the assignee resolved by email
6. Update the existing record, or create a new one carrying the Jira key
7. Upload attachments the destination does not have yet
8. Post comments the destination does not have yet

Any error aborts the remaining steps for that key and is returned as a failed
``MigrationResult``; it never escapes ``migrate_issue``. Re-running a key
updates the same record and only adds what is missing.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Final

from .clickup_client import ClickUpClient
from .config import DEFAULT_BUG_CUSTOM_ITEM_ID
from .exceptions import ApiError, MigrationError, ParentValidationError
from .formatters import format_issue_description
from .jira_client import JiraClient
from .locator import ClickUpRecordLocator, ShortcutRecordLocator
from .mappers import (
    classify_issue_type,
    is_bug_issue_type,
    issue_type_tag,
    map_clickup_status,
    map_epic_state,
    map_priority,
    map_shortcut_workflow_state_name,
    map_story_type,
)
from .models import MigrationResult
from .orchestrator import BulkMigration
from .rate_limit import BackoffPolicy
from .shortcut_client import ShortcutClient
from .sync import AttachmentSynchronizer, CommentSynchronizer

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from .config import MigrationConfig
    from .models import AttachmentInfo, ClickUpTask, JiraIssue, ShortcutRecord
    from .orchestrator import BulkReport
    from .protocols import RecordLocator, SourceTracker
    from .sync import SyncStats

logger: logging.Logger = logging.getLogger(__name__)

SHORTCUT_COURTESY_DELAY: Final[float] = 0.1
CLICKUP_COURTESY_DELAY: Final[float] = 1.0


def _merge_names(existing: Iterable[str], additions: Iterable[str]) -> list[str]:
    """Append names from ``additions`` that are not in ``existing``, keeping order."""
    merged: list[str] = []
    for name in (*existing, *additions):
        if name and name not in merged:
            merged.append(name)
    return merged


def _added(stats: SyncStats | None) -> int:
    return stats.added if stats is not None else 0


def _errors(*stats: SyncStats | None) -> list[str]:
    return [str(error) for s in stats if s is not None for error in s.errors]


class AssigneeCache:
    """Email to destination user id lookups for one migrator instance.

    The destination's member roster is downloaded on first use and kept for the
    lifetime of the migrator; it is never shared between migrators or written to
    disk. Unknown emails are remembered as ``None`` so they are not looked up
    again. A roster is a team's member list, so the cache stays small.
    """

    _load_roster: Callable[[], Iterable[tuple[str, Any]]]
    _ids: dict[str, Any] | None

    def __init__(self, load_roster: Callable[[], Iterable[tuple[str, Any]]]) -> None:
        self._load_roster = load_roster
        self._ids = None

    def _roster(self) -> dict[str, Any]:
        if self._ids is None:
            self._ids = {email.lower(): user_id for email, user_id in self._load_roster() if email}
            logger.debug(f"Loaded {len(self._ids)} destination member(s)")
        return self._ids

    def resolve(self, email: str | None) -> Any | None:  # noqa: ANN401 - user ids are int or str
        """Return the destination user id for ``email``, or None when there is no match."""
        if not email:
            return None
        try:
            roster = self._roster()
        except MigrationError as e:
            logger.warning(f"Could not load destination members, leaving assignee empty: {e}")
            return None

        key = email.lower()
        user_id = roster.get(key)
        if user_id is None:
            roster[key] = None
            logger.info(f"No destination member with email {email}, assignee omitted")
        return user_id


class ShortcutMigrator:
    """Migrates Jira issues to Shortcut epics (issue type ``Epic``) or stories (everything else)."""

    _jira: SourceTracker
    _shortcut: ShortcutClient
    _jira_base_url: str
    _status_overrides: Mapping[str, str] | None
    _default_iteration_id: int | None
    _team_id: str | None
    _project_id: int | None
    _sync_comments: bool
    policy: BackoffPolicy
    assignees: AssigneeCache

    def __init__(
        self,
        jira: SourceTracker,
        shortcut: ShortcutClient,
        *,
        jira_base_url: str,
        status_overrides: Mapping[str, str] | None = None,
        default_iteration_id: int | None = None,
        team_id: str | None = None,
        project_id: int | None = None,
        sync_comments: bool = True,
        policy: BackoffPolicy | None = None,
    ) -> None:
        """Initialize the migrator.

        Args:
            jira: Source tracker client
            shortcut: Shortcut API client
            jira_base_url: Base URL used for the back-link in descriptions
            status_overrides: Jira status name -> Shortcut workflow state name
            default_iteration_id: Iteration for new and updated stories when none is given per call
            team_id: Shortcut team (group) new stories and epics belong to
            project_id: Shortcut project new stories belong to
            sync_comments: Default for comment synchronization
            policy: Courtesy delay between issues of a bulk run
        """
        self._jira = jira
        self._shortcut = shortcut
        self._jira_base_url = jira_base_url
        self._status_overrides = status_overrides
        self._default_iteration_id = default_iteration_id
        self._team_id = team_id
        self._project_id = project_id
        self._sync_comments = sync_comments
        self.policy = policy or BackoffPolicy(courtesy_delay=SHORTCUT_COURTESY_DELAY)
        self.assignees = AssigneeCache(self._member_emails)
        self._workflow_states: list[dict[str, Any]] | None = None

    def _member_emails(self) -> list[tuple[str, Any]]:
        return [
            ((member.get("profile") or {}).get("email_address") or "", member.get("id"))
            for member in self._shortcut.get_members()
        ]

    def _workflow_state_id(self, status: str) -> int | None:
        if self._workflow_states is None:
            self._workflow_states = self._shortcut.get_workflow_states()
        if not self._workflow_states:
            return None

        wanted = map_shortcut_workflow_state_name(status, self._status_overrides)
        state = next(
            (s for s in self._workflow_states if s.get("name", "").lower() == wanted.lower()),
            None,
        )
        if state is None:
            state = self._workflow_states[0]
            logger.warning(f"No workflow state named '{wanted}', using '{state.get('name')}'")
        return state.get("id")

    def validate_connections(self) -> dict[str, bool]:
        return {"jira": self._jira.validate_connection(), "shortcut": self._shortcut.validate_connection()}

    def get_current_iteration(self) -> dict[str, Any] | None:
        return self._shortcut.get_current_iteration()

    def inspect_issue(self, key: str) -> JiraIssue:
        return self._jira.get_issue(key)

    def migrate_issue(
        self, key: str, *, iteration_id: int | None = None, sync_comments: bool | None = None
    ) -> MigrationResult:
        """Create or update the Shortcut epic or story for one Jira issue.

        Returns:
            MigrationResult with ``was_update`` set when an earlier migration was found
        """
        should_sync_comments = self._sync_comments if sync_comments is None else sync_comments
        try:
            issue = self._jira.get_issue(key, include_comments=should_sync_comments)
            kind = classify_issue_type(issue.issue_type)
            locator: RecordLocator[ShortcutRecord] = ShortcutRecordLocator(self._shortcut, kind)
            existing = locator.find(issue.key)
            owner_id = self.assignees.resolve(issue.assignee.email if issue.assignee else None)

            if kind == "epic":
                record = self._upsert_epic(issue, existing, owner_id)
            else:
                record = self._upsert_story(issue, existing, owner_id, iteration_id or self._default_iteration_id)

            attachment_stats = self._sync_attachments(kind, issue, record)
            comment_stats = self._sync_comments_for(kind, issue, record) if should_sync_comments else None
        except MigrationError as e:
            logger.error(f"Failed to migrate {key}: {e}")
            return MigrationResult.failure(key, str(e))
        except Exception as e:
            logger.exception(f"Unexpected error while migrating {key}")
            return MigrationResult.failure(key, str(e))

        logger.info(f"{'Updated' if existing else 'Created'} {kind} {record.id} for {issue.key}")
        return MigrationResult(
            success=True,
            jira_key=issue.key,
            destination_id=str(record.id),
            destination_url=record.app_url,
            was_update=existing is not None,
            destination_kind=kind,
            attachments_added=_added(attachment_stats),
            comments_added=_added(comment_stats),
            sub_resource_errors=_errors(attachment_stats, comment_stats),
        )

    def _labels_for(self, issue: JiraIssue, existing: ShortcutRecord | None) -> list[dict[str, str]]:
        if existing is None:
            names = _merge_names([issue_type_tag(issue.issue_type)], issue.labels)
        else:
            names = _merge_names(existing.labels, issue.labels)
        return [{"name": name} for name in names]

    def _upsert_epic(self, issue: JiraIssue, existing: ShortcutRecord | None, owner_id: Any) -> ShortcutRecord:  # noqa: ANN401
        payload: dict[str, Any] = {
            "name": issue.summary,
            "description": format_issue_description(issue, self._jira_base_url),
            "state": map_epic_state(issue.status),
            "labels": self._labels_for(issue, existing),
        }
        if owner_id is not None:
            payload["owner_ids"] = [owner_id]

        if existing is not None:
            logger.info(f"Updating existing epic {existing.id} for {issue.key}")
            return self._shortcut.update_epic(existing.id, payload)

        logger.info(f"Creating new epic for {issue.key}")
        payload["external_id"] = issue.key
        if self._team_id:
            payload["group_ids"] = [self._team_id]
        return self._shortcut.create_epic(payload)

    def _upsert_story(
        self,
        issue: JiraIssue,
        existing: ShortcutRecord | None,
        owner_id: Any,  # noqa: ANN401
        iteration_id: int | None,
    ) -> ShortcutRecord:
        payload: dict[str, Any] = {
            "name": issue.summary,
            "description": format_issue_description(issue, self._jira_base_url),
            "story_type": map_story_type(issue.issue_type),
            "labels": self._labels_for(issue, existing),
        }
        workflow_state_id = self._workflow_state_id(issue.status)
        if workflow_state_id is not None:
            payload["workflow_state_id"] = workflow_state_id
        if owner_id is not None:
            payload["owner_ids"] = [owner_id]
        if iteration_id is not None:
            payload["iteration_id"] = iteration_id

        if existing is not None:
            logger.info(f"Updating existing story {existing.id} for {issue.key}")
            return self._shortcut.update_story(existing.id, payload)

        logger.info(f"Creating new story for {issue.key}")
        payload["external_id"] = issue.key
        if self._team_id:
            payload["group_id"] = self._team_id
        if self._project_id is not None:
            payload["project_id"] = self._project_id
        return self._shortcut.create_story(payload)

    def _upload_story_file(self, record_id: str, attachment: AttachmentInfo, content: bytes) -> None:
        self._shortcut.upload_story_file(int(record_id), attachment.filename, content, attachment.mime_type)

    def _sync_attachments(self, kind: str, issue: JiraIssue, record: ShortcutRecord) -> SyncStats | None:
        if not issue.attachments:
            return None
        if kind == "epic":
            logger.info(f"Shortcut epics carry no files, skipping {len(issue.attachments)} attachment(s)")
            return None
        synchronizer = AttachmentSynchronizer(self._jira.download_attachment, self._upload_story_file)
        return synchronizer.sync(str(record.id), issue.attachments, record.file_names)

    def _sync_comments_for(self, kind: str, issue: JiraIssue, record: ShortcutRecord) -> SyncStats | None:
        if not issue.comments:
            return None
        if kind == "epic":
            try:
                existing_bodies = self._shortcut.list_epic_comments(record.id)
            except ApiError as e:
                logger.warning(f"Skipping comment sync for epic {record.id}, existing comments unavailable: {e}")
                return None
            synchronizer = CommentSynchronizer(lambda rid, text: self._shortcut.create_epic_comment(int(rid), text))
        else:
            existing_bodies = record.comment_texts
            synchronizer = CommentSynchronizer(lambda rid, text: self._shortcut.create_story_comment(int(rid), text))
        return synchronizer.sync(str(record.id), issue.comments, existing_bodies)

    def migrate_bulk(
        self, keys: Iterable[str], *, iteration_id: int | None = None, sync_comments: bool | None = None
    ) -> BulkReport:
        bulk = BulkMigration(
            lambda key: self.migrate_issue(key, iteration_id=iteration_id, sync_comments=sync_comments),
            self.policy,
        )
        return bulk.run(keys)


class ClickUpMigrator:
    """Migrates Jira issues to ClickUp tasks.

    The Jira key is stored in a custom text field (``external_id_field_id``).
    Without that field there is no way to find earlier migrations and every
    run creates new tasks.
    """

    _jira: SourceTracker
    _clickup: ClickUpClient
    _jira_base_url: str
    _external_id_field_id: str | None
    _status_overrides: Mapping[str, str] | None
    _sync_comments: bool
    _bug_custom_item_id: int
    _space_id: str | None
    assignees: AssigneeCache

    def __init__(
        self,
        jira: SourceTracker,
        clickup: ClickUpClient,
        *,
        jira_base_url: str,
        external_id_field_id: str | None = None,
        status_overrides: Mapping[str, str] | None = None,
        sync_comments: bool = True,
        bug_custom_item_id: int = DEFAULT_BUG_CUSTOM_ITEM_ID,
        space_id: str | None = None,
    ) -> None:
        self._jira = jira
        self._clickup = clickup
        self._jira_base_url = jira_base_url
        self._external_id_field_id = external_id_field_id or None
        self._status_overrides = status_overrides
        self._sync_comments = sync_comments
        self._bug_custom_item_id = bug_custom_item_id
        self._space_id = space_id or None
        self.assignees = AssigneeCache(self._member_emails)

    @property
    def policy(self) -> BackoffPolicy:
        return self._clickup.policy

    def _member_emails(self) -> list[tuple[str, Any]]:
        return [(member.get("email") or "", member.get("id")) for member in self._clickup.get_team_members()]

    def validate_connections(self) -> dict[str, bool]:
        return {"jira": self._jira.validate_connection(), "clickup": self._clickup.validate_connection()}

    def inspect_issue(self, key: str) -> JiraIssue:
        return self._jira.get_issue(key)

    def get_current_list(self) -> dict[str, Any]:
        return self._clickup.get_list()

    def get_current_space(self) -> dict[str, Any] | None:
        if self._space_id is None:
            return None
        return self._clickup.get_space(self._space_id)

    def migrate_issue(
        self,
        key: str,
        *,
        list_id: str | None = None,
        parent_task_id: str | None = None,
        force_update: bool = False,
        sync_comments: bool | None = None,
    ) -> MigrationResult:
        """Create or update the ClickUp task for one Jira issue.

        Args:
            key: Jira issue key
            list_id: List to create the task in (defaults to the configured list)
            parent_task_id: Create the task as a subtask of this task; must live in the same list
            force_update: Only update an existing task, never create one
            sync_comments: Override the configured comment synchronization
        """
        should_sync_comments = self._sync_comments if sync_comments is None else sync_comments
        try:
            issue = self._jira.get_issue(key, include_comments=should_sync_comments)
            target_list = list_id or self._clickup.list_id

            if parent_task_id:
                try:
                    parent = self._clickup.validate_parent_task(parent_task_id, target_list)
                except ParentValidationError as e:
                    return MigrationResult.failure(key, f"Parent task validation failed: {e}")
                logger.info(f"Parent task validated: {parent.name} ({parent_task_id})")

            locator: RecordLocator[ClickUpTask] = ClickUpRecordLocator(
                self._clickup, self._external_id_field_id, target_list
            )
            existing = locator.find(issue.key)
            if existing is None and force_update:
                return MigrationResult.failure(key, "Force update mode: no existing task found to update")

            assignee_id = self.assignees.resolve(issue.assignee.email if issue.assignee else None)
            if existing is not None:
                task = self._update_task(existing, issue, assignee_id)
                existing_titles = _merge_names(existing.attachment_titles, task.attachment_titles)
            else:
                task = self._create_task(issue, assignee_id, target_list, parent_task_id)
                existing_titles = task.attachment_titles

            if issue.attachments:
                synchronizer = AttachmentSynchronizer(self._jira.download_attachment, self._upload_attachment)
                attachment_stats = synchronizer.sync(task.id, issue.attachments, existing_titles)
            else:
                attachment_stats = None
            comment_stats = self._sync_task_comments(task.id, issue) if should_sync_comments else None
        except MigrationError as e:
            logger.error(f"Failed to migrate {key}: {e}")
            return MigrationResult.failure(key, str(e))
        except Exception as e:
            logger.exception(f"Unexpected error while migrating {key}")
            return MigrationResult.failure(key, str(e))

        return MigrationResult(
            success=True,
            jira_key=issue.key,
            destination_id=task.id,
            destination_url=task.url,
            was_update=existing is not None,
            destination_kind="task",
            attachments_added=_added(attachment_stats),
            comments_added=_added(comment_stats),
            sub_resource_errors=_errors(attachment_stats, comment_stats),
        )

    def _tags_for(self, issue: JiraIssue) -> list[str]:
        return _merge_names([issue_type_tag(issue.issue_type)], issue.labels)

    def _common_payload(self, issue: JiraIssue) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "name": issue.summary,
            "description": format_issue_description(issue, self._jira_base_url),
            "status": map_clickup_status(issue.status, self._status_overrides),
        }
        priority = map_priority(issue.priority)
        if priority is not None:
            payload["priority"] = priority
        if is_bug_issue_type(issue.issue_type):
            payload["custom_item_id"] = self._bug_custom_item_id
            logger.debug(f"Setting task type of {issue.key} to bug")
        return payload

    def _update_task(self, existing: ClickUpTask, issue: JiraIssue, assignee_id: Any) -> ClickUpTask:  # noqa: ANN401
        logger.info(f"Updating existing task {existing.id} for {issue.key}")
        payload = self._common_payload(issue)
        if assignee_id is not None:
            payload["assignees"] = {"add": [assignee_id]}
        task = self._clickup.update_task(existing.id, payload)

        # Tags cannot be set through the task update endpoint
        present = set(existing.tags) | set(task.tags)
        for tag in self._tags_for(issue):
            if tag not in present:
                self._clickup.add_tag(existing.id, tag)
                logger.debug(f"Added tag {tag} to {existing.id}")
        return task

    def _create_task(
        self,
        issue: JiraIssue,
        assignee_id: Any,  # noqa: ANN401
        list_id: str,
        parent_task_id: str | None,
    ) -> ClickUpTask:
        logger.info(f"Creating new task for {issue.key} in list {list_id}")
        payload = self._common_payload(issue)
        payload["tags"] = self._tags_for(issue)
        payload["assignees"] = [assignee_id] if assignee_id is not None else []
        if parent_task_id:
            payload["parent"] = parent_task_id
        if self._external_id_field_id:
            payload["custom_fields"] = [{"id": self._external_id_field_id, "value": issue.key}]
        task = self._clickup.create_task(payload, list_id)

        # Later runs can only find the task when the correlation key is stored on it
        if self._external_id_field_id:
            stored = task.custom_fields.get(self._external_id_field_id)
            if stored is None or not stored.equals(issue.key):
                logger.debug(f"External id not stored on {task.id} by create, setting it explicitly")
                self._clickup.set_custom_field(task.id, self._external_id_field_id, issue.key)
        return task

    def _upload_attachment(self, task_id: str, attachment: AttachmentInfo, content: bytes) -> None:
        self._clickup.upload_attachment(task_id, attachment.filename, content)

    def _sync_task_comments(self, task_id: str, issue: JiraIssue) -> SyncStats | None:
        if not issue.comments:
            return None
        try:
            existing_bodies = self._clickup.get_task_comments(task_id)
        except ApiError as e:
            logger.warning(f"Skipping comment sync for task {task_id}, existing comments unavailable: {e}")
            return None
        logger.info(f"Syncing {len(issue.comments)} comment(s) to task {task_id}")
        return CommentSynchronizer(self._clickup.add_task_comment).sync(task_id, issue.comments, existing_bodies)

    def migrate_bulk(
        self,
        keys: Iterable[str],
        *,
        list_id: str | None = None,
        parent_task_id: str | None = None,
        force_update: bool = False,
        sync_comments: bool | None = None,
    ) -> BulkReport:
        bulk = BulkMigration(
            lambda key: self.migrate_issue(
                key,
                list_id=list_id,
                parent_task_id=parent_task_id,
                force_update=force_update,
                sync_comments=sync_comments,
            ),
            self.policy,
        )
        return bulk.run(keys)


def create_migrator(config: MigrationConfig) -> ShortcutMigrator | ClickUpMigrator:
    """Build the migrator for ``config.target_platform`` with real API clients."""
    jira = JiraClient(config.jira_base_url, config.jira_email, config.jira_api_token)

    if config.target_platform == "clickup":
        policy = BackoffPolicy(courtesy_delay=CLICKUP_COURTESY_DELAY)
        clickup = ClickUpClient(config.clickup_api_token, config.clickup_team_id, config.clickup_list_id, policy=policy)
        return ClickUpMigrator(
            jira,
            clickup,
            jira_base_url=config.jira_base_url,
            external_id_field_id=config.clickup_external_id_field_id,
            status_overrides=config.status_mapping,
            sync_comments=config.clickup_sync_comments,
            bug_custom_item_id=config.clickup_bug_custom_item_id,
            space_id=config.clickup_space_id,
        )

    return ShortcutMigrator(
        jira,
        ShortcutClient(config.shortcut_api_token),
        jira_base_url=config.jira_base_url,
        status_overrides=config.status_mapping,
        default_iteration_id=config.shortcut_iteration_id,
        team_id=config.shortcut_team_id,
        project_id=config.shortcut_project_id,
    )
