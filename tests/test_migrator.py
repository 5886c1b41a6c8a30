"""Tests for the Shortcut and ClickUp migrators."""

from __future__ import annotations

from typing import Any
from unittest.mock import Mock

import pytest
from conftest import make_attachment, make_comment, make_issue

from jira_migration_tool.exceptions import ApiError, NotFoundError, ParentValidationError
from jira_migration_tool.formatters import format_comment
from jira_migration_tool.migrator import AssigneeCache, ClickUpMigrator, ShortcutMigrator
from jira_migration_tool.models import ClickUpTask, CustomFieldValue, JiraIssue, ShortcutRecord
from jira_migration_tool.rate_limit import BackoffPolicy

JIRA_URL = "https://example.atlassian.net"
FIELD_ID = "field-ext-id"


class FakeShortcutClient:
    """In-memory Shortcut workspace with just enough behaviour for the migrator."""

    def __init__(self) -> None:
        self.stories: dict[int, ShortcutRecord] = {}
        self.epics: dict[int, ShortcutRecord] = {}
        self.payloads: list[tuple[str, dict[str, Any]]] = []
        self.comments: dict[int, list[str]] = {}
        self.files: dict[int, list[str]] = {}
        self.member_requests = 0
        self._next_id = 100

    def _record(self, record_id: int, payload: dict[str, Any], external_id: str | None) -> ShortcutRecord:
        return ShortcutRecord(
            id=record_id,
            name=payload["name"],
            app_url=f"https://app.shortcut.com/acme/story/{record_id}",
            external_id=external_id,
            labels=[label["name"] for label in payload.get("labels", [])],
            file_names=list(self.files.get(record_id, [])),
            comment_texts=list(self.comments.get(record_id, [])),
        )

    def _create(self, store: dict[int, ShortcutRecord], kind: str, payload: dict[str, Any]) -> ShortcutRecord:
        self._next_id += 1
        self.payloads.append((f"create_{kind}", payload))
        record = self._record(self._next_id, payload, payload["external_id"])
        store[record.id] = record
        return record

    def _update(
        self, store: dict[int, ShortcutRecord], kind: str, record_id: int, payload: dict[str, Any]
    ) -> ShortcutRecord:
        assert "external_id" not in payload
        self.payloads.append((f"update_{kind}", payload))
        record = self._record(record_id, payload, store[record_id].external_id)
        store[record_id] = record
        return record

    def search_stories(self, query: str, page_size: int = 25) -> list[ShortcutRecord]:
        key = query.removeprefix("external-id:")
        return [r for r in self.stories.values() if r.external_id == key][:page_size]

    def search_epics(self, query: str, page_size: int = 25) -> list[ShortcutRecord]:
        key = query.removeprefix("external-id:")
        return [r for r in self.epics.values() if r.external_id == key][:page_size]

    def create_story(self, payload: dict[str, Any]) -> ShortcutRecord:
        return self._create(self.stories, "story", payload)

    def update_story(self, story_id: int, payload: dict[str, Any]) -> ShortcutRecord:
        return self._update(self.stories, "story", story_id, payload)

    def create_epic(self, payload: dict[str, Any]) -> ShortcutRecord:
        return self._create(self.epics, "epic", payload)

    def update_epic(self, epic_id: int, payload: dict[str, Any]) -> ShortcutRecord:
        return self._update(self.epics, "epic", epic_id, payload)

    def create_story_comment(self, story_id: int, text: str) -> None:
        self.comments.setdefault(story_id, []).append(text)

    def list_epic_comments(self, epic_id: int) -> list[str]:
        return list(self.comments.get(epic_id, []))

    def create_epic_comment(self, epic_id: int, text: str) -> None:
        self.comments.setdefault(epic_id, []).append(text)

    def upload_story_file(self, story_id: int, filename: str, content: bytes, mime_type: str) -> None:
        self.files.setdefault(story_id, []).append(filename)

    def get_workflow_states(self) -> list[dict[str, Any]]:
        return [{"id": 500, "name": "Unstarted"}, {"id": 501, "name": "In Progress"}, {"id": 502, "name": "Done"}]

    def get_members(self) -> list[dict[str, Any]]:
        self.member_requests += 1
        return [{"id": "member-uuid", "profile": {"email_address": "Dev@Example.com"}}]

    def validate_connection(self) -> bool:
        return True

    def get_current_iteration(self) -> dict[str, Any] | None:
        return {"id": 33, "name": "Sprint 33"}


def fake_jira(*issues: JiraIssue) -> Mock:
    by_key = {issue.key: issue for issue in issues}

    def get_issue(key: str, *, include_comments: bool = False) -> JiraIssue:
        if key not in by_key:
            msg = f"Jira issue {key} not found"
            raise NotFoundError(msg)
        return by_key[key]

    jira = Mock()
    jira.get_issue.side_effect = get_issue
    jira.download_attachment.return_value = b"bytes"
    jira.validate_connection.return_value = True
    return jira


@pytest.mark.unit
class TestAssigneeCache:
    def test_lookup_is_case_insensitive(self) -> None:
        cache = AssigneeCache(lambda: [("Dev@Example.com", 42)])
        assert cache.resolve("dev@example.COM") == 42

    def test_roster_is_loaded_once(self) -> None:
        load = Mock(return_value=[("a@example.com", 1)])
        cache = AssigneeCache(load)

        assert cache.resolve("a@example.com") == 1
        assert cache.resolve("missing@example.com") is None
        assert cache.resolve("missing@example.com") is None
        load.assert_called_once()

    def test_no_email_means_no_assignee(self) -> None:
        load = Mock()
        assert AssigneeCache(load).resolve(None) is None
        load.assert_not_called()

    def test_roster_errors_are_not_fatal(self) -> None:
        cache = AssigneeCache(Mock(side_effect=ApiError("Failed to get members: HTTP 403")))
        assert cache.resolve("a@example.com") is None


@pytest.mark.unit
class TestShortcutMigrator:
    def setup_method(self) -> None:
        self.shortcut: FakeShortcutClient = FakeShortcutClient()
        self.sleep: Mock = Mock()

    def migrator(self, *issues: JiraIssue, **kwargs: Any) -> ShortcutMigrator:
        self.jira: Mock = fake_jira(*issues)
        return ShortcutMigrator(
            self.jira,
            self.shortcut,  # type: ignore[arg-type]
            jira_base_url=JIRA_URL,
            policy=BackoffPolicy(courtesy_delay=0.1, sleep=self.sleep),
            **kwargs,
        )

    def test_second_run_updates_the_same_story(self) -> None:
        migrator = self.migrator(make_issue("PROJ-1"))

        first = migrator.migrate_issue("PROJ-1")
        second = migrator.migrate_issue("PROJ-1")

        assert first.success and second.success
        assert len(self.shortcut.stories) == 1
        assert first.was_update is False
        assert second.was_update is True
        assert first.destination_id == second.destination_id
        assert second.destination_kind == "story"

    def test_create_payload(self) -> None:
        migrator = self.migrator(make_issue("PROJ-1", issue_type="Bug", status="Done"), team_id="team-1")

        result = migrator.migrate_issue("PROJ-1", iteration_id=33)

        assert result.success
        action, payload = self.shortcut.payloads[0]
        assert action == "create_story"
        assert payload["external_id"] == "PROJ-1"
        assert payload["story_type"] == "bug"
        assert payload["workflow_state_id"] == 502
        assert payload["iteration_id"] == 33
        assert payload["group_id"] == "team-1"
        assert [label["name"] for label in payload["labels"]] == ["jira:bug", "backend"]
        assert "[PROJ-1](https://example.atlassian.net/browse/PROJ-1)" in payload["description"]

    def test_type_tag_is_not_added_back_on_update(self) -> None:
        migrator = self.migrator(make_issue("PROJ-1", labels=["backend", "ui"]))
        created = migrator.migrate_issue("PROJ-1")
        assert created.destination_id is not None
        story_id = int(created.destination_id)
        # Someone removed the type label in Shortcut
        self.shortcut.stories[story_id].labels = ["backend", "customer-facing"]

        _ = migrator.migrate_issue("PROJ-1")

        action, payload = self.shortcut.payloads[-1]
        assert action == "update_story"
        assert [label["name"] for label in payload["labels"]] == ["backend", "customer-facing", "ui"]

    def test_epic(self) -> None:
        migrator = self.migrator(make_issue("PROJ-5", issue_type="Epic", status="In Progress"))

        result = migrator.migrate_issue("PROJ-5")

        assert result.success
        assert result.destination_kind == "epic"
        assert len(self.shortcut.epics) == 1
        action, payload = self.shortcut.payloads[0]
        assert action == "create_epic"
        assert payload["state"] == "in progress"
        assert payload["external_id"] == "PROJ-5"

    def test_unknown_workflow_state_uses_first_state(self) -> None:
        migrator = self.migrator(make_issue("PROJ-1"), status_overrides={"In Progress": "Doing"})

        _ = migrator.migrate_issue("PROJ-1")

        assert self.shortcut.payloads[0][1]["workflow_state_id"] == 500

    def test_assignee_is_resolved_by_email_once(self) -> None:
        migrator = self.migrator(
            make_issue("PROJ-1", assignee_email="dev@example.com"),
            make_issue("PROJ-2", assignee_email="dev@example.com"),
        )

        _ = migrator.migrate_issue("PROJ-1")
        _ = migrator.migrate_issue("PROJ-2")

        assert self.shortcut.payloads[0][1]["owner_ids"] == ["member-uuid"]
        assert self.shortcut.payloads[1][1]["owner_ids"] == ["member-uuid"]
        assert self.shortcut.member_requests == 1

    def test_unknown_assignee_is_omitted(self) -> None:
        migrator = self.migrator(make_issue("PROJ-1", assignee_email="stranger@example.com"))

        result = migrator.migrate_issue("PROJ-1")

        assert result.success
        assert "owner_ids" not in self.shortcut.payloads[0][1]

    def test_comments_and_files_are_not_duplicated(self) -> None:
        issue = make_issue(
            "PROJ-1",
            attachments=[make_attachment("spec.pdf"), make_attachment("notes.txt")],
            comments=[make_comment("100"), make_comment("101")],
        )
        migrator = self.migrator(issue)

        first = migrator.migrate_issue("PROJ-1")
        second = migrator.migrate_issue("PROJ-1")

        assert first.destination_id is not None
        story_id = int(first.destination_id)
        assert second.was_update
        assert self.shortcut.files[story_id] == ["spec.pdf", "notes.txt"]
        assert len(self.shortcut.comments[story_id]) == 2
        assert self.jira.download_attachment.call_count == 2
        assert (first.attachments_added, first.comments_added) == (2, 2)
        assert (second.attachments_added, second.comments_added) == (0, 0)

    def test_failed_upload_is_reported_on_the_result(self) -> None:
        issue = make_issue("PROJ-1", attachments=[make_attachment("spec.pdf"), make_attachment("notes.txt")])
        migrator = self.migrator(issue)
        self.jira.download_attachment.side_effect = [ApiError("Failed to download spec.pdf: HTTP 500"), b"bytes"]

        result = migrator.migrate_issue("PROJ-1")

        assert result.success
        assert result.attachments_added == 1
        assert len(result.sub_resource_errors) == 1
        assert "spec.pdf" in result.sub_resource_errors[0]

    def test_comment_sync_can_be_disabled(self) -> None:
        migrator = self.migrator(make_issue("PROJ-1", comments=[make_comment("1")]))

        result = migrator.migrate_issue("PROJ-1", sync_comments=False)

        assert result.success
        assert self.shortcut.comments == {}
        self.jira.get_issue.assert_called_once_with("PROJ-1", include_comments=False)

    def test_epic_comments_are_synchronized(self) -> None:
        migrator = self.migrator(make_issue("PROJ-5", issue_type="Epic", comments=[make_comment("9")]))

        first = migrator.migrate_issue("PROJ-5")
        _ = migrator.migrate_issue("PROJ-5")

        assert first.destination_id is not None
        assert len(self.shortcut.comments[int(first.destination_id)]) == 1

    def test_missing_issue_is_a_failure(self) -> None:
        migrator = self.migrator()

        result = migrator.migrate_issue("NOPE-1")

        assert result.success is False
        assert result.error is not None
        assert "not found" in result.error
        assert self.shortcut.payloads == []

    def test_unexpected_error_is_a_failure(self) -> None:
        migrator = self.migrator(make_issue("PROJ-1"))
        self.shortcut.create_story = Mock(side_effect=RuntimeError("connection reset"))  # type: ignore[method-assign]

        result = migrator.migrate_issue("PROJ-1")

        assert result.success is False
        assert result.error == "connection reset"

    def test_bulk_with_invalid_key_first(self) -> None:
        migrator = self.migrator(make_issue("PROJ-1"))

        report = migrator.migrate_bulk(["BAD-1", "PROJ-1"])

        assert len(report.results) == 2
        assert [r.success for r in report.results] == [False, True]
        assert len(self.shortcut.stories) == 1
        assert self.sleep.call_count == 2

    def test_bulk_with_invalid_key_last(self) -> None:
        migrator = self.migrator(make_issue("PROJ-1"))

        report = migrator.migrate_bulk(["PROJ-1", "BAD-1"])

        assert [r.success for r in report.results] == [True, False]
        assert len(report.succeeded) == 1
        assert len(report.failed) == 1

    def test_validate_connections(self) -> None:
        assert self.migrator().validate_connections() == {"jira": True, "shortcut": True}


def clickup_task(task_id: str = "t1", **kwargs: Any) -> ClickUpTask:
    return ClickUpTask(id=task_id, name="Task", url=f"https://app.clickup.com/t/{task_id}", **kwargs)


@pytest.mark.unit
class TestClickUpMigrator:
    def setup_method(self) -> None:
        self.clickup: Mock = Mock()
        self.clickup.list_id = "list-1"
        self.clickup.policy = BackoffPolicy(courtesy_delay=1.0, sleep=Mock())
        self.clickup.list_tasks.return_value = []
        self.clickup.create_task.return_value = clickup_task("t1")
        self.clickup.get_task_comments.return_value = []
        self.clickup.get_team_members.return_value = [{"id": 42, "email": "dev@example.com"}]

    def migrator(self, *issues: JiraIssue, field_id: str | None = FIELD_ID) -> ClickUpMigrator:
        self.jira: Mock = fake_jira(*issues)
        return ClickUpMigrator(self.jira, self.clickup, jira_base_url=JIRA_URL, external_id_field_id=field_id)

    def existing(self, key: str = "PROJ-1", **kwargs: Any) -> ClickUpTask:
        return clickup_task("t9", custom_fields={FIELD_ID: CustomFieldValue(kind="string", value=key)}, **kwargs)

    def test_create_payload(self) -> None:
        issue = make_issue("PROJ-1", issue_type="Bug", priority="Highest", assignee_email="DEV@example.com")

        result = self.migrator(issue).migrate_issue("PROJ-1", parent_task_id="parent-1")

        assert result.success
        assert result.was_update is False
        assert result.destination_url == "https://app.clickup.com/t/t1"
        payload, list_id = self.clickup.create_task.call_args.args
        assert list_id == "list-1"
        assert payload["status"] == "in progress"
        assert payload["priority"] == 1
        assert payload["tags"] == ["jira:bug", "backend"]
        assert payload["assignees"] == [42]
        assert payload["parent"] == "parent-1"
        assert payload["custom_fields"] == [{"id": FIELD_ID, "value": "PROJ-1"}]
        assert payload["custom_item_id"] == 1001

    def test_absent_priority_is_omitted(self) -> None:
        _ = self.migrator(make_issue("PROJ-1", priority=None)).migrate_issue("PROJ-1")

        payload = self.clickup.create_task.call_args.args[0]
        assert "priority" not in payload
        assert "custom_item_id" not in payload

    def test_existing_task_is_updated(self) -> None:
        self.clickup.list_tasks.return_value = [self.existing(tags=["jira:story"])]
        self.clickup.update_task.return_value = clickup_task("t9", tags=["jira:story"])

        result = self.migrator(make_issue("PROJ-1", labels=["backend"])).migrate_issue("PROJ-1")

        assert result.success
        assert result.was_update is True
        assert result.destination_id == "t9"
        self.clickup.create_task.assert_not_called()
        task_id, payload = self.clickup.update_task.call_args.args
        assert task_id == "t9"
        assert "custom_fields" not in payload
        assert "tags" not in payload
        assert "parent" not in payload
        self.clickup.add_tag.assert_called_once_with("t9", "backend")

    def test_update_adds_assignee(self) -> None:
        self.clickup.list_tasks.return_value = [self.existing()]
        self.clickup.update_task.return_value = clickup_task("t9")

        _ = self.migrator(make_issue("PROJ-1", assignee_email="dev@example.com")).migrate_issue("PROJ-1")

        assert self.clickup.update_task.call_args.args[1]["assignees"] == {"add": [42]}

    def test_force_update_never_creates(self) -> None:
        result = self.migrator(make_issue("PROJ-1")).migrate_issue("PROJ-1", force_update=True)

        assert result.success is False
        assert result.error is not None
        assert "no existing task" in result.error
        self.clickup.create_task.assert_not_called()
        self.clickup.update_task.assert_not_called()

    def test_invalid_parent_stops_before_any_write(self) -> None:
        self.clickup.validate_parent_task.side_effect = ParentValidationError("Parent task is in another list")

        result = self.migrator(make_issue("PROJ-1")).migrate_issue("PROJ-1", parent_task_id="p-1", list_id="list-2")

        assert result.success is False
        assert result.error == "Parent task validation failed: Parent task is in another list"
        self.clickup.validate_parent_task.assert_called_once_with("p-1", "list-2")
        self.clickup.create_task.assert_not_called()
        self.clickup.update_task.assert_not_called()
        self.clickup.list_tasks.assert_not_called()

    def test_without_external_id_field_every_run_creates(self) -> None:
        migrator = self.migrator(make_issue("PROJ-1"), field_id=None)

        _ = migrator.migrate_issue("PROJ-1")
        _ = migrator.migrate_issue("PROJ-1")

        assert self.clickup.create_task.call_count == 2
        assert "custom_fields" not in self.clickup.create_task.call_args.args[0]
        self.clickup.list_tasks.assert_not_called()

    def test_comments_are_synchronized_once(self) -> None:
        issue = make_issue("PROJ-1", comments=[make_comment("100"), make_comment("101")])
        self.clickup.list_tasks.return_value = [self.existing()]
        self.clickup.update_task.return_value = clickup_task("t9")
        self.clickup.get_task_comments.return_value = [format_comment(make_comment("100"))]

        _ = self.migrator(issue).migrate_issue("PROJ-1")

        self.clickup.add_task_comment.assert_called_once()
        task_id, text = self.clickup.add_task_comment.call_args.args
        assert task_id == "t9"
        assert "[Jira Comment ID: 101]" in text

    def test_existing_attachments_are_skipped(self) -> None:
        issue = make_issue("PROJ-1", attachments=[make_attachment("spec.pdf"), make_attachment("notes.txt")])
        self.clickup.list_tasks.return_value = [self.existing(attachment_titles=["spec.pdf"])]
        self.clickup.update_task.return_value = clickup_task("t9")
        migrator = self.migrator(issue)

        _ = migrator.migrate_issue("PROJ-1")

        self.jira.download_attachment.assert_called_once_with(make_attachment("notes.txt").content_url)
        self.clickup.upload_attachment.assert_called_once_with("t9", "notes.txt", b"bytes")

    def test_failed_attachment_does_not_fail_the_issue(self) -> None:
        issue = make_issue("PROJ-1", attachments=[make_attachment("a.txt")])
        self.clickup.upload_attachment.side_effect = ApiError("Failed to upload a.txt to ClickUp: too large")

        result = self.migrator(issue).migrate_issue("PROJ-1")

        assert result.success
        assert result.attachments_added == 0
        assert result.sub_resource_errors == [
            "Failed to upload attachment a.txt to t1: Failed to upload a.txt to ClickUp: too large"
        ]

    def test_failed_comment_is_reported_on_the_result(self) -> None:
        issue = make_issue("PROJ-1", comments=[make_comment("100"), make_comment("101")])
        self.clickup.add_task_comment.side_effect = [None, ApiError("Failed to add task comment: HTTP 500")]

        result = self.migrator(issue).migrate_issue("PROJ-1")

        assert result.success
        assert result.comments_added == 1
        assert len(result.sub_resource_errors) == 1
        assert "comment 101" in result.sub_resource_errors[0]

    def test_external_id_is_set_when_create_drops_it(self) -> None:
        _ = self.migrator(make_issue("PROJ-1")).migrate_issue("PROJ-1")

        self.clickup.set_custom_field.assert_called_once_with("t1", FIELD_ID, "PROJ-1")

    def test_external_id_stored_by_create_is_not_set_again(self) -> None:
        self.clickup.create_task.return_value = self.existing()

        _ = self.migrator(make_issue("PROJ-1")).migrate_issue("PROJ-1")

        self.clickup.set_custom_field.assert_not_called()

    def test_current_list_and_space(self) -> None:
        self.clickup.get_list.return_value = {"id": "list-1", "name": "Backlog"}
        self.clickup.get_space.return_value = {"id": "space-1", "name": "Engineering"}
        migrator = ClickUpMigrator(fake_jira(), self.clickup, jira_base_url=JIRA_URL, space_id="space-1")

        assert migrator.get_current_list()["name"] == "Backlog"
        space = migrator.get_current_space()
        assert space is not None
        assert space["name"] == "Engineering"
        self.clickup.get_space.assert_called_once_with("space-1")

    def test_no_space_configured(self) -> None:
        migrator = ClickUpMigrator(fake_jira(), self.clickup, jira_base_url=JIRA_URL, space_id="")

        assert migrator.get_current_space() is None
        self.clickup.get_space.assert_not_called()

    def test_bulk_uses_client_policy(self) -> None:
        migrator = self.migrator(make_issue("PROJ-1"))

        report = migrator.migrate_bulk(["PROJ-1", "MISSING-1"])

        assert [r.success for r in report.results] == [True, False]
        assert self.clickup.policy.sleep.call_count == 2
