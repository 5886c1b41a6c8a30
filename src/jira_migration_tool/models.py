"""Data models exchanged between the Jira client, the destination clients and the migrators.

Jira responses are converted into these dataclasses at the client boundary so
that the migration engine never has to dig through raw JSON. Rich-text bodies
(descriptions, comment bodies) stay in their raw ADF form until the document
converter renders them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

DestinationKind = Literal["epic", "story"]
StoryType = Literal["feature", "bug", "chore"]
EpicState = Literal["to do", "in progress", "done"]


@dataclass(frozen=True)
class Person:
    """A Jira user as referenced from an issue or comment."""

    display_name: str
    email: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any] | None) -> Person | None:
        if not data:
            return None
        return cls(display_name=data.get("displayName", ""), email=data.get("emailAddress") or None)


@dataclass(frozen=True)
class AttachmentInfo:
    """Descriptor of a file attached to a Jira issue.

    The bytes are not part of the descriptor; they are downloaded from
    ``content_url`` only when the destination does not have the file yet.
    """

    id: str
    filename: str
    size: int
    mime_type: str
    content_url: str

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> AttachmentInfo:
        return cls(
            id=str(data.get("id", "")),
            filename=data.get("filename", ""),
            size=int(data.get("size") or 0),
            mime_type=data.get("mimeType", "application/octet-stream"),
            content_url=data.get("content", ""),
        )


@dataclass(frozen=True)
class JiraComment:
    """A comment on a Jira issue. ``body`` is a plain string or an ADF document."""

    id: str
    author: Person | None
    body: Any
    created: str

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> JiraComment:
        return cls(
            id=str(data.get("id", "")),
            author=Person.from_api(data.get("author")),
            body=data.get("body"),
            created=data.get("created", ""),
        )


@dataclass
class JiraIssue:
    """A Jira issue, read-only from the migrator's point of view."""

    key: str
    summary: str
    issue_type: str
    status: str
    description: Any = None
    priority: str | None = None
    assignee: Person | None = None
    reporter: Person | None = None
    created: str = ""
    updated: str = ""
    labels: list[str] = field(default_factory=list)
    components: list[str] = field(default_factory=list)
    attachments: list[AttachmentInfo] = field(default_factory=list)
    comments: list[JiraComment] | None = None  # None when comments were not requested

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> JiraIssue:
        fields: dict[str, Any] = data.get("fields", {})
        priority = fields.get("priority")
        comment_block = fields.get("comment")
        comments = None
        if comment_block is not None:
            comments = [JiraComment.from_api(c) for c in comment_block.get("comments", [])]

        return cls(
            key=data["key"],
            summary=fields.get("summary", ""),
            issue_type=(fields.get("issuetype") or {}).get("name", ""),
            status=(fields.get("status") or {}).get("name", ""),
            description=fields.get("description"),
            priority=priority.get("name") if priority else None,
            assignee=Person.from_api(fields.get("assignee")),
            reporter=Person.from_api(fields.get("reporter")),
            created=fields.get("created", ""),
            updated=fields.get("updated", ""),
            labels=list(fields.get("labels") or []),
            components=[c.get("name", "") for c in fields.get("components") or []],
            attachments=[AttachmentInfo.from_api(a) for a in fields.get("attachment") or []],
            comments=comments,
        )


@dataclass(frozen=True)
class CustomFieldValue:
    """Value of a ClickUp custom field, narrowed to string, number or null.

    ClickUp reports the value of a text field under different keys depending on
    the endpoint, so the raw field is normalised once here.
    """

    kind: Literal["string", "number", "null"]
    value: str | float | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> CustomFieldValue:
        raw: object = None
        for key in ("value", "text_value", "string_value", "default_value"):
            if data.get(key) is not None:
                raw = data[key]
                break
        if isinstance(raw, bool) or raw is None:
            return cls(kind="null")
        if isinstance(raw, int | float):
            return cls(kind="number", value=float(raw))
        if isinstance(raw, str):
            return cls(kind="string", value=raw)
        return cls(kind="null")

    def equals(self, text: str) -> bool:
        return self.kind == "string" and self.value == text


@dataclass
class ClickUpTask:
    """The parts of a ClickUp task the migrator needs."""

    id: str
    name: str
    url: str = ""
    list_id: str | None = None
    list_name: str | None = None
    date_created: int = 0
    tags: list[str] = field(default_factory=list)
    custom_fields: dict[str, CustomFieldValue] = field(default_factory=dict)
    attachment_titles: list[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> ClickUpTask:
        task_list = data.get("list") or {}
        try:
            date_created = int(data.get("date_created") or 0)
        except (TypeError, ValueError):
            date_created = 0
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            url=data.get("url", ""),
            list_id=str(task_list["id"]) if task_list.get("id") is not None else None,
            list_name=task_list.get("name"),
            date_created=date_created,
            tags=[t.get("name", "") for t in data.get("tags") or []],
            custom_fields={
                str(cf["id"]): CustomFieldValue.from_api(cf) for cf in data.get("custom_fields") or [] if "id" in cf
            },
            attachment_titles=[a.get("title", "") for a in data.get("attachments") or []],
        )


@dataclass
class ShortcutRecord:
    """A story or epic as returned by the Shortcut API."""

    id: int
    name: str
    app_url: str = ""
    external_id: str | None = None
    labels: list[str] = field(default_factory=list)
    file_names: list[str] = field(default_factory=list)
    comment_texts: list[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> ShortcutRecord:
        return cls(
            id=int(data["id"]),
            name=data.get("name", ""),
            app_url=data.get("app_url", ""),
            external_id=data.get("external_id"),
            labels=[label.get("name", "") for label in data.get("labels") or []],
            file_names=[f.get("name") or f.get("filename", "") for f in data.get("files") or []],
            comment_texts=[c.get("text", "") for c in data.get("comments") or [] if not c.get("deleted")],
        )


@dataclass
class MigrationResult:
    """Outcome of migrating one Jira issue."""

    success: bool
    jira_key: str
    destination_id: str | None = None
    destination_url: str | None = None
    was_update: bool = False
    destination_kind: str | None = None  # "epic", "story" or "task"
    error: str | None = None
    attachments_added: int = 0
    comments_added: int = 0
    # Attachments and comments that could not be copied; they do not fail the issue
    sub_resource_errors: list[str] = field(default_factory=list)

    @classmethod
    def failure(cls, jira_key: str, error: str) -> MigrationResult:
        return cls(success=False, jira_key=jira_key, error=error)
