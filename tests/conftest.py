"""
Pytest configuration and shared fixtures.

Tests marked ``integration`` fail when the code under test logs a WARNING or
worse: a clean migration is expected to run without warnings. Unit tests may
log warnings freely, many of them provoke warnings on purpose.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from typing_extensions import override

import pytest

from jira_migration_tool.models import AttachmentInfo, JiraComment, JiraIssue, Person

if TYPE_CHECKING:
    from collections.abc import Generator

_captured_warnings: dict[str, list[logging.LogRecord]] = {}


class WarningCollector(logging.Handler):
    """Collects WARNING and above records emitted while one test runs."""

    test_nodeid: str

    def __init__(self, test_nodeid: str) -> None:
        super().__init__(level=logging.WARNING)
        self.test_nodeid = test_nodeid

    @override
    def emit(self, record: logging.LogRecord) -> None:
        _captured_warnings.setdefault(self.test_nodeid, []).append(record)


@pytest.fixture(autouse=True)
def fail_on_log_warnings_for_integration_tests(request: pytest.FixtureRequest) -> Generator[None]:
    """Attach a ``WarningCollector`` to the root logger for integration tests."""
    if request.node.get_closest_marker("integration") is None:
        yield
        return

    handler = WarningCollector(request.node.nodeid)
    _captured_warnings[request.node.nodeid] = []
    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    try:
        yield
    finally:
        root_logger.removeHandler(handler)


@pytest.hookimpl(tryfirst=True, hookwrapper=True)
def pytest_runtest_makereport(item: pytest.Item, call: pytest.CallInfo[None]) -> Generator[None]:  # type: ignore[misc]
    """Turn a passed integration test into a failure when warnings were logged."""
    outcome = yield
    report = outcome.get_result()

    if call.when != "call" or report.outcome != "passed":
        return

    records = _captured_warnings.pop(item.nodeid, [])
    if records:
        details = "\n".join(
            f"  - {record.levelname}: {record.getMessage()} (in {record.name}:{record.lineno})" for record in records
        )
        report.outcome = "failed"
        report.longrepr = f"Integration test failed: {len(records)} warning(s) detected:\n{details}"


def make_issue(  # noqa: PLR0913
    key: str = "PROJ-1",
    *,
    summary: str = "Login button does nothing",
    issue_type: str = "Story",
    status: str = "In Progress",
    priority: str | None = "High",
    labels: list[str] | None = None,
    assignee_email: str | None = None,
    attachments: list[AttachmentInfo] | None = None,
    comments: list[JiraComment] | None = None,
) -> JiraIssue:
    return JiraIssue(
        key=key,
        summary=summary,
        issue_type=issue_type,
        status=status,
        description={
            "type": "doc",
            "version": 1,
            "content": [{"type": "paragraph", "content": [{"type": "text", "text": "Steps to reproduce"}]}],
        },
        priority=priority,
        assignee=Person("Dev Eloper", assignee_email) if assignee_email else None,
        reporter=Person("Rep Orter", "reporter@example.com"),
        created="2024-01-15T10:30:45.123+0000",
        updated="2024-01-16T08:00:00.000+0000",
        labels=labels if labels is not None else ["backend"],
        attachments=attachments or [],
        comments=comments if comments is not None else [],
    )


def make_attachment(filename: str, size: int = 2048) -> AttachmentInfo:
    return AttachmentInfo(
        id=filename,
        filename=filename,
        size=size,
        mime_type="application/octet-stream",
        content_url=f"https://example.atlassian.net/rest/api/3/attachment/content/{filename}",
    )


def make_comment(comment_id: str, text: str = "Looks good") -> JiraComment:
    return JiraComment(
        id=comment_id,
        author=Person("Commenter", "commenter@example.com"),
        body={"type": "doc", "content": [{"type": "paragraph", "content": [{"type": "text", "text": text}]}]},
        created="2024-01-17T09:00:00.000+0000",
    )
