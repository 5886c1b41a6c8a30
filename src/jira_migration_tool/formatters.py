"""Build destination descriptions and comments from Jira issue data."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Final

from .adf import convert_document
from .utils import format_timestamp

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .models import JiraComment, JiraIssue

# Markers of the generic form "[Source Comment ID: <id>]" are recognised as well.
COMMENT_MARKER_TEMPLATE: Final[str] = "[Jira Comment ID: {comment_id}]"
COMMENT_MARKER_PATTERN: Final[re.Pattern[str]] = re.compile(r"\[(?:Jira|Source) Comment ID: ([^\]]+)\]")


def _format_size(size: int) -> str:
    return f"{size / 1024:.2f} KB"


def _details_lines(issue: JiraIssue) -> list[str]:
    lines = [
        f"- **Type:** {issue.issue_type}",
        f"- **Status:** {issue.status}",
    ]
    if issue.priority:
        lines.append(f"- **Priority:** {issue.priority}")
    if issue.reporter:
        lines.append(f"- **Reporter:** {issue.reporter.display_name}")
    if issue.assignee:
        lines.append(f"- **Assignee:** {issue.assignee.display_name}")
    lines.append(f"- **Created:** {format_timestamp(issue.created)}")
    lines.append(f"- **Updated:** {format_timestamp(issue.updated)}")
    if issue.components:
        lines.append(f"- **Components:** {', '.join(issue.components)}")
    if issue.labels:
        lines.append(f"- **Labels:** {', '.join(issue.labels)}")
    return lines


def format_issue_description(issue: JiraIssue, jira_base_url: str) -> str:
    """Build the description of the destination record.

    The converted Jira description is framed by a link back to the original
    issue and a summary of the Jira fields that have no destination counterpart.
    """
    body = f"**Migrated from Jira:** [{issue.key}]({jira_base_url.rstrip('/')}/browse/{issue.key})\n\n"
    body += "---\n\n"

    converted = convert_document(issue.description)
    if converted.strip():
        body += f"{converted}\n\n---\n\n"

    body += "### Jira Details\n\n"
    body += "\n".join(_details_lines(issue)) + "\n"

    if issue.attachments:
        body += f"\n### Attachments ({len(issue.attachments)})\n\n"
        for attachment in issue.attachments:
            body += f"- [{attachment.filename}]({attachment.content_url}) ({_format_size(attachment.size)})\n"

    return body


def format_comment(comment: JiraComment) -> str:
    """Format a Jira comment for the destination, ending with its de-duplication marker."""
    author = comment.author.display_name if comment.author else "Unknown"
    created = format_timestamp(comment.created, local=True)
    body = convert_document(comment.body)
    marker = COMMENT_MARKER_TEMPLATE.format(comment_id=comment.id)
    return f"**{author}** ({created}):\n{body}\n\n---\n*{marker}*"


def extract_comment_ids(comment_texts: Iterable[str]) -> set[str]:
    """Collect the Jira comment ids already present in destination comments."""
    seen: set[str] = set()
    for text in comment_texts:
        seen.update(match.strip() for match in COMMENT_MARKER_PATTERN.findall(text or ""))
    return seen
