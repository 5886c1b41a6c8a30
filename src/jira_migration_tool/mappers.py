"""
Mapping of Jira status, priority and issue type values onto Shortcut and ClickUp vocabularies.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .models import DestinationKind, EpicState, StoryType

_CLOSED_WORDS: Final[tuple[str, ...]] = ("done", "closed", "resolved")
_IN_PROGRESS_WORDS: Final[tuple[str, ...]] = ("progress", "review")

_PRIORITIES: Final[dict[str, int]] = {
    "highest": 1,
    "high": 2,
    "medium": 3,
    "low": 4,
    "lowest": 4,
}

_BUG_TYPES: Final[frozenset[str]] = frozenset({"bug", "defect", "error", "fault", "issue"})


def _status_family(status: str) -> str:
    """Classify a Jira status name as "closed", "in_progress" or "open"."""
    lowered = status.lower()
    if any(word in lowered for word in _CLOSED_WORDS):
        return "closed"
    if any(word in lowered for word in _IN_PROGRESS_WORDS):
        return "in_progress"
    # Open, backlog and unknown statuses
    return "open"


def map_clickup_status(status: str, overrides: Mapping[str, str] | None = None) -> str:
    """Map a Jira status to a ClickUp list status.

    An explicit override for the exact status name always wins over the
    substring rules.
    """
    if overrides and status in overrides:
        return overrides[status]
    return {"closed": "Closed", "in_progress": "in progress", "open": "Open"}[_status_family(status)]


def map_shortcut_workflow_state_name(status: str, overrides: Mapping[str, str] | None = None) -> str:
    """Map a Jira status to the name of a Shortcut workflow state."""
    if overrides and status in overrides:
        return overrides[status]
    return {"closed": "Done", "in_progress": "In Progress", "open": "Unstarted"}[_status_family(status)]


def map_epic_state(status: str) -> EpicState:
    family = _status_family(status)
    if family == "closed":
        return "done"
    if family == "in_progress":
        return "in progress"
    return "to do"


def map_priority(priority: str | None) -> int | None:
    """Map a Jira priority name to ClickUp's 1 (urgent) .. 4 (low) scale.

    Returns None when the issue has no priority or an unknown one, in which case
    the field must be left out of the payload.
    """
    if not priority:
        return None
    return _PRIORITIES.get(priority.strip().lower())


def classify_issue_type(issue_type: str) -> DestinationKind:
    return "epic" if issue_type == "Epic" else "story"


def map_story_type(issue_type: str) -> StoryType:
    lowered = issue_type.lower()
    if "bug" in lowered or "defect" in lowered:
        return "bug"
    if "task" in lowered or "chore" in lowered:
        return "chore"
    return "feature"


def _hyphenate(issue_type: str) -> str:
    return re.sub(r"\s+", "-", issue_type.strip().lower())


def issue_type_tag(issue_type: str) -> str:
    """Label recording the original Jira issue type, e.g. "jira:user-story"."""
    return f"jira:{_hyphenate(issue_type)}"


def is_bug_issue_type(issue_type: str) -> bool:
    return _hyphenate(issue_type).replace("-", "") in _BUG_TYPES
