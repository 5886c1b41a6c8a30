"""Protocols defining the contracts between the migration engine and its collaborators.

The engine is split into small parts that only know each other through these
structural types:

1. SourceTracker: reads issues, comments and attachment bytes (Jira)
2. RecordLocator: finds the destination record already migrated for a Jira key
3. The synchronizers receive plain callables for the destination-side writes

This keeps the engine testable with ``Mock`` objects standing in for the HTTP
clients.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, TypeVar

if TYPE_CHECKING:
    from .models import JiraComment, JiraIssue

RecordT_co = TypeVar("RecordT_co", covariant=True)


class SourceTracker(Protocol):
    """Read-only access to the tracker issues are migrated from."""

    def get_issue(self, key: str, *, include_comments: bool = False) -> JiraIssue:
        """Fetch one issue.

        Raises:
            NotFoundError: If the key does not exist
            ApiError: For any other failure
        """
        ...

    def get_comments(self, key: str) -> list[JiraComment]:
        """Return all comments of an issue, oldest first."""
        ...

    def download_attachment(self, url: str) -> bytes:
        """Download attachment bytes from an authenticated URL."""
        ...

    def validate_connection(self) -> bool:
        """Return True if the tracker is reachable with the configured credentials."""
        ...


class RecordLocator(Protocol[RecordT_co]):
    """Finds the destination record that carries a Jira key as its correlation id."""

    def find(self, key: str) -> RecordT_co | None:
        """Return the canonical record for ``key``, or None if it was never migrated.

        Implementations must not raise when several records match; they pick one
        deterministically and log a warning.
        """
        ...
