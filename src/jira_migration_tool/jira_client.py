"""Thin client for the Jira Cloud REST API v3."""

from __future__ import annotations

import logging
from typing import Any, Final

import requests
from requests.auth import HTTPBasicAuth

from .exceptions import ApiError, NotFoundError, api_error
from .models import JiraComment, JiraIssue

logger: logging.Logger = logging.getLogger(__name__)

ISSUE_FIELDS: Final[tuple[str, ...]] = (
    "summary",
    "description",
    "issuetype",
    "status",
    "priority",
    "assignee",
    "reporter",
    "created",
    "updated",
    "labels",
    "components",
    "parent",
    "subtasks",
    "attachment",
)
_COMMENT_PAGE_SIZE: Final[int] = 100
_TIMEOUT: Final[int] = 30


class JiraClient:
    """Read-only access to Jira issues, comments and attachments.

    Authentication is basic auth with the account email and an API token, sent
    on every request including attachment downloads.
    """

    base_url: str
    session: requests.Session

    def __init__(self, base_url: str, email: str, api_token: str, *, session: requests.Session | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.session.auth = HTTPBasicAuth(email, api_token)
        self.session.headers.update({"Accept": "application/json", "Content-Type": "application/json"})

    def _url(self, path: str) -> str:
        return f"{self.base_url}/rest/api/3{path}"

    def get_issue(self, key: str, *, include_comments: bool = False) -> JiraIssue:
        try:
            response = self.session.get(
                self._url(f"/issue/{key}"),
                params={"fields": ",".join(ISSUE_FIELDS)},
                timeout=_TIMEOUT,
            )
        except requests.RequestException as e:
            msg = f"Failed to fetch Jira issue {key}: {e}"
            raise ApiError(msg) from e

        if response.status_code == 404:
            msg = f"Jira issue {key} not found"
            raise NotFoundError(msg)
        if not response.ok:
            raise api_error(response, f"fetch Jira issue {key}")

        issue = JiraIssue.from_api(response.json())
        if include_comments:
            issue.comments = self.get_comments(key)
        logger.debug(f"Fetched {key}: {issue.issue_type} '{issue.summary}'")
        return issue

    def get_comments(self, key: str) -> list[JiraComment]:
        """Return all comments of an issue, oldest first."""
        comments: list[JiraComment] = []
        start_at = 0
        while True:
            try:
                response = self.session.get(
                    self._url(f"/issue/{key}/comment"),
                    params={"startAt": start_at, "maxResults": _COMMENT_PAGE_SIZE, "orderBy": "created"},
                    timeout=_TIMEOUT,
                )
            except requests.RequestException as e:
                msg = f"Failed to fetch comments for {key}: {e}"
                raise ApiError(msg) from e
            if not response.ok:
                raise api_error(response, f"fetch comments for {key}")

            data: dict[str, Any] = response.json()
            page = data.get("comments", [])
            comments.extend(JiraComment.from_api(c) for c in page)
            start_at += len(page)
            if not page or start_at >= int(data.get("total", 0)):
                return comments

    def download_attachment(self, url: str) -> bytes:
        try:
            response = self.session.get(url, timeout=_TIMEOUT, headers={"Accept": "*/*"})
        except requests.RequestException as e:
            msg = f"Failed to download attachment from {url}: {e}"
            raise ApiError(msg) from e
        if not response.ok:
            raise api_error(response, f"download attachment from {url}")
        return response.content

    def validate_connection(self) -> bool:
        try:
            response = self.session.get(self._url("/myself"), timeout=_TIMEOUT)
        except requests.RequestException as e:
            logger.warning(f"Jira connection check failed: {e}")
            return False
        return response.ok
