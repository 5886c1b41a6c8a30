"""Thin client for the Shortcut REST API v3."""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Final

import requests

from .exceptions import ApiError, api_error
from .models import ShortcutRecord
from .utils import parse_timestamp

logger: logging.Logger = logging.getLogger(__name__)

BASE_URL: Final[str] = "https://api.app.shortcut.com/api/v3"
SEARCH_PAGE_SIZE: Final[int] = 25
_TIMEOUT: Final[int] = 30


class ShortcutClient:
    """Stories, epics and their supporting resources on Shortcut.

    Authenticates with the ``Shortcut-Token`` header.
    """

    session: requests.Session

    def __init__(self, api_token: str, *, session: requests.Session | None = None) -> None:
        self.session = session or requests.Session()
        self.session.headers.update({"Shortcut-Token": api_token, "Content-Type": "application/json"})

    def _request(self, method: str, path: str, action: str, **kwargs: Any) -> Any:  # noqa: ANN401 - JSON payload
        try:
            response = self.session.request(method, f"{BASE_URL}{path}", timeout=_TIMEOUT, **kwargs)
        except requests.RequestException as e:
            msg = f"Failed to {action}: {e}"
            raise ApiError(msg) from e
        if not response.ok:
            raise api_error(response, action)
        if not response.content:
            return None
        return response.json()

    # Stories and epics

    def create_story(self, payload: dict[str, Any]) -> ShortcutRecord:
        return ShortcutRecord.from_api(self._request("POST", "/stories", "create Shortcut story", json=payload))

    def update_story(self, story_id: int, payload: dict[str, Any]) -> ShortcutRecord:
        data = self._request("PUT", f"/stories/{story_id}", "update Shortcut story", json=payload)
        return ShortcutRecord.from_api(data)

    def create_epic(self, payload: dict[str, Any]) -> ShortcutRecord:
        return ShortcutRecord.from_api(self._request("POST", "/epics", "create Shortcut epic", json=payload))

    def update_epic(self, epic_id: int, payload: dict[str, Any]) -> ShortcutRecord:
        return ShortcutRecord.from_api(self._request("PUT", f"/epics/{epic_id}", "update Shortcut epic", json=payload))

    def search_stories(self, query: str, page_size: int = SEARCH_PAGE_SIZE) -> list[ShortcutRecord]:
        data = self._request(
            "GET", "/search/stories", "search Shortcut stories", params={"query": query, "page_size": page_size}
        )
        return [ShortcutRecord.from_api(item) for item in (data or {}).get("data", [])]

    def search_epics(self, query: str, page_size: int = SEARCH_PAGE_SIZE) -> list[ShortcutRecord]:
        data = self._request(
            "GET", "/search/epics", "search Shortcut epics", params={"query": query, "page_size": page_size}
        )
        return [ShortcutRecord.from_api(item) for item in (data or {}).get("data", [])]

    # Comments and files

    def create_story_comment(self, story_id: int, text: str) -> None:
        self._request("POST", f"/stories/{story_id}/comments", "create Shortcut story comment", json={"text": text})

    def list_epic_comments(self, epic_id: int) -> list[str]:
        data = self._request("GET", f"/epics/{epic_id}/comments", "list Shortcut epic comments")
        return [c.get("text", "") for c in data or [] if not c.get("deleted")]

    def create_epic_comment(self, epic_id: int, text: str) -> None:
        self._request("POST", f"/epics/{epic_id}/comments", "create Shortcut epic comment", json={"text": text})

    def upload_story_file(self, story_id: int, filename: str, content: bytes, mime_type: str) -> None:
        # Multipart upload; the JSON content type set on the session must not be sent here
        self._request(
            "POST",
            "/files",
            f"upload {filename} to Shortcut",
            files={"file0": (filename, content, mime_type)},
            data={"story_id": str(story_id)},
            headers={"Content-Type": None},
        )

    # Workspace metadata

    def get_workflow_states(self) -> list[dict[str, Any]]:
        workflows = self._request("GET", "/workflows", "get workflow states") or []
        return [state for workflow in workflows for state in workflow.get("states", [])]

    def get_members(self) -> list[dict[str, Any]]:
        return self._request("GET", "/members", "get members") or []

    def get_iterations(self) -> list[dict[str, Any]]:
        return self._request("GET", "/iterations", "get iterations") or []

    def get_current_iteration(self, now: dt.datetime | None = None) -> dict[str, Any] | None:
        """Return the iteration whose start/end window contains ``now``."""
        now = now or dt.datetime.now(dt.UTC)
        today = now.date()
        for iteration in self.get_iterations():
            start = parse_timestamp(iteration.get("start_date", ""))
            end = parse_timestamp(iteration.get("end_date", ""))
            if start is None or end is None:
                continue
            if start.date() <= today <= end.date():
                return iteration
        return None

    def validate_connection(self) -> bool:
        try:
            self._request("GET", "/member", "get current member")
        except ApiError as e:
            logger.warning(f"Shortcut connection check failed: {e}")
            return False
        return True
