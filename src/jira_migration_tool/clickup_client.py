"""Thin client for the ClickUp REST API v2.

Every request goes through the injected ``BackoffPolicy`` so that 429
responses are retried transparently (or turned into a ``RateLimitError`` when
the reset window is too far away).
"""

from __future__ import annotations

import json
import logging
from typing import Any, Final
from urllib.parse import quote

import requests

from .exceptions import ApiError, ParentValidationError, api_error
from .models import ClickUpTask
from .rate_limit import BackoffPolicy

logger: logging.Logger = logging.getLogger(__name__)

BASE_URL: Final[str] = "https://api.clickup.com/api/v2"
_TIMEOUT: Final[int] = 30
COMMENT_PAGE_SIZE: Final[int] = 25


class ClickUpClient:
    """Tasks, comments, attachments and custom fields on ClickUp.

    Authenticates with the raw API token in the ``Authorization`` header.
    """

    team_id: str
    list_id: str
    policy: BackoffPolicy
    session: requests.Session

    def __init__(
        self,
        api_token: str,
        team_id: str,
        list_id: str,
        *,
        policy: BackoffPolicy | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.team_id = team_id
        self.list_id = list_id
        self.policy = policy or BackoffPolicy()
        self.session = session or requests.Session()
        self.session.headers.update({"Authorization": api_token, "Content-Type": "application/json"})

    def _request(self, method: str, path: str, action: str, **kwargs: Any) -> Any:  # noqa: ANN401 - JSON payload
        url = f"{BASE_URL}{path}"
        try:
            response = self.policy.call(lambda: self.session.request(method, url, timeout=_TIMEOUT, **kwargs))
        except requests.RequestException as e:
            msg = f"Failed to {action}: {e}"
            raise ApiError(msg) from e
        if not response.ok:
            raise api_error(response, action)
        if not response.content:
            return None
        return response.json()

    # Tasks

    def create_task(self, payload: dict[str, Any], list_id: str | None = None) -> ClickUpTask:
        target = list_id or self.list_id
        logger.debug(f"Creating ClickUp task in list {target}: {json.dumps(payload)}")
        return ClickUpTask.from_api(self._request("POST", f"/list/{target}/task", "create ClickUp task", json=payload))

    def update_task(self, task_id: str, payload: dict[str, Any]) -> ClickUpTask:
        return ClickUpTask.from_api(self._request("PUT", f"/task/{task_id}", "update ClickUp task", json=payload))

    def get_task(self, task_id: str) -> ClickUpTask:
        return ClickUpTask.from_api(self._request("GET", f"/task/{task_id}", f"get ClickUp task {task_id}"))

    def list_tasks(
        self,
        list_id: str | None = None,
        *,
        include_closed: bool = True,
        subtasks: bool = True,
        custom_field_filter: tuple[str, str] | None = None,
    ) -> list[ClickUpTask]:
        """List all tasks of a list, following pagination.

        ``custom_field_filter`` is a ``(field_id, value)`` pair passed to
        ClickUp's ``custom_fields`` query parameter.
        """
        target = list_id or self.list_id
        params: dict[str, Any] = {
            "include_closed": str(include_closed).lower(),
            "subtasks": str(subtasks).lower(),
        }
        if custom_field_filter is not None:
            field_id, value = custom_field_filter
            params["custom_fields"] = json.dumps([{"field_id": field_id, "operator": "=", "value": value}])

        tasks: list[ClickUpTask] = []
        page = 0
        while True:
            data = self._request(
                "GET", f"/list/{target}/task", f"list tasks of list {target}", params={**params, "page": page}
            ) or {}
            tasks.extend(ClickUpTask.from_api(t) for t in data.get("tasks", []))
            if data.get("last_page", True) or not data.get("tasks"):
                return tasks
            page += 1

    def add_tag(self, task_id: str, tag: str) -> None:
        self._request("POST", f"/task/{task_id}/tag/{quote(tag, safe='')}", f"add tag {tag}")

    # Custom fields

    def set_custom_field(self, task_id: str, field_id: str, value: str | float | None) -> None:
        self._request("POST", f"/task/{task_id}/field/{field_id}", "set custom field", json={"value": value})

    # Comments and attachments

    def get_task_comments(self, task_id: str) -> list[str]:
        """Return the text of every comment on a task.

        ClickUp returns comments newest first, one page at a time. The next page
        is requested with the date and id of the oldest comment seen so far.
        """
        texts: list[str] = []
        params: dict[str, Any] = {}
        seen_ids: set[str] = set()
        while True:
            data = self._request("GET", f"/task/{task_id}/comment", "get task comments", params=params) or {}
            page: list[dict[str, Any]] = [c for c in data.get("comments", []) if str(c.get("id")) not in seen_ids]
            seen_ids.update(str(c.get("id")) for c in page)
            texts.extend(c.get("comment_text", "") for c in page)
            if len(page) < COMMENT_PAGE_SIZE:
                return texts
            oldest = page[-1]
            params = {"start": oldest.get("date"), "start_id": oldest.get("id")}

    def add_task_comment(self, task_id: str, text: str) -> None:
        self._request("POST", f"/task/{task_id}/comment", "add task comment", json={"comment_text": text})

    def upload_attachment(self, task_id: str, filename: str, content: bytes) -> None:
        self._request(
            "POST",
            f"/task/{task_id}/attachment",
            f"upload {filename} to ClickUp",
            files={"attachment": (filename, content)},
            headers={"Content-Type": None},
        )

    # Workspace metadata

    def get_team_members(self) -> list[dict[str, Any]]:
        data = self._request("GET", f"/team/{self.team_id}/user", "get team members") or {}
        members: list[dict[str, Any]] = data.get("members", [])
        return [m.get("user", m) for m in members]

    def get_list(self, list_id: str | None = None) -> dict[str, Any]:
        return self._request("GET", f"/list/{list_id or self.list_id}", "get list") or {}

    def get_space(self, space_id: str) -> dict[str, Any]:
        return self._request("GET", f"/space/{space_id}", "get space") or {}

    def validate_parent_task(self, parent_task_id: str, list_id: str | None = None) -> ClickUpTask:
        """Check that ``parent_task_id`` exists and lives in the list tasks are created in."""
        target = list_id or self.list_id
        try:
            task = self.get_task(parent_task_id)
        except ApiError as e:
            msg = f"Failed to validate parent task {parent_task_id}: {e}"
            raise ParentValidationError(msg) from e

        if task.list_id != target:
            msg = (
                f"Parent task ({parent_task_id}) is in list '{task.list_name}' ({task.list_id}) "
                f"but tasks are being created in list {target}. Parent and child tasks must be in the same list."
            )
            raise ParentValidationError(msg)
        return task

    def validate_connection(self) -> bool:
        try:
            self._request("GET", "/user", "get current user")
        except ApiError as e:
            logger.warning(f"ClickUp connection check failed: {e}")
            return False
        return True
