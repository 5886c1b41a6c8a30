"""Configuration loaded from environment variables and an optional ``.env`` file.

API tokens can also be read from the ``pass`` password store: when
``<NAME>_PASS_PATH`` is set and ``<NAME>`` is not, the token is read from that
pass entry.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Final

from dotenv import load_dotenv

from .exceptions import ConfigurationError
from .utils import PassError, get_pass_value

if TYPE_CHECKING:
    from collections.abc import Mapping

logger: logging.Logger = logging.getLogger(__name__)

TARGET_PLATFORMS: Final[tuple[str, ...]] = ("shortcut", "clickup")
DEFAULT_BUG_CUSTOM_ITEM_ID: Final[int] = 1001
_TRUE_VALUES: Final[frozenset[str]] = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES: Final[frozenset[str]] = frozenset({"0", "false", "no", "off"})


@dataclass
class MigrationConfig:
    """Settings for one migration run."""

    jira_base_url: str = ""
    jira_email: str = ""
    jira_api_token: str = ""
    target_platform: str = "shortcut"

    shortcut_api_token: str = ""
    shortcut_team_id: str | None = None
    shortcut_project_id: int | None = None
    shortcut_iteration_id: int | None = None

    clickup_api_token: str = ""
    clickup_team_id: str = ""
    clickup_space_id: str = ""
    clickup_list_id: str = ""
    clickup_external_id_field_id: str | None = None
    clickup_sync_comments: bool = True
    clickup_bug_custom_item_id: int = DEFAULT_BUG_CUSTOM_ITEM_ID

    # Jira status name -> destination status (ClickUp) or workflow state name (Shortcut)
    status_mapping: dict[str, str] = field(default_factory=dict)


def _secret(env: Mapping[str, str], name: str) -> str:
    value = env.get(name, "").strip()
    if value:
        return value
    pass_path = env.get(f"{name}_PASS_PATH", "").strip()
    if not pass_path:
        return ""
    try:
        return get_pass_value(pass_path)
    except (PassError, ValueError) as e:
        msg = f"Could not read {name} from pass at '{pass_path}': {e}"
        raise ConfigurationError(msg) from e


def _optional_int(env: Mapping[str, str], name: str) -> int | None:
    raw = env.get(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as e:
        msg = f"{name} must be an integer, got '{raw}'"
        raise ConfigurationError(msg) from e


def _flag(env: Mapping[str, str], name: str, *, default: bool) -> bool:
    raw = env.get(name, "").strip().lower()
    if not raw:
        return default
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    msg = f"{name} must be true or false, got '{raw}'"
    raise ConfigurationError(msg)


def parse_status_mapping(raw: str) -> dict[str, str]:
    """Parse the STATUS_MAPPING JSON object, e.g. '{"Waiting": "blocked"}'."""
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        msg = f"STATUS_MAPPING is not valid JSON: {e}"
        raise ConfigurationError(msg) from e
    if not isinstance(data, dict) or not all(isinstance(v, str) for v in data.values()):
        msg = "STATUS_MAPPING must be a JSON object mapping status names to strings"
        raise ConfigurationError(msg)
    return {str(k): v for k, v in data.items()}


def load_config(env_file: str | Path | None = None, env: Mapping[str, str] | None = None) -> MigrationConfig:
    """Build the configuration from the environment.

    Args:
        env_file: ``.env`` file to load first; defaults to ``.env`` in the working directory
        env: Mapping to read instead of ``os.environ`` (the ``.env`` file is not loaded then)

    Raises:
        ConfigurationError: If a value is present but malformed
    """
    if env is None:
        dotenv_path = Path(env_file) if env_file else Path.cwd() / ".env"
        if dotenv_path.exists():
            _ = load_dotenv(dotenv_path)
            logger.debug(f"Loaded environment from {dotenv_path}")
        env = os.environ

    return MigrationConfig(
        jira_base_url=env.get("JIRA_BASE_URL", "").strip().rstrip("/"),
        jira_email=env.get("JIRA_EMAIL", "").strip(),
        jira_api_token=_secret(env, "JIRA_API_TOKEN"),
        target_platform=(env.get("TARGET_PLATFORM", "").strip().lower() or "shortcut"),
        shortcut_api_token=_secret(env, "SHORTCUT_API_TOKEN"),
        shortcut_team_id=env.get("DEFAULT_SHORTCUT_TEAM_ID", "").strip() or None,
        shortcut_project_id=_optional_int(env, "DEFAULT_SHORTCUT_PROJECT_ID"),
        shortcut_iteration_id=_optional_int(env, "DEFAULT_SHORTCUT_ITERATION_ID"),
        clickup_api_token=_secret(env, "CLICKUP_API_TOKEN"),
        clickup_team_id=env.get("CLICKUP_TEAM_ID", "").strip(),
        clickup_space_id=env.get("CLICKUP_SPACE_ID", "").strip(),
        clickup_list_id=env.get("CLICKUP_LIST_ID", "").strip(),
        clickup_external_id_field_id=env.get("CLICKUP_EXTERNAL_ID_FIELD_ID", "").strip() or None,
        clickup_sync_comments=_flag(env, "CLICKUP_SYNC_COMMENTS", default=True),
        clickup_bug_custom_item_id=_optional_int(env, "CLICKUP_BUG_CUSTOM_ITEM_ID") or DEFAULT_BUG_CUSTOM_ITEM_ID,
        status_mapping=parse_status_mapping(env.get("STATUS_MAPPING", "")),
    )


def validate_config(config: MigrationConfig) -> list[str]:
    """Return a human-readable message for every missing or invalid setting."""
    errors: list[str] = []
    if not config.jira_base_url:
        errors.append("JIRA_BASE_URL is required")
    if not config.jira_email:
        errors.append("JIRA_EMAIL is required")
    if not config.jira_api_token:
        errors.append("JIRA_API_TOKEN is required")

    if config.target_platform not in TARGET_PLATFORMS:
        errors.append(f"TARGET_PLATFORM must be one of {', '.join(TARGET_PLATFORMS)}, got '{config.target_platform}'")
    elif config.target_platform == "shortcut":
        if not config.shortcut_api_token:
            errors.append("SHORTCUT_API_TOKEN is required for Shortcut platform")
    else:
        if not config.clickup_api_token:
            errors.append("CLICKUP_API_TOKEN is required for ClickUp platform")
        if not config.clickup_team_id:
            errors.append("CLICKUP_TEAM_ID is required for ClickUp platform")
        if not config.clickup_space_id:
            errors.append("CLICKUP_SPACE_ID is required for ClickUp platform")
        if not config.clickup_list_id:
            errors.append("CLICKUP_LIST_ID is required for ClickUp platform")
    return errors


def require_valid_config(config: MigrationConfig) -> MigrationConfig:
    errors = validate_config(config)
    if errors:
        msg = "Configuration errors:\n" + "\n".join(f"  - {error}" for error in errors)
        raise ConfigurationError(msg)
    return config


def create_env_file(directory: str | Path | None = None) -> bool:
    """Copy ``.env.example`` to ``.env`` unless ``.env`` already exists.

    Returns:
        True if a new ``.env`` file was written
    """
    base = Path(directory) if directory else Path.cwd()
    env_path = base / ".env"
    example_path = base / ".env.example"
    if env_path.exists():
        logger.info(f"{env_path} already exists, leaving it unchanged")
        return False
    if not example_path.exists():
        logger.warning(f"No {example_path} found to create {env_path} from")
        return False
    _ = shutil.copyfile(example_path, env_path)
    logger.info(f"Created {env_path} from {example_path}")
    return True
