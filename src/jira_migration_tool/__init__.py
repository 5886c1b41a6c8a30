"""
Jira Migration Tool

Migrates Jira issues to Shortcut stories/epics or ClickUp tasks. Re-running a
migration updates the records created earlier and only adds the comments and
attachments that are still missing.
"""

from __future__ import annotations

from .adf import convert_document
from .cli import main
from .config import MigrationConfig, load_config, validate_config
from .exceptions import ApiError, ConfigurationError, MigrationError, NotFoundError, RateLimitError
from .migrator import ClickUpMigrator, ShortcutMigrator, create_migrator
from .models import MigrationResult
from .orchestrator import BulkMigration, BulkReport
from .rate_limit import BackoffPolicy
from .utils import setup_logging

# Package version
__version__ = "0.1.0"

__all__ = [
    "ApiError",
    "BackoffPolicy",
    "BulkMigration",
    "BulkReport",
    "ClickUpMigrator",
    "ConfigurationError",
    "MigrationConfig",
    "MigrationError",
    "MigrationResult",
    "NotFoundError",
    "RateLimitError",
    "ShortcutMigrator",
    "convert_document",
    "create_migrator",
    "load_config",
    "main",
    "setup_logging",
    "validate_config",
]
