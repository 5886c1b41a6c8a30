"""
Utility functions for the Jira migration tool.
"""

from __future__ import annotations

import datetime as dt
import logging
import os
import re
import subprocess
from pathlib import Path
from subprocess import CompletedProcess


class PassError(Exception):
    """Raised when a secret cannot be read from the pass utility."""


def setup_logging(*, verbose: bool = False) -> None:
    """Configure logging for the migration process."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(), logging.FileHandler("migration.log", mode="a")],
    )


def parse_timestamp(iso_timestamp: str) -> dt.datetime | None:
    """Parse a Jira timestamp such as "2024-01-15T10:30:45.123+0000"."""
    if not iso_timestamp:
        return None
    # Jira omits the colon in UTC offsets
    normalized = re.sub(r"([+-]\d{2})(\d{2})$", r"\1:\2", iso_timestamp.strip())
    try:
        return dt.datetime.fromisoformat(normalized)
    except ValueError:
        return None


def format_timestamp(iso_timestamp: str, *, local: bool = False) -> str:
    """Format ISO 8601 timestamp to human-readable format.

    Args:
        iso_timestamp: ISO 8601 formatted timestamp string
        local: Convert to the local timezone of the machine running the migration

    Returns:
        Formatted timestamp (e.g., "2024-01-15 10:30:45Z").
        Returns original value if parsing fails.
    """
    parsed = parse_timestamp(iso_timestamp)
    if parsed is None:
        return iso_timestamp
    if local and parsed.tzinfo is not None:
        parsed = parsed.astimezone()
    return parsed.isoformat(sep=" ", timespec="seconds").replace("+00:00", "Z")


def read_keys_file(path: str | Path) -> list[str]:
    """Read Jira keys from a file, one per line. Blank lines and lines starting with '#' are skipped."""
    lines = Path(path).read_text(encoding="utf-8").splitlines()
    return [stripped for line in lines if (stripped := line.strip()) and not stripped.startswith("#")]


def get_pass_value(pass_path: str) -> str:
    """Get value from pass utility at specified path."""
    if not re.fullmatch(r"(?:[A-Za-z0-9_.-]+)(?:/[A-Za-z0-9_.-]+)*", pass_path):
        msg = f"Invalid pass path: {pass_path}"
        raise ValueError(msg)

    try:
        result: CompletedProcess[str] = subprocess.run(  # noqa: S603
            ["pass", pass_path], capture_output=True, text=True, check=True, env=os.environ.copy()
        )
    except FileNotFoundError as e:
        msg = "The pass utility is not installed"
        raise PassError(msg) from e
    except subprocess.CalledProcessError as e:
        msg = (
            f"Failed to get value from pass at '{pass_path}'.\n"
            f"Error: {e.stderr.strip()}\n"
            f"Return code: {e.returncode}"
        )
        raise PassError(msg) from e

    return result.stdout.strip()
