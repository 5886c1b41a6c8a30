"""Additive synchronization of attachments and comments onto an existing destination record.

Both synchronizers only ever add: an attachment is uploaded when no file with
the same name exists on the destination record, and a comment is posted when
no destination comment carries its marker. Nothing is updated or deleted.

A failure on one item is logged and counted; the remaining items are still
processed and the failure never reaches the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .exceptions import MigrationError, SubResourceError
from .formatters import extract_comment_ids, format_comment

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from .models import AttachmentInfo, JiraComment

logger: logging.Logger = logging.getLogger(__name__)


@dataclass
class SyncStats:
    """Counts collected while synchronizing one kind of sub-resource."""

    added: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[SubResourceError] = field(default_factory=list)

    def record_failure(self, error: SubResourceError) -> None:
        logger.warning(str(error))
        self.failed += 1
        self.errors.append(error)


class AttachmentSynchronizer:
    """Copies Jira attachments that are missing on the destination record.

    Args:
        download: Fetches the bytes behind an attachment's content URL
        upload: Stores ``(record_id, attachment, content)`` on the destination
    """

    _download: Callable[[str], bytes]
    _upload: Callable[[str, AttachmentInfo, bytes], None]

    def __init__(
        self,
        download: Callable[[str], bytes],
        upload: Callable[[str, AttachmentInfo, bytes], None],
    ) -> None:
        self._download = download
        self._upload = upload

    def sync(self, record_id: str, attachments: Sequence[AttachmentInfo], existing_titles: Iterable[str]) -> SyncStats:
        stats = SyncStats()
        existing = set(existing_titles)
        for attachment in attachments:
            if attachment.filename in existing:
                logger.debug(f"Attachment {attachment.filename} already present on {record_id}")
                stats.skipped += 1
                continue
            try:
                content = self._download(attachment.content_url)
                self._upload(record_id, attachment, content)
            except MigrationError as e:
                stats.record_failure(
                    SubResourceError(f"Failed to upload attachment {attachment.filename} to {record_id}: {e}")
                )
                continue
            logger.info(f"Uploaded attachment {attachment.filename} to {record_id}")
            existing.add(attachment.filename)
            stats.added += 1
        return stats


class CommentSynchronizer:
    """Posts Jira comments whose marker is not yet present on the destination record.

    Args:
        post: Creates a comment with the given text on the destination record
    """

    _post: Callable[[str, str], None]

    def __init__(self, post: Callable[[str, str], None]) -> None:
        self._post = post

    def sync(self, record_id: str, comments: Sequence[JiraComment], existing_bodies: Iterable[str]) -> SyncStats:
        stats = SyncStats()
        seen = extract_comment_ids(existing_bodies)
        for comment in comments:
            if comment.id in seen:
                stats.skipped += 1
                continue
            try:
                self._post(record_id, format_comment(comment))
            except MigrationError as e:
                stats.record_failure(SubResourceError(f"Failed to add comment {comment.id} to {record_id}: {e}"))
                continue
            seen.add(comment.id)
            stats.added += 1

        if stats.added:
            logger.info(f"Added {stats.added} new comment(s) to {record_id}")
        else:
            logger.info(f"No new comments to add to {record_id}")
        return stats
