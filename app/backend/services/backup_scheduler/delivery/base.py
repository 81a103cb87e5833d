"""Delivery collaborator interfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from backend.services.backup_scheduler.retention import BackupObject


@dataclass(frozen=True)
class EmailAttachment:
    """In-memory email attachment."""

    filename: str
    content: bytes
    content_type: str = "application/zip"


class EmailQueue(ABC):
    """Abstract outgoing email queue."""

    @abstractmethod
    async def send_backup(
        self,
        *,
        recipients: Sequence[str],
        subject: str,
        body: str,
        attachment: EmailAttachment,
    ) -> Dict[str, Any]:
        """Send a backup archive by email.

        Args:
            recipients: Recipient addresses.
            subject: Email subject.
            body: Plain text body.
            attachment: Archive attachment.

        Returns:
            Dict[str, Any]: ``{"success": bool, "error": str}``.
        """


class StorageUploader(ABC):
    """Abstract object storage used as a backup destination.

    Methods are blocking; callers run them in a worker thread.
    """

    @abstractmethod
    def upload_backup(self, *, path: str, data: bytes, schedule_id: Optional[str] = None) -> BackupObject:
        """Upload an archive.

        Args:
            path: Destination object path.
            data: Archive bytes.
            schedule_id: Owning schedule, stored with the object so retention
                only ever touches that schedule's backups.

        Returns:
            BackupObject: Metadata about the uploaded object.
        """

    @abstractmethod
    def list_backups(self, *, prefix: str) -> List[BackupObject]:
        """List stored backups.

        Args:
            prefix: Object path prefix to filter backups.

        Returns:
            List[BackupObject]: Matching backups.
        """

    @abstractmethod
    def delete_backups(self, backups: List[BackupObject]) -> None:
        """Delete the given backups.

        Args:
            backups: Backups to delete.
        """
