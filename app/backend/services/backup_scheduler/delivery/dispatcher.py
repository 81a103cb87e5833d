"""Deliver a backup archive through the channels a schedule selects.

Channels (email, storage) run concurrently and are joined before the delivery
policy is applied:

| method  | succeeds when               |
|---------|-----------------------------|
| email   | email succeeded             |
| storage | storage succeeded           |
| both    | at least one succeeded      |

Every collaborator call is bounded by a timeout; a timeout is a channel failure.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from fastapi.concurrency import run_in_threadpool

from backend.services.backup_scheduler.delivery.base import EmailAttachment, EmailQueue, StorageUploader
from backend.services.backup_scheduler.delivery.storage.factory import build_storage_uploader
from backend.services.backup_scheduler.exceptions import AllDeliveryFailedError, DeliveryChannelError
from backend.services.backup_scheduler.recurrence import utcnow
from backend.services.backup_scheduler.retention import BackupObject, plan_retention
from backend.services.backup_scheduler.schemas import (
    DeliveryConfig,
    EmailDeliveryConfig,
    StorageDeliveryConfig,
)
from config.settings import settings
from models.sql.backup_scheduler import BackupExecution, BackupSchedule


logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "Automated Backup - {date}"

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9]")
_REPEATED_SLASHES = re.compile(r"/+")


@dataclass
class ChannelResult:
    """Outcome of one delivery channel."""

    channel: str
    success: bool
    error: Optional[str] = None
    storage_path: Optional[str] = None


@dataclass
class DeliveryOutcome:
    """Joined channel results for one archive."""

    method: str
    results: List[ChannelResult] = field(default_factory=list)

    def result_for(self, channel: str) -> Optional[ChannelResult]:
        return next((r for r in self.results if r.channel == channel), None)

    @property
    def errors(self) -> List[str]:
        return [r.error for r in self.results if not r.success and r.error]

    @property
    def success(self) -> bool:
        email = self.result_for("email")
        storage = self.result_for("storage")
        return delivery_succeeded(
            self.method,
            email_ok=bool(email and email.success),
            storage_ok=bool(storage and storage.success),
        )


def delivery_succeeded(method: str, email_ok: bool, storage_ok: bool) -> bool:
    """Apply the delivery policy.

    Args:
        method: email|storage|both.
        email_ok: Whether the email channel succeeded.
        storage_ok: Whether the storage channel succeeded.

    Returns:
        bool: True when the archive counts as delivered.
    """

    if method == "email":
        return email_ok
    if method == "storage":
        return storage_ok
    if method == "both":
        return email_ok or storage_ok
    return False


def sanitize_schedule_name(name: str) -> str:
    """Replace every non-alphanumeric character with '-'."""

    return _UNSAFE_NAME_CHARS.sub("-", name or "")


def backup_filename(schedule_name: str, day: str) -> str:
    """Return `backup-<sanitized name>-<YYYY-MM-DD>.zip`."""

    return f"backup-{sanitize_schedule_name(schedule_name)}-{day}.zip"


def build_storage_path(base_path: str, schedule_name: str, day: str) -> str:
    """Return the storage destination for an archive, with repeated slashes collapsed."""

    return _REPEATED_SLASHES.sub("/", f"{base_path}/{backup_filename(schedule_name, day)}")


def owned_backups(backups: List[BackupObject], base_path: str, schedule: BackupSchedule) -> List[BackupObject]:
    """Keep only the backups this schedule wrote under `base_path`.

    The object name must be exactly `<base_path>/backup-<sanitized name>-<YYYY-MM-DD>.zip`
    and the object must carry this schedule's id. Names alone are ambiguous:
    "Nightly" is a prefix of "Nightly Export", and "A B" and "A-B" sanitize alike.
    Untagged objects are never claimed.
    """

    directory = _REPEATED_SLASHES.sub("/", f"{base_path}/").lstrip("/")
    pattern = re.compile(
        re.escape(directory)
        + re.escape(f"backup-{sanitize_schedule_name(schedule.name)}-")
        + r"\d{4}-\d{2}-\d{2}\.zip"
    )
    return [
        b for b in backups
        if b.schedule_id == schedule.id and pattern.fullmatch(b.name.lstrip("/"))
    ]


def valid_recipients(recipients: List[str]) -> List[str]:
    """Keep non-blank recipients that contain '@'."""

    return [r.strip() for r in recipients or [] if r and r.strip() and "@" in r]


class DeliveryDispatcher:
    """Run the delivery channels for an archive and apply the delivery policy."""

    def __init__(
        self,
        email_queue: EmailQueue,
        *,
        uploader_factory: Callable[[str], StorageUploader] = build_storage_uploader,
        email_timeout: Optional[float] = None,
        storage_timeout: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the dispatcher.

        Args:
            email_queue: Outgoing email queue.
            uploader_factory: Resolves a provider identifier to an uploader.
            email_timeout: Email send timeout in seconds.
            storage_timeout: Storage call timeout in seconds.
            clock: Source of the current time.
        """

        self.email_queue = email_queue
        self.uploader_factory = uploader_factory
        self.email_timeout = email_timeout if email_timeout is not None else settings.EMAIL_DELIVERY_TIMEOUT_SECONDS
        self.storage_timeout = (
            storage_timeout if storage_timeout is not None else settings.STORAGE_UPLOAD_TIMEOUT_SECONDS
        )
        self.clock = clock

    async def deliver(
        self,
        archive: bytes,
        schedule: BackupSchedule,
        execution: BackupExecution,
    ) -> DeliveryOutcome:
        """Deliver an archive and record per-channel status on the execution.

        Args:
            archive: ZIP archive bytes.
            schedule: Schedule being executed.
            execution: In-flight execution; `delivery_status` and `storage_path`
                are updated in place.

        Returns:
            DeliveryOutcome: Channel results.

        Raises:
            AllDeliveryFailedError: When the delivery policy is not satisfied.
        """

        config = DeliveryConfig.model_validate(schedule.delivery_config or {})
        day = self.clock().date().isoformat()

        channels = []
        status: Dict[str, str] = {}
        if config.method in ("email", "both"):
            status["email"] = "pending"
            channels.append(self._deliver_email(archive, schedule, config.email, day))
        if config.method in ("storage", "both"):
            status["storage"] = "pending"
            channels.append(self._deliver_storage(archive, schedule, config.storage, day))
        execution.delivery_status = dict(status)

        outcome = DeliveryOutcome(method=config.method, results=list(await asyncio.gather(*channels)))

        for result in outcome.results:
            if result.channel == "email":
                status["email"] = "sent" if result.success else "failed"
            else:
                status["storage"] = "uploaded" if result.success else "failed"
                if result.success:
                    execution.storage_path = result.storage_path
        execution.delivery_status = dict(status)

        if not outcome.success:
            raise AllDeliveryFailedError(outcome.errors)

        if outcome.errors:
            logger.warning(
                "Partial delivery success schedule=%s errors=%s",
                schedule.name,
                "; ".join(outcome.errors),
            )

        return outcome

    async def _deliver_email(
        self,
        archive: bytes,
        schedule: BackupSchedule,
        email_config: Optional[EmailDeliveryConfig],
        day: str,
    ) -> ChannelResult:
        try:
            await self._send_email(archive, schedule, email_config, day)
        except asyncio.TimeoutError:
            logger.error("Backup email timed out schedule=%s timeout=%s", schedule.name, self.email_timeout)
            return ChannelResult(
                "email", False, error=f"Email delivery failed: timed out after {self.email_timeout:g}s"
            )
        except Exception as exc:
            logger.error("Backup email failed schedule=%s error=%s", schedule.name, exc)
            return ChannelResult("email", False, error=f"Email delivery failed: {exc}")

        return ChannelResult("email", True)

    async def _send_email(
        self,
        archive: bytes,
        schedule: BackupSchedule,
        email_config: Optional[EmailDeliveryConfig],
        day: str,
    ) -> None:
        if email_config is None:
            raise DeliveryChannelError("Email configuration not found")

        recipients = valid_recipients(email_config.recipients)
        if not recipients:
            raise DeliveryChannelError(
                "No valid email recipients found. Please configure email recipients for this backup schedule."
            )

        size_mb = len(archive) / (1024 * 1024)
        if size_mb > email_config.max_file_size:
            raise DeliveryChannelError(
                f"Backup file too large for email ({size_mb:.1f}MB > {email_config.max_file_size:g}MB)"
            )

        subject = (email_config.subject or DEFAULT_SUBJECT).replace("{date}", day)
        filename = backup_filename(schedule.name, day)
        body = (
            f"Attached is the automated backup for schedule \"{schedule.name}\".\n\n"
            f"Date: {day}\n"
            f"File: {filename}\n"
            f"Size: {size_mb:.2f} MB\n"
        )

        result = await asyncio.wait_for(
            self.email_queue.send_backup(
                recipients=recipients,
                subject=subject,
                body=body,
                attachment=EmailAttachment(filename=filename, content=archive),
            ),
            timeout=self.email_timeout,
        )
        if not result.get("success"):
            raise DeliveryChannelError(str(result.get("error") or "Unknown error"))

        logger.info("Backup email queued schedule=%s recipients=%s size_mb=%.2f", schedule.name, len(recipients), size_mb)

    async def _deliver_storage(
        self,
        archive: bytes,
        schedule: BackupSchedule,
        storage_config: Optional[StorageDeliveryConfig],
        day: str,
    ) -> ChannelResult:
        try:
            path = await self._upload(archive, schedule, storage_config, day)
        except asyncio.TimeoutError:
            logger.error("Backup upload timed out schedule=%s timeout=%s", schedule.name, self.storage_timeout)
            return ChannelResult(
                "storage", False, error=f"Storage delivery failed: timed out after {self.storage_timeout:g}s"
            )
        except Exception as exc:
            logger.error("Backup upload failed schedule=%s error=%s", schedule.name, exc)
            return ChannelResult("storage", False, error=f"Storage delivery failed: {exc}")

        return ChannelResult("storage", True, storage_path=path)

    async def _upload(
        self,
        archive: bytes,
        schedule: BackupSchedule,
        storage_config: Optional[StorageDeliveryConfig],
        day: str,
    ) -> str:
        """Upload the archive, then apply the schedule's retention.

        The blocking upload runs in a worker thread. When the timeout fires the
        channel is reported failed, but the thread is not interrupted: the
        object may still land in the bucket. The uploader's own HTTP timeout
        uses the same limit, so the worker gives up shortly after.
        """

        if storage_config is None:
            raise DeliveryChannelError("Storage configuration not found")

        uploader = self.uploader_factory(storage_config.provider)
        path = build_storage_path(storage_config.path, schedule.name, day)

        uploaded = await asyncio.wait_for(
            run_in_threadpool(uploader.upload_backup, path=path, data=archive, schedule_id=schedule.id),
            timeout=self.storage_timeout,
        )
        logger.info("Backup uploaded schedule=%s provider=%s path=%s", schedule.name, storage_config.provider, path)

        if storage_config.retention_days:
            try:
                await self._apply_retention(uploader, storage_config, schedule, uploaded.id)
            except Exception:
                logger.exception("Retention cleanup failed schedule=%s", schedule.name)

        return path

    async def _apply_retention(
        self,
        uploader: StorageUploader,
        storage_config: StorageDeliveryConfig,
        schedule: BackupSchedule,
        uploaded_id: str,
    ) -> None:
        prefix = _REPEATED_SLASHES.sub("/", f"{storage_config.path}/backup-{sanitize_schedule_name(schedule.name)}-")
        existing = await asyncio.wait_for(
            run_in_threadpool(uploader.list_backups, prefix=prefix),
            timeout=self.storage_timeout,
        )
        owned = owned_backups(existing, storage_config.path, schedule)
        _, delete = plan_retention(
            owned,
            int(storage_config.retention_days),
            now=self.clock(),
            protect={uploaded_id},
        )
        if delete:
            await asyncio.wait_for(
                run_in_threadpool(uploader.delete_backups, delete),
                timeout=self.storage_timeout,
            )
            logger.info("Retention removed backups schedule=%s count=%s", schedule.name, len(delete))
