"""Shared fixtures for backup scheduler tests."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from backend.database.sql_handler import SQLHandler
from backend.services.backup_scheduler.delivery.base import EmailQueue, StorageUploader
from backend.services.backup_scheduler.delivery.dispatcher import DeliveryDispatcher
from backend.services.backup_scheduler.readers import EntityReaders
from backend.services.backup_scheduler.repository import ExecutionStore, ScheduleStore
from backend.services.backup_scheduler.retention import BackupObject
from models.sql.backup_scheduler import BackupSchedule


class FixedClock:
    """Clock returning a settable instant."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeReaders(EntityReaders):
    """In-memory entity readers."""

    def __init__(self, clubs=None, zones=None, event_types=None, fail_on: Optional[str] = None):
        self.clubs = list(clubs or [])
        self.zones = list(zones or [])
        self.event_types = list(event_types or [])
        self.fail_on = fail_on
        self.calls: List[str] = []
        self.date_ranges: List[Any] = []

    def _read(self, name: str, records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        self.calls.append(name)
        if self.fail_on == name:
            raise RuntimeError(f"{name} collection unavailable")
        return list(records)

    async def list_clubs(self):
        return self._read("clubs", self.clubs)

    async def list_zones(self):
        return self._read("zones", self.zones)

    async def list_event_types(self):
        return self._read("event_types", self.event_types)

    async def list_events(self, date_range=None):
        self.date_ranges.append(date_range)
        return self._read("events", [])


class FakeEmailQueue(EmailQueue):
    """Records sent emails instead of sending them."""

    def __init__(self, result: Optional[Dict[str, Any]] = None, delay: float = 0.0):
        self.result = result if result is not None else {"success": True}
        self.delay = delay
        self.sent: List[Dict[str, Any]] = []

    async def send_backup(self, *, recipients, subject, body, attachment):
        if self.delay:
            await asyncio.sleep(self.delay)
        self.sent.append(
            {"recipients": list(recipients), "subject": subject, "body": body, "attachment": attachment}
        )
        return self.result


class FakeUploader(StorageUploader):
    """In-memory object storage."""

    def __init__(
        self,
        *,
        now: Optional[datetime] = None,
        existing: Optional[List[BackupObject]] = None,
        fail_upload: bool = False,
        fail_list: bool = False,
    ):
        self.now = now or datetime(2024, 1, 1, tzinfo=timezone.utc)
        self.objects: List[BackupObject] = list(existing or [])
        self.fail_upload = fail_upload
        self.fail_list = fail_list
        self.uploads: List[BackupObject] = []
        self.deleted: List[BackupObject] = []
        self.data: Dict[str, bytes] = {}

    def upload_backup(self, *, path, data, schedule_id=None):
        if self.fail_upload:
            raise RuntimeError("bucket unavailable")
        name = path.lstrip("/")
        obj = BackupObject(id=name, name=name, created_at=self.now, size=len(data), schedule_id=schedule_id)
        self.uploads.append(obj)
        self.data[name] = data
        self.objects.append(obj)
        return obj

    def list_backups(self, *, prefix):
        if self.fail_list:
            raise RuntimeError("listing failed")
        return [o for o in self.objects if o.name.startswith(prefix.lstrip("/"))]

    def delete_backups(self, backups):
        self.deleted.extend(backups)
        ids = {b.id for b in backups}
        self.objects = [o for o in self.objects if o.id not in ids]


CLUBS = [{"id": "c1", "name": "North"}, {"id": "c2", "name": "South"}, {"id": "c3", "name": "East"}]
ZONES = [{"id": "z1", "name": "Alpine"}, {"id": "z2", "name": "Coastal"}]


@pytest.fixture
def now():
    return datetime(2024, 1, 1, 3, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(now):
    return FixedClock(now)


@pytest.fixture
async def handler(tmp_path):
    """SQLite database in a temporary file."""
    db_handler = SQLHandler(f"sqlite+aiosqlite:///{tmp_path / 'backup-scheduler.db'}")
    await db_handler.create_tables()
    yield db_handler
    await db_handler.dispose()


@pytest.fixture
def schedule_store(handler):
    return ScheduleStore(handler)


@pytest.fixture
def execution_store(handler):
    return ExecutionStore(handler)


@pytest.fixture
def readers():
    return FakeReaders(clubs=CLUBS, zones=ZONES)


@pytest.fixture
def email_queue():
    return FakeEmailQueue()


@pytest.fixture
def uploader(now):
    return FakeUploader(now=now)


@pytest.fixture
def dispatcher(email_queue, uploader, clock):
    return DeliveryDispatcher(
        email_queue,
        uploader_factory=lambda provider: uploader,
        email_timeout=5,
        storage_timeout=5,
        clock=clock,
    )


def build_schedule(**overrides) -> BackupSchedule:
    """Build a transient schedule with storage delivery of clubs and zones."""
    values = {
        "id": "sched-1",
        "name": "Nightly Export",
        "description": "Clubs and zones",
        "created_by": "admin",
        "recurrence": {"frequency": "daily", "time": "02:00"},
        "export_config": {"includeClubs": True, "includeZones": True, "includeManifest": True},
        "delivery_config": {"method": "storage", "storage": {"provider": "firebase", "path": "/backups"}},
        "is_active": True,
        "total_runs": 0,
        "successful_runs": 0,
        "failed_runs": 0,
        "last_run": None,
        "next_run": None,
    }
    values.update(overrides)
    return BackupSchedule(**values)


@pytest.fixture
def make_schedule():
    return build_schedule


@pytest.fixture
def insert_schedule(schedule_store):
    """Persist a schedule built from overrides."""

    async def _insert(**overrides) -> BackupSchedule:
        return await schedule_store.insert(build_schedule(**overrides))

    return _insert


@pytest.fixture
def make_readers():
    return FakeReaders


@pytest.fixture
def make_uploader():
    return FakeUploader


@pytest.fixture
def make_email_queue():
    return FakeEmailQueue
