"""Database tests for the schedule and execution stores."""

from datetime import datetime, timedelta, timezone

from models.sql.backup_scheduler import BackupExecution


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def make_execution(schedule_id: str, start: datetime, status: str = "completed", **overrides) -> BackupExecution:
    values = dict(
        schedule_id=schedule_id,
        schedule_name="Nightly Export",
        start_time=start,
        end_time=start + timedelta(seconds=2),
        status=status,
        export_size=1024,
        delivery_status={"storage": "uploaded"},
        exported_records={"clubs": 3},
        execution_duration_ms=2000,
        triggered_by="schedule",
    )
    values.update(overrides)
    return BackupExecution(**values)


class TestScheduleStore:
    async def test_insert_and_get(self, schedule_store, insert_schedule):
        created = await insert_schedule(next_run=utc(2024, 1, 1, 2, 0))

        loaded = await schedule_store.get_schedule(created.id)

        assert loaded.name == "Nightly Export"
        assert loaded.recurrence == {"frequency": "daily", "time": "02:00"}
        assert loaded.next_run == utc(2024, 1, 1, 2, 0)
        assert loaded.next_run.tzinfo is not None
        assert loaded.created_at is not None

    async def test_get_missing(self, schedule_store):
        assert await schedule_store.get_schedule("missing") is None

    async def test_list_due_filters_and_orders(self, schedule_store, insert_schedule):
        now = utc(2024, 1, 1, 3, 0)
        await insert_schedule(id="late", next_run=utc(2024, 1, 1, 2, 0))
        await insert_schedule(id="early", next_run=utc(2024, 1, 1, 1, 0))
        await insert_schedule(id="exact", next_run=now)
        await insert_schedule(id="future", next_run=utc(2024, 1, 1, 4, 0))
        await insert_schedule(id="inactive", is_active=False, next_run=utc(2024, 1, 1, 0, 0))
        await insert_schedule(id="unscheduled", next_run=None)

        due = await schedule_store.list_due(now)

        assert [s.id for s in due] == ["early", "late", "exact"]

        limited = await schedule_store.list_due(now, limit=1)
        assert [s.id for s in limited] == ["early"]

    async def test_update_fields(self, schedule_store, insert_schedule):
        created = await insert_schedule()

        updated = await schedule_store.update_fields(created.id, name="Renamed", is_active=False, next_run=None)

        assert updated.name == "Renamed"
        assert updated.is_active is False
        assert (await schedule_store.get_schedule(created.id)).name == "Renamed"
        assert await schedule_store.update_fields("missing", name="x") is None

    async def test_record_run_updates_counters(self, schedule_store, insert_schedule):
        created = await insert_schedule()

        await schedule_store.record_run(
            created.id, status="completed", started_at=utc(2024, 1, 1, 2, 0), next_run=utc(2024, 1, 2, 2, 0)
        )
        await schedule_store.record_run(
            created.id, status="failed", started_at=utc(2024, 1, 2, 2, 0), next_run=utc(2024, 1, 3, 2, 0)
        )

        loaded = await schedule_store.get_schedule(created.id)
        assert loaded.total_runs == 2
        assert loaded.successful_runs == 1
        assert loaded.failed_runs == 1
        assert loaded.last_run == utc(2024, 1, 2, 2, 0)
        assert loaded.next_run == utc(2024, 1, 3, 2, 0)

    async def test_delete(self, schedule_store, insert_schedule):
        created = await insert_schedule()

        assert await schedule_store.delete(created.id) is True
        assert await schedule_store.delete(created.id) is False
        assert await schedule_store.get_schedule(created.id) is None

    async def test_counts_and_earliest_next_run(self, schedule_store, insert_schedule):
        await insert_schedule(id="a", next_run=utc(2024, 1, 5, 2, 0))
        await insert_schedule(id="b", next_run=utc(2024, 1, 3, 2, 0))
        await insert_schedule(id="c", is_active=False, next_run=utc(2024, 1, 1, 2, 0))

        assert await schedule_store.count_schedules() == 3
        assert await schedule_store.count_schedules(active_only=True) == 2
        assert await schedule_store.earliest_next_run() == utc(2024, 1, 3, 2, 0)

    async def test_earliest_next_run_without_schedules(self, schedule_store):
        assert await schedule_store.earliest_next_run() is None


class TestExecutionStore:
    async def test_append_and_get(self, execution_store):
        appended = await execution_store.append(make_execution("sched-1", utc(2024, 1, 1, 2, 0)))

        loaded = await execution_store.get_execution(appended.id)

        assert loaded.status == "completed"
        assert loaded.delivery_status == {"storage": "uploaded"}
        assert loaded.exported_records == {"clubs": 3}
        assert loaded.start_time == utc(2024, 1, 1, 2, 0)

    async def test_list_newest_first_with_filter_and_limit(self, execution_store):
        for day in range(1, 6):
            await execution_store.append(make_execution("sched-1", utc(2024, 1, day, 2, 0)))
        await execution_store.append(make_execution("sched-2", utc(2024, 1, 10, 2, 0)))

        everything = await execution_store.list_executions()
        assert everything[0].schedule_id == "sched-2"
        assert len(everything) == 6

        mine = await execution_store.list_executions(schedule_id="sched-1", limit=3)
        assert [e.start_time.day for e in mine] == [5, 4, 3]

    async def test_executions_survive_schedule_delete(self, schedule_store, execution_store, insert_schedule):
        created = await insert_schedule()
        await execution_store.append(make_execution(created.id, utc(2024, 1, 1, 2, 0)))

        await schedule_store.delete(created.id)

        assert len(await execution_store.list_executions(schedule_id=created.id)) == 1
