"""Tests for archive packaging."""

import io
import json
import zipfile

import pytest

from backend.services.backup_scheduler.archive_builder import build_archive, get_compression_level
from backend.services.backup_scheduler.exceptions import ArchiveBuildError
from backend.services.backup_scheduler.export_aggregator import aggregate_export


def open_archive(data: bytes) -> zipfile.ZipFile:
    return zipfile.ZipFile(io.BytesIO(data))


class TestBuildArchive:
    async def test_clubs_and_zones_only(self, make_schedule, readers, now):
        schedule = make_schedule(export_config={"includeClubs": True, "includeZones": True})
        export = await aggregate_export(schedule, readers, exported_at=now)

        with open_archive(build_archive(export, schedule, generated_at=now)) as archive:
            assert sorted(archive.namelist()) == ["README.md", "clubs.json", "zones.json"]
            assert json.loads(archive.read("clubs.json")) == readers.clubs
            assert json.loads(archive.read("zones.json")) == readers.zones

    async def test_json_is_pretty_printed(self, make_schedule, readers, now):
        schedule = make_schedule(export_config={"includeClubs": True})
        export = await aggregate_export(schedule, readers, exported_at=now)

        with open_archive(build_archive(export, schedule, generated_at=now)) as archive:
            text = archive.read("clubs.json").decode("utf-8")

        assert text.startswith("[\n  {")

    async def test_entries_are_deflated(self, make_schedule, readers, now):
        schedule = make_schedule(export_config={"includeClubs": True, "compressionLevel": "high"})
        export = await aggregate_export(schedule, readers, exported_at=now)

        with open_archive(build_archive(export, schedule, generated_at=now)) as archive:
            assert all(info.compress_type == zipfile.ZIP_DEFLATED for info in archive.infolist())

    async def test_metadata_and_manifest(self, make_schedule, readers, now):
        schedule = make_schedule(
            export_config={
                "includeClubs": True,
                "includeZones": True,
                "includeEventTypes": True,
                "includeMetadata": True,
                "includeManifest": True,
            }
        )
        export = await aggregate_export(schedule, readers, exported_at=now)

        with open_archive(build_archive(export, schedule, generated_at=now)) as archive:
            names = set(archive.namelist())
            manifest = json.loads(archive.read("manifest.json"))
            export_info = json.loads(archive.read("export-info.json"))
            sizes = {name: len(archive.read(name)) for name in names}

        assert names == {
            "clubs.json",
            "zones.json",
            "event-types.json",
            "export-info.json",
            "manifest.json",
            "README.md",
        }
        assert manifest["version"] == "1.0"
        assert manifest["exportDate"] == now.isoformat()
        assert manifest["scheduleName"] == "Nightly Export"
        assert manifest["scheduleId"] == "sched-1"
        assert manifest["totalRecords"]["clubs"] == 3
        assert manifest["metadata"] == {"compressionLevel": "medium", "createdBy": "BackupScheduler"}

        files = {entry["name"]: entry for entry in manifest["files"]}
        assert set(files) == {"clubs.json", "zones.json", "event-types.json"}
        assert files["clubs.json"]["records"] == 3
        assert files["event-types.json"]["records"] == 0
        assert files["zones.json"]["size"] == sizes["zones.json"]
        assert export_info["totalRecords"] == 5

    async def test_readme_describes_backup(self, make_schedule, readers, now):
        schedule = make_schedule(
            delivery_config={
                "method": "both",
                "email": {"recipients": ["ops@example.com", "cto@example.com"]},
                "storage": {"provider": "firebase", "path": "/backups/nightly"},
            }
        )
        export = await aggregate_export(schedule, readers, exported_at=now)

        with open_archive(build_archive(export, schedule, generated_at=now)) as archive:
            readme = archive.read("README.md").decode("utf-8")

        assert "- **Schedule Name**: Nightly Export" in readme
        assert "- **Schedule ID**: sched-1" in readme
        assert "- **Clubs**: 3 records" in readme
        assert "- **Zones**: 2 records" in readme
        assert "Events**" not in readme
        assert "- **Includes Manifest**: Yes" in readme
        assert "- **Email Recipients**: ops@example.com, cto@example.com" in readme
        assert "- **Storage Path**: /backups/nightly" in readme
        assert "Restoration Instructions" in readme

    async def test_invalid_config_is_wrapped(self, make_schedule, readers, now):
        schedule = make_schedule()
        export = await aggregate_export(schedule, readers, exported_at=now)
        schedule.export_config = {"compressionLevel": "extreme"}

        with pytest.raises(ArchiveBuildError, match="Failed to create backup file"):
            build_archive(export, schedule, generated_at=now)


@pytest.mark.parametrize("level,expected", [("low", 1), ("medium", 6), ("high", 9), ("HIGH", 9), ("other", 6)])
def test_compression_levels(level, expected):
    assert get_compression_level(level) == expected
