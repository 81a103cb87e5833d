"""Package an export into a ZIP archive.

Archive layout:
- `<entity-set>.json` for every exported collection (pretty-printed UTF-8 JSON)
- `export-info.json` when metadata is requested
- `manifest.json` when a manifest is requested
- `README.md`, always
"""

from __future__ import annotations

import io
import json
import logging
import zipfile
from datetime import datetime
from typing import Any, Dict, List

from backend.services.backup_scheduler.exceptions import ArchiveBuildError
from backend.services.backup_scheduler.export_aggregator import ExportData
from backend.services.backup_scheduler.schemas import DeliveryConfig, ExportConfig
from models.sql.backup_scheduler import BackupSchedule


logger = logging.getLogger(__name__)

MANIFEST_VERSION = "1.0"
CREATED_BY = "BackupScheduler"

COMPRESSION_LEVELS = {"low": 1, "medium": 6, "high": 9}
DEFAULT_COMPRESSION = 6

ENTITY_FILENAMES = {
    "clubs": "clubs.json",
    "zones": "zones.json",
    "event_types": "event-types.json",
    "events": "events.json",
    "users": "users.json",
    "schedules": "schedules.json",
}


def get_compression_level(level: str) -> int:
    """Map a compression level name to a zlib level (unknown names -> 6)."""

    return COMPRESSION_LEVELS.get(str(level or "").lower(), DEFAULT_COMPRESSION)


def _to_json_bytes(value: Any) -> bytes:
    return json.dumps(value, indent=2, ensure_ascii=False, default=str).encode("utf-8")


def _label(entity_set: str) -> str:
    return entity_set.replace("_", " ").title()


def generate_readme(
    schedule: BackupSchedule,
    record_counts: Dict[str, int],
    export_config: ExportConfig,
    delivery_config: DeliveryConfig,
    *,
    generated_at: datetime,
) -> str:
    """Render the README shipped inside every archive.

    Args:
        schedule: Schedule being executed.
        record_counts: Records per entity set.
        export_config: Parsed export configuration.
        delivery_config: Parsed delivery configuration.
        generated_at: Generation timestamp.

    Returns:
        str: Markdown text.
    """

    lines: List[str] = [
        "# Automated Database Backup",
        "",
        "## Backup Information",
        f"- **Schedule Name**: {schedule.name}",
        f"- **Description**: {schedule.description or 'No description provided'}",
        f"- **Generated**: {generated_at.strftime('%Y-%m-%d %H:%M:%S %Z').strip()}",
        f"- **Schedule ID**: {schedule.id}",
        "",
        "## Data Contents",
    ]
    lines.extend(
        f"- **{_label(name)}**: {count} records" for name, count in record_counts.items() if count > 0
    )
    lines += [
        "",
        "## Configuration",
        f"- **Compression Level**: {export_config.compression_level}",
        f"- **Includes Metadata**: {'Yes' if export_config.include_metadata else 'No'}",
        f"- **Includes Manifest**: {'Yes' if export_config.include_manifest else 'No'}",
        "",
        "## Delivery Method",
        f"- **Method**: {delivery_config.method}",
    ]
    if delivery_config.email:
        lines.append(f"- **Email Recipients**: {', '.join(delivery_config.email.recipients)}")
    if delivery_config.storage:
        lines.append(f"- **Storage Provider**: {delivery_config.storage.provider}")
        lines.append(f"- **Storage Path**: {delivery_config.storage.path}")
    lines += [
        "",
        "## Data Integrity",
        "When present, manifest.json lists every included file with its size and record count.",
        "All data is exported in JSON format for easy parsing and restoration.",
        "",
        "## Restoration Instructions",
        "1. Extract all files from this ZIP archive",
        "2. Review the manifest.json file (if present) for data structure information",
        "3. Use the appropriate import tools to restore data to your system",
        "4. Verify record counts against the manifest before relying on the restored data",
        "",
        "---",
        "Generated by the Backup Scheduler",
        "",
    ]
    return "\n".join(lines)


def build_archive(export: ExportData, schedule: BackupSchedule, *, generated_at: datetime) -> bytes:
    """Build the compressed archive for an export.

    Args:
        export: Aggregated export data.
        schedule: Schedule being executed.
        generated_at: Timestamp used for the manifest and README.

    Returns:
        bytes: ZIP archive.

    Raises:
        ArchiveBuildError: When serialization or compression fails.
    """

    try:
        export_config = ExportConfig.model_validate(schedule.export_config or {})
        delivery_config = DeliveryConfig.model_validate(schedule.delivery_config or {})

        entries: Dict[str, bytes] = {}
        manifest_files: List[Dict[str, Any]] = []

        for name, records in export.collections.items():
            filename = ENTITY_FILENAMES.get(name, f"{name}.json")
            content = _to_json_bytes(records)
            entries[filename] = content
            manifest_files.append(
                {
                    "name": filename,
                    "size": len(content),
                    "records": len(records) if isinstance(records, list) else 1,
                }
            )

        if export_config.include_metadata and export.export_info is not None:
            entries["export-info.json"] = _to_json_bytes(export.export_info)

        if export_config.include_manifest:
            manifest = {
                "version": MANIFEST_VERSION,
                "exportDate": generated_at.isoformat(),
                "scheduleName": schedule.name,
                "scheduleId": schedule.id,
                "totalRecords": dict(export.record_counts),
                "files": manifest_files,
                "metadata": {
                    "compressionLevel": export_config.compression_level,
                    "createdBy": CREATED_BY,
                },
            }
            entries["manifest.json"] = _to_json_bytes(manifest)

        entries["README.md"] = generate_readme(
            schedule,
            export.record_counts,
            export_config,
            delivery_config,
            generated_at=generated_at,
        ).encode("utf-8")

        level = get_compression_level(export_config.compression_level)
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=level) as archive:
            for filename, content in entries.items():
                archive.writestr(filename, content)

    except Exception as exc:
        logger.exception("Archive build failed schedule=%s", schedule.name)
        raise ArchiveBuildError(f"Failed to create backup file: {exc}") from exc

    data = buffer.getvalue()
    logger.info(
        "Archive built schedule=%s files=%s size=%s compression=%s",
        schedule.name,
        len(entries),
        len(data),
        level,
    )
    return data
