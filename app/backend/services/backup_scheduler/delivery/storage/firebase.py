"""Firebase Storage uploader.

Firebase Storage buckets are Google Cloud Storage buckets, so objects are
managed through the Cloud Storage JSON API with an OAuth bearer token.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import httpx

from backend.services.backup_scheduler.delivery.base import StorageUploader
from backend.services.backup_scheduler.retention import BackupObject


logger = logging.getLogger(__name__)

API_BASE_URL = "https://storage.googleapis.com/storage/v1"
UPLOAD_BASE_URL = "https://storage.googleapis.com/upload/storage/v1"

# Custom object metadata key holding the owning schedule id.
SCHEDULE_ID_METADATA_KEY = "scheduleId"


@dataclass(frozen=True)
class FirebaseConfig:
    """Configuration for the Firebase Storage destination."""

    bucket: str
    access_token: str
    timeout: float = 300.0


def _object_name(path: str) -> str:
    return str(path or "").lstrip("/")


def _parse_timestamp(value: Optional[str]) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _to_backup_object(item: Dict[str, Any]) -> BackupObject:
    size = item.get("size")
    metadata = item.get("metadata") or {}
    return BackupObject(
        id=str(item["name"]),
        name=str(item["name"]),
        created_at=_parse_timestamp(item.get("timeCreated")),
        size=int(size) if size is not None else None,
        schedule_id=metadata.get(SCHEDULE_ID_METADATA_KEY),
    )


def _multipart_related(resource: Dict[str, Any], data: bytes, content_type: str) -> Tuple[bytes, str]:
    """Encode object metadata and media as a `multipart/related` upload body."""

    boundary = f"backup-{uuid.uuid4().hex}"
    body = b"".join(
        [
            f"--{boundary}\r\nContent-Type: application/json; charset=UTF-8\r\n\r\n".encode("ascii"),
            json.dumps(resource).encode("utf-8"),
            f"\r\n--{boundary}\r\nContent-Type: {content_type}\r\n\r\n".encode("ascii"),
            data,
            f"\r\n--{boundary}--\r\n".encode("ascii"),
        ]
    )
    return body, f"multipart/related; boundary={boundary}"


class FirebaseStorageUploader(StorageUploader):
    """Upload, list and delete backup objects in a Firebase Storage bucket."""

    def __init__(self, config: FirebaseConfig, *, transport: Optional[httpx.BaseTransport] = None):
        """Initialize the uploader.

        Args:
            config: Bucket and credentials.
            transport: Optional httpx transport (used by tests).

        Raises:
            ValueError: When the bucket is not configured.
        """

        if not config.bucket:
            raise ValueError("Firebase storage bucket is required (FIREBASE_STORAGE_BUCKET)")
        self.config = config
        self._transport = transport

    def _client(self) -> httpx.Client:
        headers = {}
        if self.config.access_token:
            headers["Authorization"] = f"Bearer {self.config.access_token}"
        return httpx.Client(headers=headers, timeout=self.config.timeout, transport=self._transport)

    def upload_backup(self, *, path: str, data: bytes, schedule_id: Optional[str] = None) -> BackupObject:
        name = _object_name(path)
        resource: Dict[str, Any] = {"name": name, "contentType": "application/zip"}
        if schedule_id:
            resource["metadata"] = {SCHEDULE_ID_METADATA_KEY: schedule_id}
        body, content_type = _multipart_related(resource, data, "application/zip")

        with self._client() as client:
            response = client.post(
                f"{UPLOAD_BASE_URL}/b/{self.config.bucket}/o",
                params={"uploadType": "multipart"},
                content=body,
                headers={"Content-Type": content_type},
            )
            response.raise_for_status()
            item = response.json()

        logger.info("Uploaded backup bucket=%s name=%s size=%s", self.config.bucket, name, len(data))
        return _to_backup_object(item)

    def list_backups(self, *, prefix: str) -> List[BackupObject]:
        params: Dict[str, str] = {"prefix": _object_name(prefix)}
        backups: List[BackupObject] = []
        with self._client() as client:
            while True:
                response = client.get(f"{API_BASE_URL}/b/{self.config.bucket}/o", params=params)
                response.raise_for_status()
                payload = response.json()
                backups.extend(_to_backup_object(item) for item in payload.get("items", []))

                page_token = payload.get("nextPageToken")
                if not page_token:
                    break
                params["pageToken"] = page_token

        return backups

    def delete_backups(self, backups: List[BackupObject]) -> None:
        with self._client() as client:
            for obj in backups:
                response = client.delete(
                    f"{API_BASE_URL}/b/{self.config.bucket}/o/{quote(obj.id, safe='')}"
                )
                if response.status_code == 404:
                    logger.warning("Backup already gone bucket=%s name=%s", self.config.bucket, obj.id)
                    continue
                response.raise_for_status()
                logger.info("Deleted backup bucket=%s name=%s", self.config.bucket, obj.id)
