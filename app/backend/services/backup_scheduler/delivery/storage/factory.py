"""Storage uploader factory.

Adding a provider means implementing a `StorageUploader` under
`backend.services.backup_scheduler.delivery.storage.*` and extending
`build_storage_uploader`.
"""

from __future__ import annotations

from backend.services.backup_scheduler.delivery.base import StorageUploader
from backend.services.backup_scheduler.delivery.storage.firebase import FirebaseConfig, FirebaseStorageUploader
from backend.services.backup_scheduler.exceptions import UnknownProviderError
from config.settings import settings


def build_storage_uploader(provider: str) -> StorageUploader:
    """Instantiate the uploader for a storage provider identifier.

    Args:
        provider: Provider identifier from the delivery config.

    Returns:
        StorageUploader: Uploader instance.

    Raises:
        UnknownProviderError: When the provider is not implemented.
    """

    if str(provider or "").strip().lower() == "firebase":
        return FirebaseStorageUploader(
            FirebaseConfig(
                bucket=settings.FIREBASE_STORAGE_BUCKET,
                access_token=settings.get_firebase_access_token(),
                timeout=settings.STORAGE_UPLOAD_TIMEOUT_SECONDS,
            )
        )

    raise UnknownProviderError(provider)
