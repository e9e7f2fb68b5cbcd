from app.core.settings import Settings, settings as default_settings
from app.services.storage.adapter import StorageAdapter, LocalFileSystemAdapter, GCSStorageAdapter


def get_storage_adapter(
    config: Settings | None = None,
    *,
    bucket_override: str | None = None,
) -> StorageAdapter:
    config = config or default_settings
    if config.storage_provider == "gcs":
        bucket = bucket_override or config.gcs_bucket
        if not bucket:
            raise ValueError("GCS bucket is not configured")
        return GCSStorageAdapter(
            bucket=bucket,
            signed_url_expiry_seconds=config.gcs_signed_url_expiry_seconds,
        )

    return LocalFileSystemAdapter(
        base_path=config.local_upload_dir,
        base_url=config.public_base_url,
        signing_key=config.secret_key,
    )
