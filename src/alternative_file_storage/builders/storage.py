"""Builder for object store instances."""

from __future__ import annotations

from dataclasses import replace
from typing import Any

import requests

from ..config import StorageConfig
from ..constants import DEFAULT_ENDPOINT, DESTINATION_GCS, DESTINATION_S3, DESTINATION_SPACE
from ..exceptions import ConfigurationError
from ..services.s3.client import S3Client
from ..services.s3.storage import PrefixedObjectStore

GCS_ENDPOINT = "storage.googleapis.com"


def endpoint_for(destination: str, region: str | None) -> str:
    """Resolve the service host for a destination and region.

    Raises:
        ConfigurationError: If the destination is unknown or needs a region
    """
    if destination == DESTINATION_S3:
        if not region or region == "us-east-1":
            return DEFAULT_ENDPOINT
        return f"s3.{region}.amazonaws.com"
    if destination == DESTINATION_SPACE:
        if not region:
            raise ConfigurationError("A region is required for DigitalOcean Spaces")
        return f"{region}.digitaloceanspaces.com"
    if destination == DESTINATION_GCS:
        return GCS_ENDPOINT
    raise ConfigurationError(f"Unsupported storage destination: {destination}")


def create_storage_from_settings(
    settings: dict[str, Any],
    config: StorageConfig | None = None,
    session: requests.Session | None = None,
) -> PrefixedObjectStore:
    """Create an object store from the plugin settings.

    Args:
        settings: Plugin settings (``settings_destino``, ``settings_s3_*``, ``settings_path``)
        config: Base configuration carrying transport options (TLS, proxy,
            timeouts); it is copied, not modified
        session: Optional pre-built requests session

    Returns:
        Configured object store

    Raises:
        ConfigurationError: If the settings are incomplete
    """
    destination = settings.get("settings_destino", DESTINATION_S3)
    region = settings.get("settings_s3_region")
    access_key = settings.get("settings_s3_credentials_key")
    secret_key = settings.get("settings_s3_credentials_secret")
    bucket = settings.get("settings_s3_bucketname")
    if destination == DESTINATION_GCS:
        bucket = settings.get("settings_gcs_bucketname") or bucket

    if not access_key or not secret_key:
        raise ConfigurationError("Storage credentials key and secret are required")
    if not bucket:
        raise ConfigurationError("Bucket name is required")

    config = replace(
        config or StorageConfig(),
        access_key=access_key,
        secret_key=secret_key,
        endpoint=endpoint_for(destination, region),
    )

    client = S3Client(config, session=session)
    return PrefixedObjectStore(client, bucket, settings.get("settings_path") or "")
