"""
S3 sink for payload bundles.

Uploads a bundle's zip archive to S3 together with a sidecar manifest,
so a build farm can publish payloads without staging them on disk.

Object layout:
    s3://<bucket>/<key_prefix>/<name>.zip
    s3://<bucket>/<key_prefix>/<name>.manifest.json

Sidecar manifest contains:
    - name: Upload name
    - version / contents_path: Copied from the in-archive manifest
    - entries: Archive entry paths, in order
    - checksum: SHA-256 of the zip bytes
    - size_bytes: Zip size in bytes
    - created_at: Upload timestamp (Unix ms)

Invariants:
    - The archive is fully built, in a worker thread, before anything is uploaded
    - The sidecar is written only after the archive upload succeeded
    - Incomplete archives (failed entries) are never uploaded

How to change safely:
    - Add sidecar fields, don't remove existing ones
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, List

from aiobotocore.session import get_session

from ..bundle import Bundle
from ..config import S3Config
from ..errors import SinkError

logger = logging.getLogger(__name__)


@dataclass
class UploadInfo:
    """Information about an uploaded bundle.

    Attributes:
        name: Upload name
        s3_key: Object key of the zip archive
        manifest_key: Object key of the sidecar manifest
        checksum: SHA-256 of the zip bytes
        size_bytes: Zip size in bytes
        entries: Archive entry paths
        created_at: Upload timestamp (Unix ms)
    """

    name: str
    s3_key: str
    manifest_key: str
    checksum: str
    size_bytes: int
    entries: List[str] = field(default_factory=list)
    created_at: int = 0


class S3BundleSink:
    """Uploads bundles to S3.

    Use as an async context manager, or pass an already-open client.

    Attributes:
        s3_config: S3 configuration

    Example:
        >>> async with S3BundleSink(s3_config) as sink:
        ...     info = await sink.upload(bundle, "kernel-1234")
        >>> print(info.s3_key)
    """

    def __init__(self, s3_config: S3Config, client: Any = None) -> None:
        """Initialize the sink.

        Args:
            s3_config: S3Config instance
            client: Optional open S3 client (the sink will not close it)
        """
        self.s3_config = s3_config
        self._s3_client = client
        self._owns_client = client is None
        self._s3_ctx = None
        self._upload_count = 0

    async def __aenter__(self) -> S3BundleSink:
        if self._s3_client is None:
            await self._init_s3_client()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self._close_s3_client()

    async def _init_s3_client(self) -> None:
        """Initialize S3 client."""
        session = get_session()

        client_kwargs = {
            "region_name": self.s3_config.region,
        }

        if self.s3_config.endpoint_url:
            client_kwargs["endpoint_url"] = self.s3_config.endpoint_url

        if self.s3_config.access_key_id:
            client_kwargs["aws_access_key_id"] = self.s3_config.access_key_id
            client_kwargs["aws_secret_access_key"] = self.s3_config.secret_access_key

        self._s3_ctx = session.create_client("s3", **client_kwargs)
        self._s3_client = await self._s3_ctx.__aenter__()
        self._owns_client = True

    async def _close_s3_client(self) -> None:
        """Close S3 client."""
        if self._s3_client and self._owns_client and self._s3_ctx is not None:
            await self._s3_ctx.__aexit__(None, None, None)
            self._s3_client = None
            self._s3_ctx = None

    def _build_key(self, name: str, suffix: str) -> str:
        prefix = self.s3_config.key_prefix.strip("/")
        if prefix:
            return f"{prefix}/{name}{suffix}"
        return f"{name}{suffix}"

    async def upload(self, bundle: Bundle, name: str) -> UploadInfo:
        """Build the bundle's archive and upload it.

        Args:
            bundle: Bundle to upload
            name: Object name (without extension)

        Returns:
            UploadInfo describing the uploaded objects

        Raises:
            SinkError: If the archive is incomplete or the upload fails
        """
        if self._s3_client is None:
            raise SinkError("S3 client not initialized", destination=self.s3_config.bucket)

        # Archive encoding holds the store lock; keep it off the event loop
        result = await asyncio.to_thread(bundle.build_zip)
        if not result.success or result.failed:
            raise SinkError(
                f"Archive for '{name}' is incomplete: "
                f"{result.error or 'failed entries ' + ', '.join(result.failed)}",
                destination=self.s3_config.bucket,
            )

        s3_key = self._build_key(name, ".zip")
        manifest_key = self._build_key(name, ".manifest.json")
        created_at = int(time.time() * 1000)

        try:
            await self._s3_client.put_object(
                Bucket=self.s3_config.bucket,
                Key=s3_key,
                Body=result.data,
                ContentType="application/zip",
            )

            sidecar = {
                "name": name,
                "version": bundle.version,
                "contents_path": bundle.prefix,
                "entries": result.entries,
                "checksum": result.checksum,
                "size_bytes": result.size_bytes,
                "s3_key": s3_key,
                "created_at": created_at,
            }
            await self._s3_client.put_object(
                Bucket=self.s3_config.bucket,
                Key=manifest_key,
                Body=json.dumps(sidecar, indent=2, sort_keys=True).encode("utf-8"),
                ContentType="application/json",
            )
        except Exception as e:
            logger.error(f"Failed to upload bundle {name}: {e}", exc_info=True)
            raise SinkError(
                f"Failed to upload bundle '{name}': {e}",
                destination=f"s3://{self.s3_config.bucket}/{s3_key}",
            ) from e
        finally:
            result.data = None

        self._upload_count += 1
        logger.info(
            "Uploaded bundle",
            extra={
                "bucket": self.s3_config.bucket,
                "s3_key": s3_key,
                "size_bytes": result.size_bytes,
                "checksum": result.checksum,
            },
        )

        return UploadInfo(
            name=name,
            s3_key=s3_key,
            manifest_key=manifest_key,
            checksum=result.checksum,
            size_bytes=result.size_bytes,
            entries=list(result.entries),
            created_at=created_at,
        )

    @property
    def stats(self) -> dict[str, Any]:
        """Get sink statistics."""
        return {
            "bucket": self.s3_config.bucket,
            "upload_count": self._upload_count,
        }
