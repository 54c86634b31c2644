"""
Configuration management for toolchain payload bundles.

All configuration is done via environment variables; the CLI overrides
individual settings from its flags. This module provides typed
configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local use
    - The manifest version is injected here, never read from globals
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that keep archive bytes unchanged
    - Changing compression or default_mode defaults changes every archive
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

from ._version import __version__
from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_MANIFEST_PATH = "manifest/manifest.json"


class BundleFormat(Enum):
    """Output formats produced by Bundle.write()."""

    ZIP = "zip"
    PLAIN = "plain"


class Compression(Enum):
    """Zip entry compression methods."""

    DEFLATE = "deflate"
    STORED = "stored"


def _split_extensions(raw: str) -> tuple[str, ...]:
    extensions = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        if not item.startswith("."):
            item = "." + item
        extensions.append(item)
    return tuple(extensions)


@dataclass(frozen=True)
class BundleConfig:
    """Bundle identity configuration.

    Attributes:
        prefix: Logical root namespace prepended to every entry key
        version: Version string recorded in the manifest
        format: Default output format for Bundle.write()
        manifest_path: Archive path of the synthesized manifest entry
    """

    prefix: str = ""
    version: str = __version__
    format: BundleFormat = BundleFormat.ZIP
    manifest_path: str = DEFAULT_MANIFEST_PATH

    @classmethod
    def from_env(cls) -> BundleConfig:
        """Load configuration from environment variables."""
        format_str = os.getenv("PAYLOAD_FORMAT", "zip").lower()
        try:
            bundle_format = BundleFormat(format_str)
        except ValueError:
            raise ConfigError(
                f"Invalid PAYLOAD_FORMAT '{format_str}'. Must be one of: zip, plain",
                setting="PAYLOAD_FORMAT",
            )

        return cls(
            prefix=os.getenv("PAYLOAD_PREFIX", ""),
            version=os.getenv("PAYLOAD_VERSION", __version__),
            format=bundle_format,
            manifest_path=os.getenv("PAYLOAD_MANIFEST_PATH", DEFAULT_MANIFEST_PATH),
        )


@dataclass(frozen=True)
class ArchiveConfig:
    """Zip archive encoding configuration.

    Attributes:
        compression: Entry compression method
        compresslevel: Deflate level (fixed for reproducible bytes)
        script_extensions: Path suffixes that get the user-execute bit
        default_mode: Permission bits given to every new entry before normalization
    """

    compression: Compression = Compression.DEFLATE
    compresslevel: int = 9
    script_extensions: tuple[str, ...] = (".sh",)
    default_mode: int = 0o666

    @classmethod
    def from_env(cls) -> ArchiveConfig:
        """Load configuration from environment variables."""
        compression_str = os.getenv("ARCHIVE_COMPRESSION", "deflate").lower()
        try:
            compression = Compression(compression_str)
        except ValueError:
            raise ConfigError(
                f"Invalid ARCHIVE_COMPRESSION '{compression_str}'. "
                "Must be one of: deflate, stored",
                setting="ARCHIVE_COMPRESSION",
            )

        mode_str = os.getenv("ARCHIVE_DEFAULT_MODE", "0666")
        try:
            default_mode = int(mode_str, 8)
        except ValueError:
            raise ConfigError(
                f"Invalid ARCHIVE_DEFAULT_MODE '{mode_str}', expected an octal mode",
                setting="ARCHIVE_DEFAULT_MODE",
            )

        level_str = os.getenv("ARCHIVE_COMPRESSLEVEL", "9")
        try:
            compresslevel = int(level_str)
        except ValueError:
            raise ConfigError(
                f"Invalid ARCHIVE_COMPRESSLEVEL '{level_str}', expected an integer",
                setting="ARCHIVE_COMPRESSLEVEL",
            )

        return cls(
            compression=compression,
            compresslevel=compresslevel,
            script_extensions=_split_extensions(os.getenv("ARCHIVE_SCRIPT_EXTENSIONS", ".sh")),
            default_mode=default_mode,
        )


@dataclass(frozen=True)
class S3Config:
    """S3 configuration for uploading bundles.

    Attributes:
        bucket: S3 bucket name
        region: AWS region
        endpoint_url: Custom endpoint URL (for MinIO)
        key_prefix: Prefix for uploaded bundle objects
        access_key_id: AWS access key ID (optional, uses AWS credential chain)
        secret_access_key: AWS secret access key (optional)
    """

    bucket: str = "toolchain-payloads"
    region: str = "us-east-1"
    endpoint_url: str | None = None
    key_prefix: str = "payloads"
    access_key_id: str | None = None
    secret_access_key: str | None = None

    @classmethod
    def from_env(cls) -> S3Config:
        """Load configuration from environment variables."""
        return cls(
            bucket=os.getenv("S3_BUCKET", "toolchain-payloads"),
            region=os.getenv("S3_REGION", os.getenv("AWS_REGION", "us-east-1")),
            endpoint_url=os.getenv("S3_ENDPOINT"),
            key_prefix=os.getenv("S3_PAYLOAD_PREFIX", "payloads"),
            access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
            secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )


@dataclass
class PayloadConfig:
    """Complete payload configuration.

    Attributes:
        bundle: Bundle identity configuration
        archive: Zip encoding configuration
        s3: S3 upload configuration
        observability: Logging configuration
    """

    bundle: BundleConfig = field(default_factory=BundleConfig)
    archive: ArchiveConfig = field(default_factory=ArchiveConfig)
    s3: S3Config = field(default_factory=S3Config)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> PayloadConfig:
        """Load complete configuration from environment variables.

        Raises:
            ConfigError: If configuration is invalid.
        """
        config = cls(
            bundle=BundleConfig.from_env(),
            archive=ArchiveConfig.from_env(),
            s3=S3Config.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ConfigError: If configuration is invalid.
        """
        if not self.bundle.version:
            raise ConfigError("PAYLOAD_VERSION must not be empty", setting="PAYLOAD_VERSION")
        if not self.bundle.manifest_path or self.bundle.manifest_path.endswith("/"):
            raise ConfigError(
                f"PAYLOAD_MANIFEST_PATH must name a file, got '{self.bundle.manifest_path}'",
                setting="PAYLOAD_MANIFEST_PATH",
            )
        if not 0 <= self.archive.compresslevel <= 9:
            raise ConfigError(
                f"ARCHIVE_COMPRESSLEVEL must be between 0 and 9, got {self.archive.compresslevel}",
                setting="ARCHIVE_COMPRESSLEVEL",
            )
        if not 0 <= self.archive.default_mode <= 0o7777:
            raise ConfigError(
                f"ARCHIVE_DEFAULT_MODE out of range: {oct(self.archive.default_mode)}",
                setting="ARCHIVE_DEFAULT_MODE",
            )
        if self.observability.log_format not in ("json", "text"):
            raise ConfigError(
                f"LOG_FORMAT must be 'json' or 'text', got '{self.observability.log_format}'",
                setting="LOG_FORMAT",
            )

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Payload configuration loaded",
            extra={
                "prefix": self.bundle.prefix,
                "version": self.bundle.version,
                "format": self.bundle.format.value,
                "manifest_path": self.bundle.manifest_path,
                "compression": self.archive.compression.value,
                "script_extensions": list(self.archive.script_extensions),
                "s3_bucket": self.s3.bucket,
                "log_level": self.observability.log_level,
            },
        )
