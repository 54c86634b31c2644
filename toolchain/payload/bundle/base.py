"""
Bundle base class and factory.

A Bundle is the aggregate a packaging session works with: it owns the
VirtualFileStore producers write into, carries the injected version and
archive options, and exposes every output destination. Subclasses pick
what the format-neutral write(stream) produces.

Invariants:
    - prefix and version are fixed at construction
    - Every write is non-destructive and may be repeated
    - Repeated writes with no mutation in between give identical output

How to change safely:
    - New formats subclass Bundle and register in create_bundle()
    - Keep the write_* methods format independent
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO, List, Optional, Union

from .._version import __version__
from ..config import DEFAULT_MANIFEST_PATH, ArchiveConfig
from ..manifest import BundleManifest, add_manifest
from ..serialize import (
    ArchiveResult,
    PlainWriteResult,
    build_zip,
    write_plain_dir,
    write_plain_text,
    write_zip,
)
from ..store import VirtualFile, VirtualFileStore

if TYPE_CHECKING:
    from ..config import PayloadConfig

logger = logging.getLogger(__name__)


class Bundle(ABC):
    """In-memory output bundle for one packaging session.

    Attributes:
        prefix: Namespace prepended to every producer file
        version: Version recorded in the archive manifest
        archive_config: Zip encoding options
        manifest_path: Archive path of the manifest entry

    Example:
        >>> bundle = ZipBundle("out/")
        >>> bundle.get_file("a.txt").write("hello")
        5
        >>> with open("out.zip", "wb") as f:
        ...     bundle.write(f)
    """

    def __init__(
        self,
        prefix: str = "",
        version: str = __version__,
        archive_config: Optional[ArchiveConfig] = None,
        manifest_path: str = DEFAULT_MANIFEST_PATH,
    ) -> None:
        """Initialize an empty bundle.

        Args:
            prefix: Namespace prepended to every producer file
            version: Version recorded in the manifest
            archive_config: Zip encoding options (defaults if omitted)
            manifest_path: Archive path of the manifest entry
        """
        self.version = version
        self.archive_config = archive_config or ArchiveConfig()
        self.manifest_path = manifest_path
        self._store = VirtualFileStore(prefix)

    @property
    def prefix(self) -> str:
        return self._store.prefix

    @property
    def store(self) -> VirtualFileStore:
        return self._store

    def get_file(self, name: str) -> VirtualFile:
        """Get or create a file under the bundle prefix."""
        return self._store.get_file(name)

    def ordered_file_names(self) -> List[str]:
        """All entry paths in lexicographic order."""
        return self._store.ordered_file_names()

    def add_manifest(self) -> BundleManifest:
        """Write (or overwrite) the manifest entry."""
        return add_manifest(self._store, self.version, self.manifest_path)

    def write_plain_dir(self, root: Union[str, Path]) -> PlainWriteResult:
        """Materialize the bundle as files under ``root``."""
        return write_plain_dir(self._store, root)

    def write_plain_text(self, stream: BinaryIO) -> None:
        """Dump the bundle as banner-separated text."""
        write_plain_text(self._store, stream)

    def build_zip(self) -> ArchiveResult:
        """Encode the bundle as zip bytes without writing them anywhere."""
        return build_zip(
            self._store,
            self.version,
            config=self.archive_config,
            manifest_path=self.manifest_path,
        )

    def write_zip(self, stream: BinaryIO) -> ArchiveResult:
        """Encode the bundle as a zip archive into ``stream``."""
        return write_zip(
            self._store,
            stream,
            self.version,
            config=self.archive_config,
            manifest_path=self.manifest_path,
        )

    @abstractmethod
    def write(self, stream: BinaryIO) -> bool:
        """Write the bundle in its native format.

        Returns:
            True if the output was written completely
        """
        ...


class ZipBundle(Bundle):
    """Bundle whose native format is a zip archive."""

    def write(self, stream: BinaryIO) -> bool:
        result = self.write_zip(stream)
        return result.success and not result.failed


class PlainBundle(Bundle):
    """Bundle whose native format is the plaintext dump."""

    def write(self, stream: BinaryIO) -> bool:
        try:
            self.write_plain_text(stream)
            stream.flush()
        except OSError as e:
            logger.error(f"Unable to write plaintext payload to stream: {e}")
            return False
        return True


def create_bundle(config: "PayloadConfig") -> Bundle:
    """Factory function to create a bundle from configuration.

    Args:
        config: Payload configuration

    Returns:
        Bundle implementation for the configured format

    Raises:
        ValueError: If the format is not supported
    """
    from ..config import BundleFormat

    kwargs = dict(
        prefix=config.bundle.prefix,
        version=config.bundle.version,
        archive_config=config.archive,
        manifest_path=config.bundle.manifest_path,
    )

    if config.bundle.format == BundleFormat.ZIP:
        return ZipBundle(**kwargs)
    elif config.bundle.format == BundleFormat.PLAIN:
        return PlainBundle(**kwargs)
    else:
        raise ValueError(f"Unsupported bundle format: {config.bundle.format}")
