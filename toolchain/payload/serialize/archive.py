"""
Zip archive serializer for payload bundles.

Encodes the whole bundle, plus a freshly built manifest, into a single
zip archive held in memory, then hands the bytes to a destination stream.
The archive never touches disk, so it can be written to files, sockets,
pipes or uploaded as-is.

Archive layout:
    <prefix><name>              one entry per virtual file
    manifest/manifest.json      {"contents_path": <prefix>, "version": ...}

Entry metadata:
    - Timestamp fixed at 1980-01-01 00:00:00 (earliest valid zip date)
    - Created on Unix, mode 0o666 before normalization
    - Group/other write bits always cleared
    - User execute set for script extensions (.sh by default)

Invariants:
    - Entries are added in lexicographic path order
    - Identical bundle content gives byte-identical archives
    - Failing to open or close the archive writes nothing to the destination
    - Failing to add one entry skips that entry only

How to change safely:
    - Any change to ZipInfo fields changes archive bytes
    - Keep permission normalization limited to Unix-attributed entries
"""

from __future__ import annotations

import hashlib
import io
import logging
import stat
import zipfile
import zlib
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import BinaryIO, Iterable, List, Optional

from ..config import ArchiveConfig, Compression
from ..errors import ArchiveError
from ..manifest import MANIFEST_PATH, add_manifest
from ..store import VirtualFileStore

logger = logging.getLogger(__name__)

ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)
ZIP_OPSYS_UNIX = 3

_COMPRESSION_METHODS = {
    Compression.DEFLATE: zipfile.ZIP_DEFLATED,
    Compression.STORED: zipfile.ZIP_STORED,
}


@dataclass
class ArchiveResult:
    """Outcome of an archive build or write.

    Attributes:
        success: Whether a complete archive was produced (and written)
        entries: Entry paths added to the archive, in order
        failed: Entry paths that could not be added
        size_bytes: Archive size in bytes
        checksum: SHA-256 of the archive bytes
        data: Archive bytes (released once written to a stream)
        error: Error message if the archive could not be produced
    """

    success: bool = False
    entries: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    size_bytes: int = 0
    checksum: Optional[str] = None
    data: Optional[bytes] = field(default=None, repr=False)
    error: Optional[str] = None


def normalize_permissions(info: zipfile.ZipInfo, script_extensions: Iterable[str]) -> None:
    """Normalize the Unix mode bits stored in a zip entry.

    Entries not created on Unix are left untouched. Otherwise group and
    other write are cleared, and user execute is set exactly when the path
    has a script extension.
    """
    if info.create_system != ZIP_OPSYS_UNIX:
        return

    attributes = info.external_attr
    attributes &= ~((stat.S_IWGRP | stat.S_IWOTH) << 16)

    if PurePosixPath(info.filename).suffix in tuple(script_extensions):
        attributes |= stat.S_IXUSR << 16
    else:
        attributes &= ~(stat.S_IXUSR << 16)

    info.external_attr = attributes


def _make_entry_info(name: str, config: ArchiveConfig) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(filename=name, date_time=ZIP_EPOCH)
    info.create_system = ZIP_OPSYS_UNIX
    info.external_attr = (stat.S_IFREG | config.default_mode) << 16
    info.compress_type = _COMPRESSION_METHODS[config.compression]
    return info


def _open_archive(buffer: io.BytesIO, config: ArchiveConfig) -> zipfile.ZipFile:
    try:
        return zipfile.ZipFile(
            buffer,
            mode="w",
            compression=_COMPRESSION_METHODS[config.compression],
            compresslevel=config.compresslevel,
        )
    except (OSError, ValueError, RuntimeError) as e:
        raise ArchiveError(
            f"Can't create/open an archive from the new archive buffer: {e}",
            stage="open",
        ) from e


def _add_entry(
    archive: zipfile.ZipFile,
    name: str,
    content: bytes,
    config: ArchiveConfig,
) -> None:
    info = _make_entry_info(name, config)
    normalize_permissions(info, config.script_extensions)
    try:
        archive.writestr(info, content, compresslevel=config.compresslevel)
    except (OSError, ValueError, zipfile.LargeZipFile, zlib.error) as e:
        raise ArchiveError(
            f"Problem adding file {name} to archive: {e}",
            stage="add",
            entry=name,
        ) from e


def _close_archive(archive: zipfile.ZipFile) -> None:
    try:
        archive.close()
    except (OSError, ValueError, zipfile.LargeZipFile) as e:
        raise ArchiveError(f"Problem closing new zip archive: {e}", stage="close") from e


def _read_back(buffer: io.BytesIO) -> bytes:
    buffer.seek(0, io.SEEK_END)
    size = buffer.tell()
    logger.info(f"Zip buffer is of size {size} bytes")

    buffer.seek(0, io.SEEK_SET)
    data = buffer.read(size)
    if len(data) != size:
        raise ArchiveError(
            f"Short read copying zip buffer: expected {size} bytes, got {len(data)}",
            stage="copy",
        )
    return data


def _checksum(data: bytes) -> str:
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


def build_zip(
    store: VirtualFileStore,
    version: str,
    config: Optional[ArchiveConfig] = None,
    manifest_path: str = MANIFEST_PATH,
) -> ArchiveResult:
    """Encode the store (plus manifest) as zip bytes.

    The store lock is held from manifest creation until the archive has
    been read back, so concurrent producers cannot add files mid-walk.

    Args:
        store: Store to serialize
        version: Version recorded in the manifest
        config: Archive encoding options
        manifest_path: Archive path of the manifest entry

    Returns:
        ArchiveResult; ``data`` holds the archive when ``success`` is True
    """
    config = config or ArchiveConfig()
    result = ArchiveResult()

    with store.locked(), io.BytesIO() as buffer:
        add_manifest(store, version, manifest_path)

        try:
            archive = _open_archive(buffer, config)
        except ArchiveError as e:
            logger.error(e.message)
            result.error = e.message
            return result

        logger.info("Zip buffer created, adding files to archive")
        for name, content in store.snapshot():
            logger.debug(f"Adding file {name} to archive buffer ({len(content)} bytes)")
            try:
                _add_entry(archive, name, content, config)
            except ArchiveError as e:
                logger.error(e.message)
                result.failed.append(name)
                continue
            result.entries.append(name)

        try:
            _close_archive(archive)
            data = _read_back(buffer)
        except ArchiveError as e:
            logger.error(e.message)
            result.error = e.message
            return result

    result.success = True
    result.data = data
    result.size_bytes = len(data)
    result.checksum = _checksum(data)
    return result


def write_zip(
    store: VirtualFileStore,
    stream: BinaryIO,
    version: str,
    config: Optional[ArchiveConfig] = None,
    manifest_path: str = MANIFEST_PATH,
) -> ArchiveResult:
    """Build the archive and write it to a binary stream.

    Nothing is written when the archive cannot be produced. The archive
    bytes are released from the result once written.

    Returns:
        ArchiveResult describing the write
    """
    logger.info("Writing zip to stream")
    result = build_zip(store, version, config=config, manifest_path=manifest_path)
    if not result.success:
        return result

    try:
        stream.write(result.data)
        stream.flush()
    except OSError as e:
        logger.error(f"Unable to write zip to stream: {e}")
        result.success = False
        result.error = str(e)
    finally:
        result.data = None

    logger.info(
        "Wrote zip payload",
        extra={
            "entries": len(result.entries),
            "failed": len(result.failed),
            "size_bytes": result.size_bytes,
            "checksum": result.checksum,
        },
    )
    return result
