"""
Virtual file store for payload bundles.

The VirtualFileStore is the single source of truth for what is "in" a
bundle: a mapping from logical path to a growable byte buffer. Producer
stages ask for a file by name and write into the returned handle; the
serializers later walk the mapping in sorted order.

Invariants:
    - Every key created through get_file() begins with the store prefix
    - Keys are never removed once inserted
    - Lookup-or-insert is atomic under the store lock
    - Each VirtualFile has its own lock, so appends to one file are never
      torn and writers to different files do not contend

How to change safely:
    - Serializers rely on locked() being re-entrant; keep the RLock
    - Never hand out the raw bytearray of a VirtualFile
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Tuple, Union

logger = logging.getLogger(__name__)

Data = Union[bytes, bytearray, memoryview, str]


def _to_bytes(data: Data) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)


class VirtualFile:
    """A named, append-only byte buffer inside a bundle.

    The handle stays valid for the lifetime of the store and may be
    written to after get_file() returns, without holding the store lock.
    It accepts both bytes and str, so it can be passed as ``file=`` to
    print() or to anything expecting a writable text-ish object.

    Example:
        >>> f = store.get_file("module.mlir")
        >>> f.write("module {}\\n")
        10
        >>> f.getvalue()
        b'module {}\\n'
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._buffer = bytearray()
        self._lock = threading.Lock()

    def write(self, data: Data) -> int:
        """Append data (str is encoded as UTF-8). Returns bytes written."""
        chunk = _to_bytes(data)
        with self._lock:
            self._buffer += chunk
        return len(chunk)

    def writelines(self, lines: Iterable[Data]) -> None:
        for line in lines:
            self.write(line)

    def getvalue(self) -> bytes:
        """Return a copy of the current content."""
        with self._lock:
            return bytes(self._buffer)

    def endswith(self, suffix: bytes) -> bool:
        with self._lock:
            return self._buffer.endswith(suffix)

    def flush(self) -> None:
        pass

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)

    def __repr__(self) -> str:
        return f"VirtualFile(path={self.path!r}, size={len(self)})"


class VirtualFileStore:
    """Thread-safe mapping from logical path to VirtualFile.

    Thread-safety:
        - get_file(), put(), ordered_file_names() and snapshot() take the
          store lock for their whole duration
        - Serializers hold the same lock through locked() while they walk
          the store, so new files block until the write finishes
        - Content writes go through the per-file lock only

    Attributes:
        prefix: Namespace prepended to every producer key

    Example:
        >>> store = VirtualFileStore("out/")
        >>> store.get_file("a.txt").write(b"hello")
        5
        >>> store.ordered_file_names()
        ['out/a.txt']
    """

    def __init__(self, prefix: str = "") -> None:
        self._prefix = prefix
        self._files: Dict[str, VirtualFile] = {}
        self._lock = threading.RLock()

    @property
    def prefix(self) -> str:
        """Namespace prepended to every producer key."""
        return self._prefix

    def get_file(self, name: str) -> VirtualFile:
        """Get or create the file ``prefix + name``.

        Args:
            name: Path relative to the bundle prefix

        Returns:
            Live handle to the file's buffer; the same handle for the same name
        """
        key = self._prefix + name
        with self._lock:
            handle = self._files.get(key)
            if handle is None:
                handle = VirtualFile(key)
                self._files[key] = handle
                logger.debug(f"Created virtual file {key}")
            return handle

    def put(self, key: str, data: Data) -> VirtualFile:
        """Replace the content stored under an absolute key.

        Used for synthesized entries (the manifest) that live outside the
        producer prefix. Last write wins.
        """
        handle = VirtualFile(key)
        handle.write(data)
        with self._lock:
            self._files[key] = handle
        return handle

    def ordered_file_names(self) -> List[str]:
        """All current keys in lexicographic order."""
        with self._lock:
            return sorted(self._files)

    def snapshot(self) -> List[Tuple[str, bytes]]:
        """(path, content) pairs in lexicographic path order."""
        with self._lock:
            return [(key, self._files[key].getvalue()) for key in sorted(self._files)]

    def read(self, key: str) -> bytes:
        """Content of an absolute key.

        Raises:
            KeyError: If the key was never created
        """
        with self._lock:
            return self._files[key].getvalue()

    @contextmanager
    def locked(self) -> Iterator[VirtualFileStore]:
        """Hold the store lock for a multi-step operation."""
        with self._lock:
            yield self

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._files

    def __len__(self) -> int:
        with self._lock:
            return len(self._files)
