"""
Plain serializers for payload bundles.

Two destinations that keep the bundle human-inspectable:
- write_plain_dir: materialize every entry as a real file under a root
- write_plain_text: dump every entry into one text stream with banners

Text dump format:
    ------------------------------------------
    Plaintext payload: out/
    ------------------------------------------
    Manifest:
    out/a.txt
    out/run.sh
    ------------------------------------------
    File: out/a.txt
    hello
    ------------------------------------------
    ...

Invariants:
    - Entries are emitted in lexicographic path order
    - Every file section ends on its own line (a newline is appended
      when the content does not already end with one)
    - One unwritable file never aborts a directory write

How to change safely:
    - The text dump is read by people and diffed in tests; keep banners stable
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, List, Union

from ..store import VirtualFileStore

logger = logging.getLogger(__name__)

SEPARATOR = b"------------------------------------------\n"


@dataclass
class PlainWriteResult:
    """Outcome of a directory write.

    Attributes:
        root: Destination root directory
        written: Entry paths that were written
        failed: Entry paths that could not be written
    """

    root: str
    written: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed


def write_plain_dir(store: VirtualFileStore, root: Union[str, Path]) -> PlainWriteResult:
    """Write every entry to ``root/<entry path>``.

    Parent directories are created as needed. A file that cannot be
    created or written is logged and skipped; the rest are still written.

    Args:
        store: Store to serialize
        root: Destination root directory

    Returns:
        PlainWriteResult listing written and failed entries
    """
    root_path = Path(root)
    result = PlainWriteResult(root=str(root_path))

    with store.locked():
        for name, content in store.snapshot():
            target = root_path / name
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                with target.open("wb") as f:
                    f.write(content)
            except OSError as e:
                logger.error(f"Unable to open output file {target}: {e}")
                result.failed.append(name)
                continue
            result.written.append(name)

    logger.info(
        "Wrote plain payload",
        extra={"root": str(root_path), "written": len(result.written), "failed": len(result.failed)},
    )
    return result


def write_plain_text(store: VirtualFileStore, stream: BinaryIO) -> None:
    """Dump the bundle as banner-separated text into a binary stream."""
    with store.locked():
        entries = store.snapshot()

        stream.write(SEPARATOR)
        stream.write(f"Plaintext payload: {store.prefix}\n".encode("utf-8"))
        stream.write(SEPARATOR)
        stream.write(b"Manifest:\n")
        for name, _ in entries:
            stream.write(name.encode("utf-8") + b"\n")
        stream.write(SEPARATOR)

        for name, content in entries:
            stream.write(f"File: {name}\n".encode("utf-8"))
            stream.write(content)
            if not content.endswith(b"\n"):
                stream.write(b"\n")
            stream.write(SEPARATOR)

    stream.flush()
