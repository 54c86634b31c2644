"""
Manifest builder for payload archives.

Every archive carries one synthesized entry describing where its
contents live and which toolchain version produced it:

    manifest/manifest.json
    {"contents_path":"out/","version":"0.4.0"}

The record is compact JSON with sorted keys, terminated by a newline,
so identical bundles produce identical manifest bytes.

Invariants:
    - The manifest lives outside the producer prefix
    - Rebuilding overwrites the previous manifest (exactly one entry)
    - The manifest is written under the store lock

How to change safely:
    - Add new fields, don't remove or rename existing ones
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict

from ..config import DEFAULT_MANIFEST_PATH
from ..store import VirtualFileStore

logger = logging.getLogger(__name__)

MANIFEST_PATH = DEFAULT_MANIFEST_PATH


@dataclass(frozen=True)
class BundleManifest:
    """Provenance record embedded in every archive.

    Attributes:
        version: Version of the toolchain that built the bundle
        contents_path: The bundle prefix (root of the packaged files)
    """

    version: str
    contents_path: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "version": self.version,
            "contents_path": self.contents_path,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> BundleManifest:
        """Create from dictionary."""
        return cls(
            version=data["version"],
            contents_path=data["contents_path"],
        )

    def to_json(self) -> str:
        """Compact, key-sorted JSON terminated by a newline."""
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":")) + "\n"


def add_manifest(
    store: VirtualFileStore,
    version: str,
    path: str = MANIFEST_PATH,
) -> BundleManifest:
    """Write (or overwrite) the manifest entry in the store.

    Args:
        store: Store to add the manifest to
        version: Version string to record
        path: Archive path of the manifest

    Returns:
        The manifest that was written
    """
    with store.locked():
        manifest = BundleManifest(version=version, contents_path=store.prefix)
        store.put(path, manifest.to_json())

    logger.debug(
        "Added manifest",
        extra={"manifest_path": path, "version": version, "contents_path": store.prefix},
    )
    return manifest
