"""
Manifest module for payload bundles.

Synthesizes the provenance entry stored in every archive.

Invariants:
    - One manifest per archive, rebuilt right before serialization
"""

from .builder import MANIFEST_PATH, BundleManifest, add_manifest

__all__ = ["BundleManifest", "add_manifest", "MANIFEST_PATH"]
