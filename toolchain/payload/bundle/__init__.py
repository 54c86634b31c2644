"""
Bundle module for toolchain payloads.

Provides the aggregate producers and consumers share:
- Bundle: base class (store, manifest, every output destination)
- ZipBundle: writes a zip archive by default
- PlainBundle: writes the plaintext dump by default
- create_bundle: factory selecting the format from configuration
"""

from .base import Bundle, PlainBundle, ZipBundle, create_bundle

__all__ = [
    "Bundle",
    "ZipBundle",
    "PlainBundle",
    "create_bundle",
]
