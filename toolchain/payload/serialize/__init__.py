"""
Serialize module for payload bundles.

This module turns a VirtualFileStore into output:
- plain: directory tree and banner-separated text dump
- archive: in-memory zip archive with manifest and normalized permissions

Invariants:
    - All serializers enumerate entries in lexicographic order
    - All serializers hold the store lock for their full walk
"""

from .archive import ArchiveResult, build_zip, normalize_permissions, write_zip
from .plain import PlainWriteResult, write_plain_dir, write_plain_text

__all__ = [
    "ArchiveResult",
    "build_zip",
    "write_zip",
    "normalize_permissions",
    "PlainWriteResult",
    "write_plain_dir",
    "write_plain_text",
]
