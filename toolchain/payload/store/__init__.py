"""
Store module for payload bundles.

This module holds the in-memory virtual files that make up a bundle:
- VirtualFileStore: thread-safe path -> buffer mapping
- VirtualFile: append-only buffer handle given to producers

Invariants:
    - Keys are unique and never removed
    - Ordered listings are sorted lexicographically
"""

from .virtual_files import VirtualFile, VirtualFileStore

__all__ = ["VirtualFileStore", "VirtualFile"]
