"""
Toolchain Payload - deterministic output bundles for compiler pipelines.

This package collects the scattered artifacts produced by a compilation
pipeline (source text, intermediate representations, binaries) into a
single in-memory bundle and materializes it as:
- A plain directory tree
- A human-readable text dump
- A self-contained zip archive with an embedded manifest

Architecture:
    ┌─────────────┐   get_file()   ┌──────────────────┐
    │  Producer   │───────────────▶│ VirtualFileStore │
    │  (stages)   │                └────────┬─────────┘
    └─────────────┘                         │ ordered_file_names()
                        ┌───────────────────┼───────────────────┐
                        │                   │                   │
                        ▼                   ▼                   ▼
                  ┌──────────┐       ┌────────────┐      ┌────────────┐
                  │Directory │       │ Text dump  │      │  Manifest  │
                  │  tree    │       │            │      │  + zip     │
                  └──────────┘       └────────────┘      └─────┬──────┘
                                                               │
                                                               ▼
                                                   stream / file / S3

Invariants:
    - Every producer entry key begins with the bundle prefix
    - Entries are never removed once created
    - Output is byte-identical for identical content, whatever the
      insertion order
    - The manifest is rebuilt before every archive write

How to change safely:
    - Keep the manifest record backward compatible (add fields, never remove)
    - Anything that touches ZipInfo metadata changes archive bytes; re-check
      reproducibility tests

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
