"""
Toolchain Payload Test Suite.

This package contains:
- unit/: Unit tests (store, manifest, serializers, config)
- integration/: Integration tests (bundle end to end, CLI, mocked S3)
"""
