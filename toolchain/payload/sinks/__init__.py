"""
Sinks module for payload bundles.

Network destinations for finished bundles:
- S3BundleSink: upload the zip archive plus a sidecar manifest to S3

Invariants:
    - Only complete archives are uploaded
"""

from .s3 import S3BundleSink, UploadInfo

__all__ = ["S3BundleSink", "UploadInfo"]
