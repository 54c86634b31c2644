"""
Shared fixtures for payload tests.
"""

import pytest

from toolchain.payload.bundle import ZipBundle


@pytest.fixture
def scenario_bundle():
    """Bundle with prefix out/ holding a text file and a shell script."""
    bundle = ZipBundle("out/", version="1.2.3")
    bundle.get_file("a.txt").write(b"hello")
    bundle.get_file("run.sh").write(b"#!/bin/sh\necho hi\n")
    return bundle
