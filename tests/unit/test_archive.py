"""
Unit tests for the zip archive serializer.

Tests cover:
- Archive round-trip (entries plus one manifest)
- Permission normalization
- Reproducible bytes
- Failure policy (open/close abort, per-entry skip)
"""

import io
import json
import random
import stat
import zipfile

import pytest

from toolchain.payload.config import ArchiveConfig, Compression
from toolchain.payload.serialize import build_zip, normalize_permissions, write_zip
from toolchain.payload.serialize import archive as archive_module
from toolchain.payload.store import VirtualFileStore


def unix_mode(info: zipfile.ZipInfo) -> int:
    return (info.external_attr >> 16) & 0o7777


@pytest.fixture
def store():
    store = VirtualFileStore("out/")
    store.get_file("a.txt").write(b"hello")
    store.get_file("run.sh").write(b"#!/bin/sh\necho hi\n")
    return store


class TestNormalizePermissions:
    """Tests for normalize_permissions()."""

    def make_info(self, name: str, mode: int, create_system: int = 3) -> zipfile.ZipInfo:
        info = zipfile.ZipInfo(name)
        info.create_system = create_system
        info.external_attr = (stat.S_IFREG | mode) << 16
        return info

    def test_clears_group_and_other_write(self):
        info = self.make_info("out/a.txt", 0o777)

        normalize_permissions(info, (".sh",))

        assert unix_mode(info) == 0o655

    def test_clears_user_execute_for_non_scripts(self):
        info = self.make_info("out/a.txt", 0o755)

        normalize_permissions(info, (".sh",))

        assert unix_mode(info) == 0o655

    def test_sets_user_execute_for_scripts(self):
        info = self.make_info("out/run.sh", 0o666)

        normalize_permissions(info, (".sh",))

        assert unix_mode(info) == 0o744

    def test_non_script_not_executable(self):
        info = self.make_info("out/run.sh.txt", 0o666)

        normalize_permissions(info, (".sh",))

        assert unix_mode(info) == 0o644

    def test_extension_only_name_is_not_a_script(self):
        """A bare '.sh' file has no extension."""
        info = self.make_info("out/.sh", 0o666)

        normalize_permissions(info, (".sh",))

        assert unix_mode(info) == 0o644

    def test_keeps_file_type_bits(self):
        info = self.make_info("out/a.txt", 0o666)

        normalize_permissions(info, (".sh",))

        assert stat.S_ISREG(info.external_attr >> 16)

    def test_non_unix_entry_untouched(self):
        """Entries not created on Unix keep their attributes."""
        info = self.make_info("out/run.sh", 0o666, create_system=0)
        before = info.external_attr

        normalize_permissions(info, (".sh",))

        assert info.external_attr == before


class TestBuildZip:
    """Tests for build_zip()."""

    def test_roundtrip_entries_and_manifest(self, store):
        """Archive holds every entry plus exactly one manifest."""
        result = build_zip(store, "1.2.3")

        assert result.success
        assert result.failed == []
        with zipfile.ZipFile(io.BytesIO(result.data)) as zf:
            assert zf.namelist() == ["manifest/manifest.json", "out/a.txt", "out/run.sh"]
            assert zf.read("out/a.txt") == b"hello"
            assert zf.read("out/run.sh") == b"#!/bin/sh\necho hi\n"
            manifest = json.loads(zf.read("manifest/manifest.json"))
            assert zf.read("manifest/manifest.json").endswith(b"\n")
        assert manifest == {"version": "1.2.3", "contents_path": "out/"}

    def test_scenario_permissions(self, store):
        """run.sh is user-executable, a.txt is not; nothing group/other writable."""
        result = build_zip(store, "1.2.3")

        with zipfile.ZipFile(io.BytesIO(result.data)) as zf:
            infos = {info.filename: info for info in zf.infolist()}

        assert unix_mode(infos["out/run.sh"]) & stat.S_IXUSR
        assert not unix_mode(infos["out/a.txt"]) & stat.S_IXUSR
        for info in infos.values():
            assert info.create_system == 3
            assert unix_mode(info) & (stat.S_IWGRP | stat.S_IWOTH) == 0

    def test_custom_script_extensions(self, store):
        store.get_file("tool.py").write(b"print('hi')\n")
        config = ArchiveConfig(script_extensions=(".sh", ".py"))

        result = build_zip(store, "1.0.0", config=config)

        with zipfile.ZipFile(io.BytesIO(result.data)) as zf:
            assert unix_mode(zf.getinfo("out/tool.py")) & stat.S_IXUSR

    def test_executable_default_mode(self, store):
        """Only scripts stay executable when the default mode has execute bits."""
        config = ArchiveConfig(default_mode=0o755)

        result = build_zip(store, "1.0.0", config=config)

        with zipfile.ZipFile(io.BytesIO(result.data)) as zf:
            assert unix_mode(zf.getinfo("out/a.txt")) == 0o655
            assert unix_mode(zf.getinfo("out/run.sh")) == 0o755
            assert not unix_mode(zf.getinfo("manifest/manifest.json")) & stat.S_IXUSR

    def test_stored_compression(self, store):
        config = ArchiveConfig(compression=Compression.STORED)

        result = build_zip(store, "1.0.0", config=config)

        with zipfile.ZipFile(io.BytesIO(result.data)) as zf:
            assert all(i.compress_type == zipfile.ZIP_STORED for i in zf.infolist())

    def test_byte_identical_across_insertion_order(self):
        """Insertion order does not affect archive bytes."""
        names = [f"kernel_{i}.qasm" for i in range(20)]
        shuffled = list(names)
        random.Random(3).shuffle(shuffled)

        store1 = VirtualFileStore("out/")
        store2 = VirtualFileStore("out/")
        for name in names:
            store1.get_file(name).write(name.encode())
        for name in shuffled:
            store2.get_file(name).write(name.encode())

        result1 = build_zip(store1, "1.0.0")
        result2 = build_zip(store2, "1.0.0")

        assert result1.data == result2.data
        assert result1.checksum == result2.checksum

    def test_repeated_builds_identical(self, store):
        """Finalization is non-destructive and repeatable."""
        first = build_zip(store, "1.0.0")
        second = build_zip(store, "1.0.0")

        assert first.data == second.data
        assert store.ordered_file_names().count("manifest/manifest.json") == 1

    def test_result_metadata(self, store):
        result = build_zip(store, "1.0.0")

        assert result.size_bytes == len(result.data)
        assert result.checksum.startswith("sha256:")
        assert result.entries == ["manifest/manifest.json", "out/a.txt", "out/run.sh"]

    def test_open_failure_aborts(self, store, monkeypatch, caplog):
        """Archive-open failure returns early with an error."""

        def broken_zipfile(*args, **kwargs):
            raise ValueError("compression not supported")

        monkeypatch.setattr(archive_module.zipfile, "ZipFile", broken_zipfile)

        result = build_zip(store, "1.0.0")

        assert not result.success
        assert result.data is None
        assert "Can't create/open an archive" in result.error
        assert "Can't create/open an archive" in caplog.text

    def test_entry_failure_is_skipped(self, store, monkeypatch, caplog):
        """One failing entry is skipped; the rest are archived."""
        real_writestr = zipfile.ZipFile.writestr

        def flaky_writestr(self, zinfo_or_arcname, data, *args, **kwargs):
            if zinfo_or_arcname.filename == "out/a.txt":
                raise zipfile.LargeZipFile("too big")
            return real_writestr(self, zinfo_or_arcname, data, *args, **kwargs)

        monkeypatch.setattr(zipfile.ZipFile, "writestr", flaky_writestr)

        result = build_zip(store, "1.0.0")

        assert result.success
        assert result.failed == ["out/a.txt"]
        with zipfile.ZipFile(io.BytesIO(result.data)) as zf:
            assert zf.namelist() == ["manifest/manifest.json", "out/run.sh"]
        assert "Problem adding file out/a.txt" in caplog.text

    def test_close_failure_aborts(self, store, monkeypatch):
        """Close failure discards the archive."""
        real_close = zipfile.ZipFile.close

        def broken_close(self):
            real_close(self)
            raise OSError("disk on fire")

        monkeypatch.setattr(zipfile.ZipFile, "close", broken_close)

        result = build_zip(store, "1.0.0")

        assert not result.success
        assert result.data is None
        assert "Problem closing new zip archive" in result.error


class TestWriteZip:
    """Tests for write_zip()."""

    def test_writes_archive_to_stream(self, store):
        stream = io.BytesIO()

        result = write_zip(store, stream, "1.0.0")

        assert result.success
        assert result.data is None
        assert len(stream.getvalue()) == result.size_bytes
        with zipfile.ZipFile(io.BytesIO(stream.getvalue())) as zf:
            assert "out/a.txt" in zf.namelist()

    def test_nothing_written_on_close_failure(self, store, monkeypatch):
        real_close = zipfile.ZipFile.close

        def broken_close(self):
            real_close(self)
            raise OSError("disk on fire")

        monkeypatch.setattr(zipfile.ZipFile, "close", broken_close)
        stream = io.BytesIO()

        result = write_zip(store, stream, "1.0.0")

        assert not result.success
        assert stream.getvalue() == b""

    def test_stream_failure_reported(self, store):
        class BrokenStream(io.RawIOBase):
            def writable(self):
                return True

            def write(self, data):
                raise OSError("broken pipe")

        result = write_zip(store, BrokenStream(), "1.0.0")

        assert not result.success
        assert "broken pipe" in result.error
