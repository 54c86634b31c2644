"""
Unit tests for the plain serializers.

Tests cover:
- Text dump layout and trailing newline handling
- Directory tree writes
- Partial-failure tolerance for directory writes
"""

import io
import pathlib
import tempfile

import pytest

from toolchain.payload.serialize import write_plain_dir, write_plain_text
from toolchain.payload.store import VirtualFileStore

SEP = "------------------------------------------\n"


@pytest.fixture
def store():
    store = VirtualFileStore("out/")
    store.get_file("run.sh").write(b"#!/bin/sh\necho hi\n")
    store.get_file("a.txt").write(b"hello")
    return store


@pytest.fixture
def tmp_root():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield pathlib.Path(tmpdir)


class TestWritePlainText:
    """Tests for write_plain_text()."""

    def test_scenario_dump(self, store):
        """Paths listed sorted; missing trailing newline added."""
        stream = io.BytesIO()

        write_plain_text(store, stream)

        expected = (
            SEP
            + "Plaintext payload: out/\n"
            + SEP
            + "Manifest:\n"
            + "out/a.txt\n"
            + "out/run.sh\n"
            + SEP
            + "File: out/a.txt\n"
            + "hello\n"
            + SEP
            + "File: out/run.sh\n"
            + "#!/bin/sh\necho hi\n"
            + SEP
        )
        assert stream.getvalue().decode("utf-8") == expected

    def test_empty_file_section_on_own_line(self):
        """An empty file still yields a newline before the separator."""
        store = VirtualFileStore("")
        store.get_file("empty")
        stream = io.BytesIO()

        write_plain_text(store, stream)

        assert stream.getvalue().endswith(b"File: empty\n\n" + SEP.encode())

    def test_dump_is_repeatable(self, store):
        first, second = io.BytesIO(), io.BytesIO()

        write_plain_text(store, first)
        write_plain_text(store, second)

        assert first.getvalue() == second.getvalue()


class TestWritePlainDir:
    """Tests for write_plain_dir()."""

    def test_writes_tree(self, store, tmp_root):
        """Every entry lands under the root with its content."""
        result = write_plain_dir(store, tmp_root)

        assert result.success
        assert result.written == ["out/a.txt", "out/run.sh"]
        assert (tmp_root / "out" / "a.txt").read_bytes() == b"hello"
        assert (tmp_root / "out" / "run.sh").read_bytes() == b"#!/bin/sh\necho hi\n"

    def test_creates_nested_directories(self, tmp_root):
        store = VirtualFileStore("out/")
        store.get_file("deep/er/file.ll").write(b"; llvm")

        write_plain_dir(store, tmp_root)

        assert (tmp_root / "out" / "deep" / "er" / "file.ll").read_bytes() == b"; llvm"

    def test_unwritable_file_is_skipped(self, store, tmp_root):
        """A file that cannot be opened does not stop the others."""
        # a directory where the file should go makes open() fail
        (tmp_root / "out" / "a.txt").mkdir(parents=True)

        result = write_plain_dir(store, tmp_root)

        assert not result.success
        assert result.failed == ["out/a.txt"]
        assert result.written == ["out/run.sh"]
        assert (tmp_root / "out" / "run.sh").read_bytes() == b"#!/bin/sh\necho hi\n"

    def test_permission_denied_is_skipped(self, store, tmp_root, monkeypatch, caplog):
        """Simulated permission-denied on one file is logged and skipped."""
        real_open = pathlib.Path.open

        def fake_open(self, *args, **kwargs):
            if self.name == "a.txt":
                raise PermissionError(13, "Permission denied", str(self))
            return real_open(self, *args, **kwargs)

        monkeypatch.setattr(pathlib.Path, "open", fake_open)

        result = write_plain_dir(store, tmp_root)

        assert result.failed == ["out/a.txt"]
        assert not (tmp_root / "out" / "a.txt").exists()
        assert (tmp_root / "out" / "run.sh").exists()
        assert "Unable to open output file" in caplog.text
