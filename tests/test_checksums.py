"""
Tests for change detection — content/structure hashes and the write gate.
"""

import json
import os
from pathlib import Path

from mercato_cli.core.persistence.checksums import (
    ChecksumRecord,
    content_hash,
    read_checksum_record,
    structure_entries,
    structure_hash,
    write_checksum_record,
    write_if_changed,
)

from tests.conftest import write


def _bump_mtime(path: Path, delta_ns: int = 5_000_000_000) -> None:
    st = path.stat()
    os.utime(path, ns=(st.st_atime_ns, st.st_mtime_ns + delta_ns))


class TestContentHash:
    def test_stable(self):
        assert content_hash("abc") == content_hash("abc")
        assert content_hash("abc") != content_hash("abd")

    def test_md5_hex(self):
        assert content_hash("") == "d41d8cd98f00b204e9800998ecf8427e"


class TestChecksumRecord:
    """Sidecar persistence."""

    def test_roundtrip(self, tmp_path: Path):
        path = tmp_path / "x.checksum"
        write_checksum_record(path, ChecksumRecord(content="a", structure="b"))
        assert json.loads(path.read_text()) == {"content": "a", "structure": "b"}
        assert read_checksum_record(path) == ChecksumRecord(content="a", structure="b")

    def test_missing(self, tmp_path: Path):
        assert read_checksum_record(tmp_path / "nope.checksum") is None

    def test_corrupt(self, tmp_path: Path):
        path = write(tmp_path / "x.checksum", "not json {{{")
        assert read_checksum_record(path) is None

    def test_wrong_shape(self, tmp_path: Path):
        path = write(tmp_path / "x.checksum", '{"content": 1}')
        assert read_checksum_record(path) is None


class TestStructureHash:
    """The file-set digest over tracked roots."""

    def test_missing_root(self, tmp_path: Path):
        missing = tmp_path / "gone"
        assert structure_entries([missing]) == [f"missing:{missing.resolve()}"]

    def test_stable_when_untouched(self, tmp_path: Path):
        write(tmp_path / "mod" / "a.py", "x = 1\n")
        assert structure_hash([tmp_path / "mod"]) == structure_hash([tmp_path / "mod"])

    def test_roots_are_deduplicated(self, tmp_path: Path):
        root = tmp_path / "mod"
        write(root / "a.py")
        assert structure_hash([root, root]) == structure_hash([root])

    def test_new_file_changes_hash(self, tmp_path: Path):
        root = tmp_path / "mod"
        write(root / "a.py")
        before = structure_hash([root])
        write(root / "sub" / "b.py")
        assert structure_hash([root]) != before

    def test_touch_changes_hash(self, tmp_path: Path):
        root = tmp_path / "mod"
        target = write(root / "a.py", "x = 1\n")
        before = structure_hash([root])
        _bump_mtime(target)
        assert structure_hash([root]) != before

    def test_bytecode_cache_ignored(self, tmp_path: Path):
        root = tmp_path / "mod"
        write(root / "a.py")
        entries = structure_entries([root])
        cache = root / "__pycache__"
        cache.mkdir()
        (cache / "a.cpython-312.pyc").write_bytes(b"\0")
        assert structure_entries([root]) == entries

    def test_directory_touch_ignored(self, tmp_path: Path):
        root = tmp_path / "mod"
        write(root / "sub" / "a.py")
        before = structure_hash([root])
        _bump_mtime(root / "sub")
        _bump_mtime(root)
        assert structure_hash([root]) == before

    def test_rename_changes_hash(self, tmp_path: Path):
        root = tmp_path / "mod"
        target = write(root / "a.py", "x = 1\n")
        before = structure_hash([root])
        target.rename(root / "b.py")
        assert structure_hash([root]) != before

    def test_error_markers_change_hash(self, tmp_path: Path):
        root = tmp_path / "mod"
        write(root / "a.py")
        assert structure_hash([root]) != structure_hash([root], ["error:x:boom"])


class TestWriteIfChanged:
    """The artifact write gate."""

    def test_first_write(self, tmp_path: Path):
        out = tmp_path / "gen" / "a.py"
        assert write_if_changed(out, "x = 1\n", tmp_path / "gen" / "a.checksum", "s1") is True
        assert out.read_text() == "x = 1\n"
        assert read_checksum_record(tmp_path / "gen" / "a.checksum") == ChecksumRecord(
            content=content_hash("x = 1\n"), structure="s1",
        )

    def test_unchanged_is_not_rewritten(self, tmp_path: Path):
        out, sidecar = tmp_path / "a.py", tmp_path / "a.checksum"
        write_if_changed(out, "x = 1\n", sidecar, "s1")
        mtime = out.stat().st_mtime_ns
        assert write_if_changed(out, "x = 1\n", sidecar, "s1") is False
        assert out.stat().st_mtime_ns == mtime

    def test_structure_change_rewrites(self, tmp_path: Path):
        out, sidecar = tmp_path / "a.py", tmp_path / "a.checksum"
        write_if_changed(out, "x = 1\n", sidecar, "s1")
        assert write_if_changed(out, "x = 1\n", sidecar, "s2") is True

    def test_content_change_rewrites(self, tmp_path: Path):
        out, sidecar = tmp_path / "a.py", tmp_path / "a.checksum"
        write_if_changed(out, "x = 1\n", sidecar, "s1")
        assert write_if_changed(out, "x = 2\n", sidecar, "s1") is True
        assert out.read_text() == "x = 2\n"

    def test_missing_artifact_rewrites(self, tmp_path: Path):
        out, sidecar = tmp_path / "a.py", tmp_path / "a.checksum"
        write_if_changed(out, "x = 1\n", sidecar, "s1")
        out.unlink()
        assert write_if_changed(out, "x = 1\n", sidecar, "s1") is True
        assert out.is_file()

    def test_no_temp_files_left(self, tmp_path: Path):
        write_if_changed(tmp_path / "a.py", "x\n", tmp_path / "a.checksum", "s")
        assert sorted(p.name for p in tmp_path.iterdir()) == ["a.checksum", "a.py"]
