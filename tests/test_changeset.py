"""Tests for change-set detection."""

import hashlib

from raysurfer.core.changeset import diff, read_text_file, snapshot


def sha(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class TestDiff:
    def test_new_file_then_no_change(self, tmp_path):
        (tmp_path / "a.ts").write_text("x")
        changes, snap = diff({}, tmp_path)
        assert [c.path for c in changes] == ["a.ts"]
        assert changes[0].content == "x"
        assert snap == {"a.ts": sha("x")}

        changes, snap2 = diff(snap, tmp_path)
        assert changes == []
        assert snap2 == snap

    def test_rewrite_with_identical_content_is_not_a_change(self, tmp_path):
        f = tmp_path / "same.py"
        f.write_text("print('hi')\n")
        base = snapshot(tmp_path)
        f.write_text("print('hi')\n")
        changes, _ = diff(base, tmp_path)
        assert changes == []

    def test_modified_file_is_a_change(self, tmp_path):
        f = tmp_path / "m.py"
        f.write_text("v1")
        base = snapshot(tmp_path)
        f.write_text("v2")
        changes, snap = diff(base, tmp_path)
        assert [c.path for c in changes] == ["m.py"]
        assert snap["m.py"] == sha("v2")

    def test_binary_files_never_appear(self, tmp_path):
        (tmp_path / "blob.bin").write_bytes(b"abc\x00def")
        (tmp_path / "ok.txt").write_text("fine")
        changes, snap = diff({}, tmp_path)
        assert [c.path for c in changes] == ["ok.txt"]
        assert "blob.bin" not in snap

    def test_non_utf8_skipped(self, tmp_path):
        (tmp_path / "latin.txt").write_bytes(b"caf\xe9")
        changes, snap = diff({}, tmp_path)
        assert changes == []
        assert snap == {}

    def test_deletion_is_not_reported(self, tmp_path):
        f = tmp_path / "gone.py"
        f.write_text("bye")
        base = snapshot(tmp_path)
        f.unlink()
        changes, snap = diff(base, tmp_path)
        assert changes == []
        assert snap == {}

    def test_identical_content_at_two_paths_both_reported(self, tmp_path):
        (tmp_path / "one.py").write_text("dup")
        (tmp_path / "two.py").write_text("dup")
        changes, _ = diff({}, tmp_path)
        assert [c.path for c in changes] == ["one.py", "two.py"]

    def test_nested_paths_use_forward_slashes_in_order(self, tmp_path):
        (tmp_path / "b").mkdir()
        (tmp_path / "a" / "z").mkdir(parents=True)
        (tmp_path / "b" / "x.py").write_text("1")
        (tmp_path / "a" / "z" / "y.py").write_text("2")
        (tmp_path / "root.py").write_text("3")
        changes, _ = diff({}, tmp_path)
        assert [c.path for c in changes] == ["a/z/y.py", "b/x.py", "root.py"]

    def test_missing_root(self, tmp_path):
        assert diff({"a": "b"}, tmp_path / "nope") == ([], {})
        assert snapshot(tmp_path / "nope") == {}


class TestReadTextFile:
    def test_reads_text(self, tmp_path):
        f = tmp_path / "t.txt"
        f.write_text("hello")
        assert read_text_file(f) == "hello"

    def test_missing_and_binary(self, tmp_path):
        assert read_text_file(tmp_path / "missing") is None
        b = tmp_path / "b"
        b.write_bytes(b"\x00\x01")
        assert read_text_file(b) is None
