"""Tests for the local hash scanner."""

import hashlib

from rcmirror.sync.scanner import LocalHashScanner


def md5(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


class TestLocalHashScanner:
    """Test LocalHashScanner."""

    def test_scan_hashes_nested_files(self, tmp_path):
        (tmp_path / "b.txt").write_bytes(b"bee")
        (tmp_path / "sub" / "deeper").mkdir(parents=True)
        (tmp_path / "sub" / "deeper" / "a.txt").write_bytes(b"ay")

        records = LocalHashScanner().scan(tmp_path)

        assert [(r.path, r.hash) for r in records] == [
            ("b.txt", md5(b"bee")),
            ("sub/deeper/a.txt", md5(b"ay")),
        ]

    def test_base_path_keeps_paths_relative_to_root(self, tmp_path):
        """Scanning a subtree still yields paths relative to the mirror root."""
        (tmp_path / "Pics").mkdir()
        (tmp_path / "Pics" / "x.jpg").write_bytes(b"x")

        records = list(
            LocalHashScanner().iter_hashes(tmp_path / "Pics", base_path=tmp_path)
        )

        assert [r.path for r in records] == ["Pics/x.jpg"]

    def test_exclude_dot_files(self, tmp_path):
        (tmp_path / ".hidden").write_bytes(b"h")
        (tmp_path / "visible").write_bytes(b"v")

        records = LocalHashScanner(exclude_dot_files=True).scan(tmp_path)

        assert [r.path for r in records] == ["visible"]

    def test_missing_directory_yields_nothing(self, tmp_path):
        assert LocalHashScanner().scan(tmp_path / "nope") == []
