"""Tests for the rclone output parsers."""

import pytest

from rcmirror.models import HashRecord
from rcmirror.parser import (
    LIVE_SAVINGS_NOTE,
    detect_duplicate_hashes,
    parse_duplicate_summary,
    parse_hash_listing,
    parse_listing,
    split_hash_lines,
)

HASH_A = "a" * 32
HASH_B = "b" * 32
HASH_C = "0123456789abcdef0123456789abcdef"


class TestParseHashListing:
    """Tests for parse_hash_listing."""

    def test_valid_lines_go_to_inventory(self):
        """Lines in '<32 hex>  <path>' format become inventory entries."""
        inventory, invalid = parse_hash_listing(
            [f"{HASH_A}  photos/a.jpg", f"{HASH_C}  docs/My File.txt"]
        )

        assert len(inventory) == 2
        assert inventory.get(HASH_A) == "photos/a.jpg"
        assert inventory.get(HASH_C) == "docs/My File.txt"
        assert invalid == []

    @pytest.mark.parametrize(
        "line",
        [
            "",
            "not a hash line",
            f"{HASH_A} single-space.txt",
            f"{HASH_A}  ",
            f"{'A' * 32}  upper.txt",
            f"{'a' * 31}  short.txt",
            f"{'g' * 32}  nothex.txt",
            f"{' ' * 32}  google-doc-without-hash",
        ],
    )
    def test_invalid_lines_are_collected(self, line):
        """Anything else is routed to the invalid list, never the inventory."""
        inventory, invalid = parse_hash_listing([line])

        assert len(inventory) == 0
        assert invalid == [line]

    def test_invalid_lines_keep_order(self):
        """Invalid lines are reported in input order alongside valid ones."""
        inventory, invalid = parse_hash_listing(
            ["oops", f"{HASH_A}  a.txt", "again"]
        )

        assert len(inventory) == 1
        assert invalid == ["oops", "again"]

    def test_collapse_keeps_last_path(self):
        """Building the inventory overwrites earlier paths for the same hash."""
        inventory, _ = parse_hash_listing([f"{HASH_A}  /x", f"{HASH_A}  /y"])

        assert len(inventory) == 1
        assert inventory.get(HASH_A) == "/y"


class TestDetectDuplicateHashes:
    """Tests for detect_duplicate_hashes."""

    def test_duplicates_found_before_collapse(self):
        """Raw lines reveal the duplicate the inventory would hide."""
        lines = [f"{HASH_A}  /x", f"{HASH_A}  /y", f"{HASH_B}  /z"]

        duplicates = detect_duplicate_hashes(lines)
        inventory, _ = parse_hash_listing(lines)

        assert duplicates == {HASH_A}
        assert len(inventory) == 2

    def test_no_duplicates(self):
        assert detect_duplicate_hashes([f"{HASH_A}  /x", f"{HASH_B}  /y"]) == set()

    def test_accepts_records(self):
        """HashRecords can be passed instead of lines."""
        records, _ = split_hash_lines([f"{HASH_B}  1", f"{HASH_B}  2"])

        assert detect_duplicate_hashes(records) == {HASH_B}

    def test_invalid_lines_ignored(self):
        assert detect_duplicate_hashes(["junk", "junk"]) == set()


class TestParseListing:
    """Tests for parse_listing."""

    def test_strips_blank_lines(self):
        assert parse_listing(["a.txt", "", "  ", "dir/b.txt "]) == [
            "a.txt",
            "dir/b.txt",
        ]


class TestParseDuplicateSummary:
    """Tests for parse_duplicate_summary."""

    def test_group_counts_use_n_minus_one(self):
        """A group of N identical files needs N-1 deletions."""
        log = "2024/01/01 NOTICE: x: Found 3 files with duplicate md5 hashes"

        summary = parse_duplicate_summary(log, simulated=True)

        assert summary.duplicate_files == 2

    def test_multiple_groups_sum(self):
        log = (
            "NOTICE: a: Found 3 files with duplicate md5 hashes\n"
            "NOTICE: b: Found 3 files with duplicate md5 hashes\n"
        )

        summary = parse_duplicate_summary(log, simulated=True)

        assert summary.duplicate_files == 4

    def test_simulated_sizes_are_summed(self):
        """Skipped delete sizes are converted from binary units and added."""
        lines = [
            "NOTICE: a: Found 2 files with duplicate md5 hashes",
            "NOTICE: a/1.jpg: Skipped delete as --dry-run is set (size 1.50 Mi)",
            "NOTICE: a/2.jpg: Skipped delete as --dry-run is set (size 2Ki)",
            "NOTICE: a/3.jpg: Skipped delete as --dry-run is set (size 0 )",
        ]

        summary = parse_duplicate_summary(lines, simulated=True)

        assert summary.duplicate_files == 1
        assert summary.bytes_saved == 1572864 + 2048
        assert summary.bytes_computable is True

    def test_live_run_reports_zero_bytes_with_note(self):
        """Without --dry-run rclone logs no sizes, so savings are not guessed."""
        lines = [
            "NOTICE: a: Found 2 files with duplicate md5 hashes",
            "NOTICE: a/1.jpg: Skipped delete as --dry-run is set (size 1 Mi)",
        ]

        summary = parse_duplicate_summary(lines, simulated=False)

        assert summary.duplicate_files == 1
        assert summary.bytes_saved == 0
        assert summary.bytes_computable is False
        assert summary.note == LIVE_SAVINGS_NOTE

    def test_no_matches_is_zero(self):
        summary = parse_duplicate_summary("nothing to see here", simulated=True)

        assert summary.duplicate_files == 0
        assert summary.bytes_saved == 0

    def test_bad_size_only_drops_that_line(self):
        """A malformed size does not spoil the rest of the parse."""
        lines = [
            "Skipped delete as --dry-run is set (size lots)",
            "Skipped delete as --dry-run is set (size 1 Ki)",
        ]

        summary = parse_duplicate_summary(lines, simulated=True)

        assert summary.bytes_saved == 1024
        assert "no readable size" in summary.note


class TestHashRecord:
    """Tests for HashRecord rendering."""

    def test_to_line_round_trips_through_parser(self):
        record = HashRecord(hash=HASH_C, path="a b/c.txt")

        records, invalid = split_hash_lines([record.to_line()])

        assert records == [record]
        assert invalid == []
