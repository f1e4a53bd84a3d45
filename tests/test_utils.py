"""Unit tests for utility functions."""

import hashlib
from datetime import date

import pytest

from rcmirror.models import TransferOutcome
from rcmirror.utils import (
    format_size,
    max_age_days,
    md5_file,
    parse_size,
)


class TestParseSize:
    """Tests for parse_size function."""

    def test_mebibytes(self):
        """1.50 Mi is exactly 1.5 * 1024^2 bytes."""
        assert parse_size("1.50 Mi") == 1572864

    def test_no_unit(self):
        assert parse_size("0 ") == 0
        assert parse_size("512") == 512

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("1Ki", 1024),
            ("1 KiB", 1024),
            ("2 Gi", 2 * 1024**3),
            ("1Ti", 1024**4),
            ("3mi", 3 * 1024**2),
        ],
    )
    def test_binary_units(self, value, expected):
        assert parse_size(value) == expected

    def test_invalid(self):
        with pytest.raises(ValueError, match="Invalid size"):
            parse_size("big")


class TestFormatSize:
    """Tests for format_size function."""

    def test_bytes(self):
        assert format_size(256) == "256 B"

    def test_megabytes(self):
        assert format_size(1572864) == "1.5 MB"


class TestMd5File:
    """Tests for md5_file function."""

    def test_matches_hashlib(self, tmp_path):
        """Digest is the lowercase hex MD5 rclone prints."""
        path = tmp_path / "f.bin"
        path.write_bytes(b"hello world" * 1000)

        assert md5_file(path, chunk_size=7) == hashlib.md5(
            b"hello world" * 1000
        ).hexdigest()


class TestMaxAgeDays:
    """Tests for max_age_days function."""

    def test_no_previous_run(self):
        assert max_age_days(None) is None

    def test_adds_one_day(self):
        assert max_age_days(date(2024, 1, 1), today=date(2024, 1, 11)) == 11

    def test_same_day(self):
        assert max_age_days(date(2024, 1, 1), today=date(2024, 1, 1)) == 1


class TestThroughput:
    """Tests for TransferOutcome.throughput."""

    def test_zero_elapsed_is_zero(self):
        outcome = TransferOutcome(attempted=5, succeeded=5, elapsed_seconds=0.0001)

        assert outcome.throughput == 0.0

    def test_rate(self):
        outcome = TransferOutcome(attempted=10, succeeded=10, elapsed_seconds=4.0)

        assert outcome.throughput == 2.5
