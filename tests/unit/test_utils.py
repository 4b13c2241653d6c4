"""Unit tests for CLI utility functions."""

import pytest

from cloudcompose.errors import ConfigurationError
from cloudcompose.utils import bytes_to_mb, parse_bytes, parse_duration, parse_runtime_flags

MIB = 1024 * 1024


class TestParseBytes:
    """Tests for byte size parsing."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("512MB", 512 * MIB),
            ("512MiB", 512 * MIB),
            ("512m", 512 * MIB),
            ("1g", 1024 * MIB),
            ("1.5GB", 1536 * MIB),
            ("2048", 2048),
            ("4k", 4096),
        ],
    )
    def test_units(self, value, expected):
        """Units are binary and case-insensitive."""
        assert parse_bytes(value) == expected

    def test_int_passthrough(self):
        """Integers are already bytes."""
        assert parse_bytes(1024) == 1024

    def test_invalid(self):
        """Garbage raises ValueError."""
        with pytest.raises(ValueError):
            parse_bytes("lots")

    def test_bytes_to_mb_rounds_down(self):
        """Partial megabytes are dropped."""
        assert bytes_to_mb(MIB + 10) == 1
        assert bytes_to_mb(10) == 0


class TestParseDuration:
    """Tests for duration parsing."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("30s", 30.0),
            ("500ms", 0.5),
            ("1m", 60.0),
            ("1m30s", 90.0),
            ("2h", 7200.0),
            ("5", 5.0),
        ],
    )
    def test_valid(self, value, expected):
        """Durations convert to seconds."""
        assert parse_duration(value) == pytest.approx(expected)

    @pytest.mark.parametrize("value", ["", "soon", "10x", "s30"])
    def test_invalid(self, value):
        """Unparseable durations raise ValueError."""
        with pytest.raises(ValueError):
            parse_duration(value)


class TestParseRuntimeFlags:
    """Tests for SERVICE=REF parsing."""

    def test_parses_pairs(self):
        """Each flag maps a service to an image."""
        flags = ("web=nginx:1.25", "api=unikraft.org/python:3.12")
        assert parse_runtime_flags(flags) == {
            "web": "nginx:1.25",
            "api": "unikraft.org/python:3.12",
        }

    def test_ref_may_contain_equals(self):
        """Only the first = separates service from reference."""
        assert parse_runtime_flags(("web=img@sha256:a=b",)) == {"web": "img@sha256:a=b"}

    @pytest.mark.parametrize("flag", ["web", "=nginx", "web="])
    def test_invalid(self, flag):
        """Malformed flags are configuration errors."""
        with pytest.raises(ConfigurationError):
            parse_runtime_flags((flag,))
