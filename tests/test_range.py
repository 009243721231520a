"""Tests for Range header parsing."""

import pytest

from sandboxdav.errors import InvalidRange
from sandboxdav.ranges import content_range, parse_range_header


class TestParseRangeHeader:
    def test_none_header(self):
        assert parse_range_header(None, 100) is None

    def test_empty_header(self):
        assert parse_range_header("", 100) is None

    def test_start_end(self):
        assert parse_range_header("bytes=0-9", 100) == (0, 9)

    def test_open_ended(self):
        assert parse_range_header("bytes=90-", 100) == (90, 99)

    def test_suffix(self):
        assert parse_range_header("bytes=-10", 100) == (90, 99)

    def test_suffix_longer_than_entity(self):
        assert parse_range_header("bytes=-500", 100) == (0, 99)

    def test_end_clamped(self):
        assert parse_range_header("bytes=50-1000", 100) == (50, 99)

    def test_start_past_end_of_file(self):
        assert parse_range_header("bytes=100-200", 100) is None

    def test_start_after_end(self):
        assert parse_range_header("bytes=20-10", 100) is None

    def test_bare_dash(self):
        assert parse_range_header("bytes=-", 100) is None

    @pytest.mark.parametrize("header", ["items=0-5", "bytes=0-1,3-4", "bytes=a-b", "garbage"])
    def test_unparseable_is_ignored(self, header):
        assert parse_range_header(header, 100) is None

    def test_strict_unsatisfiable_raises(self):
        with pytest.raises(InvalidRange) as excinfo:
            parse_range_header("bytes=100-200", 100, strict=True)
        assert excinfo.value.http_status == 416
        assert excinfo.value.headers["Content-Range"] == "bytes */100"

    def test_strict_unparseable_is_still_ignored(self):
        assert parse_range_header("items=0-5", 100, strict=True) is None

    def test_empty_entity(self):
        assert parse_range_header("bytes=0-", 0) is None


def test_content_range():
    assert content_range(0, 9, 100) == "bytes 0-9/100"
