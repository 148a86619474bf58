"""Tests for gemstats.core.log_parser"""

from collections import Counter

from gemstats.core.log_parser import download_counts, parse_line
from tests.conftest import log_line


class TestParseLine:
    def test_gem_download(self):
        assert parse_line(log_line("/gems/rails-4.0.0.gem", "200")) == "rails-4.0.0"

    def test_not_modified_counts_as_download(self):
        assert parse_line(log_line("/gems/rails-4.0.0.gem", "304")) == "rails-4.0.0"

    def test_other_statuses_are_skipped(self):
        for status in ("404", "403", "500", "206", "301"):
            assert parse_line(log_line("/gems/rails-4.0.0.gem", status)) is None

    def test_non_numeric_status_is_skipped(self):
        assert parse_line(log_line("/gems/rails-4.0.0.gem", "OK")) is None

    def test_non_gem_paths_are_skipped(self):
        assert parse_line(log_line("/api/v1/gems/rails.json")) is None
        assert parse_line(log_line("/specs.4.8.gz")) is None
        assert parse_line(log_line("/quick/Marshal.4.8/rails-4.0.0.gemspec.rz")) is None

    def test_platform_gem(self):
        line = log_line("/gems/nokogiri-1.6.6.2-x86-mingw32.gem")
        assert parse_line(line) == "nokogiri-1.6.6.2-x86-mingw32"

    def test_captures_after_last_gems_segment(self):
        assert parse_line(log_line("/mirror/gems/gems/rack-1.6.4.gem")) == "rack-1.6.4"

    def test_short_lines_are_skipped(self):
        assert parse_line("") is None
        assert parse_line("GET /gems/rails-4.0.0.gem 200") is None

    def test_garbage_is_skipped(self):
        assert parse_line("\x00\x01 not a log line at all") is None


class TestDownloadCounts:
    def test_empty_input(self):
        assert download_counts([]) == Counter()

    def test_end_to_end_example(self):
        counts = download_counts([log_line("/gems/rails-4.0.0.gem", "200")])
        assert dict(counts) == {"rails-4.0.0": 1}

    def test_200_and_304_both_count(self):
        lines = [
            log_line("/gems/rails-4.0.0.gem", "200"),
            log_line("/gems/rails-4.0.0.gem", "304"),
        ]
        assert download_counts(lines)["rails-4.0.0"] == 2

    def test_404_is_excluded(self):
        lines = [
            log_line("/gems/rails-4.0.0.gem", "200"),
            log_line("/gems/rails-4.0.0.gem", "404"),
        ]
        assert download_counts(lines)["rails-4.0.0"] == 1

    def test_groups_by_version_in_first_seen_order(self):
        lines = [
            log_line("/gems/rails-4.2.0.gem"),
            log_line("/gems/rack-1.6.4.gem"),
            "garbage\n",
            log_line("/gems/rails-4.2.0.gem"),
            log_line("/gems/rails-4.0.0.gem", "304"),
            log_line("/gems/rack-1.6.4.gem", "500"),
        ]
        counts = download_counts(lines)
        assert counts == Counter({"rails-4.2.0": 2, "rack-1.6.4": 1, "rails-4.0.0": 1})
        assert list(counts) == ["rails-4.2.0", "rack-1.6.4", "rails-4.0.0"]

    def test_reparsing_same_lines_gives_same_counts(self):
        lines = (
            log_line("/gems/rails-4.0.0.gem"),
            log_line("/gems/rake-10.4.2.gem", "304"),
            log_line("/gems/rake-10.4.2.gem"),
        )
        assert download_counts(lines) == download_counts(lines)

    def test_consumes_an_iterator_once(self):
        lines = iter([log_line("/gems/rails-4.0.0.gem")] * 3)
        assert download_counts(lines) == Counter({"rails-4.0.0": 3})
        assert next(lines, None) is None
