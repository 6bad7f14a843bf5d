"""Tests for path validation and filter text escaping."""

import pytest

from ffhuman.core.sanitize import (
    escape_filter_path,
    sanitize_text_param,
    validate_input_path,
    validate_output_path,
)
from ffhuman.errors import PlanError, ToolchainError


class TestSanitizeTextParam:
    """drawtext delimiters are escaped."""

    def test_clean_text_unchanged(self):
        assert sanitize_text_param("Hello world") == "Hello world"

    def test_colon_and_quote(self):
        assert sanitize_text_param("It's 10:30") == "It\\'s 10\\:30"

    def test_percent_doubled(self):
        assert sanitize_text_param("100%") == "100%%"

    def test_backslash_first(self):
        assert sanitize_text_param("a\\b") == "a\\\\b"

    def test_brackets_and_separators(self):
        assert sanitize_text_param("[a];b,c") == "\\[a\\]\\;b\\,c"

    def test_empty(self):
        assert sanitize_text_param("") == ""


class TestInputPaths:
    """Inputs must be readable regular files."""

    def test_existing_file(self, video):
        assert validate_input_path(video).endswith("talk.mp4")

    def test_missing(self, tmp_path):
        with pytest.raises(ToolchainError, match="not found"):
            validate_input_path(str(tmp_path / "nope.mp4"))

    def test_directory(self, tmp_path):
        with pytest.raises(ToolchainError, match="not a file"):
            validate_input_path(str(tmp_path))

    def test_empty(self):
        with pytest.raises(ToolchainError, match="empty"):
            validate_input_path("  ")


class TestOutputPaths:
    """Outputs need an existing directory outside the system folders."""

    def test_new_file(self, tmp_path):
        assert validate_output_path(str(tmp_path / "out.mp4")).endswith("out.mp4")

    def test_system_directory(self):
        with pytest.raises(PlanError, match="unsafe system directory"):
            validate_output_path("/etc/out.mp4")

    def test_missing_directory(self, tmp_path):
        with pytest.raises(PlanError, match="directory not found"):
            validate_output_path(str(tmp_path / "missing" / "out.mp4"))

    def test_directory_as_output(self, tmp_path):
        with pytest.raises(PlanError, match="is a directory"):
            validate_output_path(str(tmp_path))


class TestEscapeFilterPath:
    def test_colons_and_quotes(self):
        assert escape_filter_path("C:\\subs\\it's.srt") == "C\\:/subs/it\\'s.srt"
