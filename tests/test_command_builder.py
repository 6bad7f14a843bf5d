"""Tests for command_builder module."""

import shlex

from ffhuman.core.executor.command_builder import (
    CommandBuilder,
    FFMPEGCommand,
    Filter,
    FilterChain,
    atempo_chain,
    eq_filter,
)


class TestFilter:
    """Tests for the Filter class."""

    def test_simple_filter(self):
        """Test a filter with no parameters."""
        assert Filter(name="hflip").to_string() == "hflip"

    def test_filter_with_params(self):
        """Test a filter with parameters."""
        f = Filter(name="scale", params={"w": 1280, "h": 720})
        assert f.to_string() == "scale=w=1280:h=720"

    def test_filter_with_labels(self):
        """Test a filter with input and output labels."""
        f = Filter(name="overlay", params={"x": 10, "y": 10}, inputs=["0:v", "1:v"], outputs=["v"])
        assert f.to_string() == "[0:v][1:v]overlay=x=10:y=10[v]"


class TestFilterChain:
    """Tests for the FilterChain class."""

    def test_empty_chain(self):
        chain = FilterChain()
        assert chain.to_string() == ""
        assert not chain

    def test_chain_joins_with_commas(self):
        chain = FilterChain()
        chain.add_filter("scale", {"w": 640, "h": -2})
        chain.add(Filter("hflip"))
        assert chain.to_string() == "scale=w=640:h=-2,hflip"


class TestFFMPEGCommand:
    """Argument order and the overwrite switch."""

    def test_overwrite_tri_state(self):
        assert FFMPEGCommand(overwrite=True).to_args() == ["ffmpeg", "-y"]
        assert FFMPEGCommand(overwrite=False).to_args() == ["ffmpeg", "-n"]
        assert FFMPEGCommand(overwrite=None).to_args() == ["ffmpeg"]

    def test_full_order(self):
        cmd = (
            CommandBuilder()
            .input("in.mp4", ["-ss", "5"])
            .global_options("-hide_banner")
            .vf("scale=1280:720")
            .af("volume=2")
            .output_options("-c:v", "libx264")
            .output("out.mp4")
            .overwrite(False)
            .build()
        )
        assert cmd.to_args() == [
            "ffmpeg", "-n", "-hide_banner", "-ss", "5", "-i", "in.mp4",
            "-vf", "scale=1280:720", "-af", "volume=2", "-c:v", "libx264", "out.mp4",
        ]

    def test_complex_filter_replaces_vf(self):
        cmd = CommandBuilder().input("a.mp4").vf("hflip").complex_filter("[0:v]vflip[v]").build()
        args = cmd.to_args()
        assert "-filter_complex" in args
        assert "-vf" not in args

    def test_same_input_twice_keeps_options(self):
        cmd = CommandBuilder().input("a.mp4", ["-ss", "1"]).input("a.mp4", ["-ss", "2"]).build()
        assert cmd.to_args()[2:] == ["-ss", "1", "-i", "a.mp4", "-ss", "2", "-i", "a.mp4"]

    def test_ffprobe_order(self):
        cmd = (
            CommandBuilder("ffprobe")
            .input("a.mp4")
            .output_options("-show_format")
            .global_options("-v", "quiet")
            .overwrite(None)
            .build()
        )
        assert cmd.to_args() == ["ffprobe", "-v", "quiet", "-show_format", "a.mp4"]

    def test_to_string_quotes(self):
        cmd = CommandBuilder().input("my clip.mp4").output("out.mp4").build()
        assert shlex.split(cmd.to_string()) == cmd.to_args()


class TestHelpers:
    """eq and atempo helpers."""

    def test_eq_filter(self):
        assert eq_filter(brightness=0.1, contrast=1.2).to_string() == "eq=brightness=0.1:contrast=1.2"
        assert eq_filter() is None

    def test_atempo_within_range(self):
        assert atempo_chain(1.5) == ["atempo=1.5"]

    def test_atempo_fast(self):
        assert atempo_chain(4.0) == ["atempo=2.0", "atempo=2"]

    def test_atempo_slow(self):
        assert atempo_chain(0.25) == ["atempo=0.5", "atempo=0.5"]
