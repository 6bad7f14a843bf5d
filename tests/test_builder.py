"""Tests for building validated operations from parse trees."""

import dataclasses

import pytest

from ffhuman.errors import ValidationError
from ffhuman.grammar.resolver import get_resolver
from ffhuman.operations.builder import build_operation
from ffhuman.operations.model import (
    AudioAdjust,
    Batch,
    Composite,
    Compress,
    Convert,
    MetadataOp,
    Modifiers,
    Repair,
    Report,
    Resize,
    Rotate,
    SpeedChange,
    Trim,
    Watch,
    with_input,
)
from ffhuman.operations.units import Dimensions


def build(*words):
    return build_operation(get_resolver().resolve_argv(list(words)))


class TestEncodingOperations:
    """convert and compress."""

    def test_container_convert(self):
        op = build("convert", "talk.mov", "to", "mp4")
        assert isinstance(op, Convert)
        assert op.kind == "container"
        assert op.output_hint().suffix == "converted"
        assert op.output_hint().ext == "mp4"

    def test_convert_unknown_format(self):
        with pytest.raises(ValidationError, match="choose one of"):
            build("convert", "talk.mov", "to", "xyz")

    def test_gif_gets_default_preset(self):
        op = build("convert", "talk.mp4", "to", "gif")
        assert op.gif.name == "medium"

    def test_codec_only_for_containers(self):
        with pytest.raises(ValidationError, match="codec"):
            build("convert", "talk.mp4", "to", "mp3", "--codec", "h264")

    def test_compress_size(self):
        op = build("compress", "talk.mp4", "to", "10mb", "--two-pass")
        assert isinstance(op, Compress)
        assert op.size_bytes == 10 * 1024 ** 2
        assert op.two_pass is True

    def test_compress_bitrate(self):
        op = build("compress", "talk.mp4", "to", "2mbps")
        assert op.bitrate_bps == 2_000_000
        assert op.size_bytes is None

    def test_compress_quality(self):
        op = build("compress", "talk.mp4", "to", "high-quality")
        assert op.quality.crf == 18

    def test_two_pass_needs_a_size_or_bitrate(self):
        with pytest.raises(ValidationError, match="two-pass"):
            build("compress", "talk.mp4", "to", "high", "--two-pass")

    def test_exactly_one_target(self):
        with pytest.raises(ValidationError, match="exactly one"):
            Compress(verb="compress", input="a.mp4", size_bytes=1000, bitrate_bps=1000)


class TestTemporalOperations:
    """trim and speed."""

    def test_trim_range(self):
        op = build("trim", "talk.mp4", "from", "0:30", "to", "1:05:30")
        assert isinstance(op, Trim)
        assert op.start_ms == 30_000
        assert op.length_ms == 3_900_000

    def test_trim_end_before_start(self):
        with pytest.raises(ValidationError, match="after start"):
            build("trim", "talk.mp4", "from", "1:00", "to", "0:30")

    def test_trim_end_and_duration_conflict(self):
        with pytest.raises(ValidationError, match="not both"):
            build("trim", "talk.mp4", "from", "0", "to", "10", "duration", "5")

    def test_speed_up_needs_factor_above_one(self):
        with pytest.raises(ValidationError, match="above 1x"):
            build("speed-up", "talk.mp4", "by", "0.5x")

    def test_slow_down_inverts_factor(self):
        op = build("slow", "down", "talk.mp4", "by", "2x")
        assert isinstance(op, SpeedChange)
        assert op.factor == 0.5
        assert op.output_hint().suffix == "slow"

    def test_split_exactly_one_mode(self):
        op = build("split", "talk.mp4", "into", "3", "parts")
        assert op.parts == 3
        assert op.output_hint().pattern


class TestSpatialOperations:
    """resize, rotate and modifiers."""

    def test_resize_alias(self):
        op = build("resize", "talk.mp4", "to", "720p")
        assert isinstance(op, Resize)
        assert (op.width, op.height) == (1280, 720)

    def test_resize_width_only(self):
        op = build("resize", "talk.mp4", "to", "640")
        assert (op.width, op.height) == (640, -2)

    def test_resize_bad_target(self):
        with pytest.raises(ValidationError, match="720p"):
            build("resize", "talk.mp4", "to", "huge")

    def test_negative_rotation_wraps(self):
        op = build("rotate", "talk.mp4", "-90")
        assert isinstance(op, Rotate)
        assert op.degrees == 270

    def test_rotation_must_be_quarter_turn(self):
        with pytest.raises(ValidationError, match="90, 180 or 270"):
            build("rotate", "talk.mp4", "by", "45")

    def test_modifiers_collected(self):
        op = build("trim", "talk.mp4", "from", "0", "--resize", "720p", "--brightness", "0.1")
        assert op.modifiers == Modifiers(resize=(1280, 720), brightness=0.1)
        assert op.modifiers.names == ["resize", "brightness"]

    def test_modifier_rejected_where_meaningless(self):
        with pytest.raises(ValidationError, match="does not accept --resize"):
            build("mute", "talk.mp4", "--resize", "720p")

    def test_unknown_flag(self):
        with pytest.raises(ValidationError, match="is not an option of 'mute'"):
            build("mute", "talk.mp4", "--bogus", "x")


class TestAudioOperations:
    """Volume and fades."""

    def test_volume_by_db(self):
        op = build("adjust-volume", "talk.mp4", "by", "+6db")
        assert isinstance(op, AudioAdjust)
        assert op.gain_db == 6.0

    def test_volume_to_percent(self):
        op = build("adjust-volume", "talk.mp4", "to", "50%")
        assert op.level == 0.5

    def test_volume_needs_a_level(self):
        with pytest.raises(ValidationError, match="exactly one"):
            build("adjust-volume", "talk.mp4")

    def test_fade(self):
        op = build("fade", "talk.mp4", "in", "2", "out", "3")
        assert (op.fade_in_ms, op.fade_out_ms) == (2000, 3000)


class TestCompositeOperations:
    """Input-count checks for many-input compositions."""

    def test_montage_cell_count(self):
        with pytest.raises(ValidationError, match="4 expected, 3 given"):
            build("montage", "layout", "2x2", "a.mp4", "b.mp4", "c.mp4")

    def test_montage_ok(self):
        op = build("montage", "layout", "2x2", "a.mp4", "b.mp4", "c.mp4", "d.mp4")
        assert isinstance(op, Composite)
        assert op.layout == Dimensions(2, 2)

    def test_pip_base_first(self):
        op = build("pip", "small.mp4", "on", "big.mp4", "at", "top-right")
        assert op.sources == ("big.mp4", "small.mp4")
        assert op.position == "top-right"

    def test_unknown_overlay_position(self):
        with pytest.raises(ValidationError, match="choose one of"):
            build("watermark", "talk.mp4", "logo.png", "at", "middle")

    def test_overlay_point_position(self):
        op = build("overlay", "logo.png", "on", "talk.mp4", "at", "40,20")
        assert op.position == "40,20"

    def test_edge_positions_shared_with_text(self):
        assert build("watermark", "talk.mp4", "logo.png", "at", "top").position == "top"
        assert build("add-text", "talk.mp4", "Hello", "at", "top").position == "top"

    def test_unknown_text_position(self):
        with pytest.raises(ValidationError, match="at"):
            build("add-text", "talk.mp4", "Hello", "at", "nowhere")

    def test_crossfade_takes_two(self):
        with pytest.raises(ValidationError, match="2 expected, 3 given"):
            build("crossfade", "a.mp4", "b.mp4", "c.mp4")

    def test_slideshow_needs_images(self):
        with pytest.raises(ValidationError, match="images"):
            build("slideshow", "a.jpg", "b.mp4")

    def test_unknown_transition(self):
        with pytest.raises(ValidationError, match="type"):
            build("transition", "a.mp4", "to", "b.mp4", "--type", "spin")


class TestManyInputOperations:
    """batch and watch build their inner command once up front."""

    def test_batch(self):
        op = build("batch", "convert", "*.mov", "to", "mp4", "when", "duration", "<", "30s")
        assert isinstance(op, Batch)
        assert op.pattern == "*.mov"
        assert isinstance(op.template, Convert)
        assert len(op.conditions) == 1
        assert op.conditions[0].value == 30_000

    def test_batch_rejects_nesting(self):
        with pytest.raises(ValidationError, match="cannot run inside batch"):
            build("batch", "batch", "mute", "*.mp4")

    def test_batch_inner_validation_runs_early(self):
        with pytest.raises(ValidationError):
            build("batch", "convert", "*.mov", "to", "xyz")

    def test_batch_rejects_bad_position_before_any_file(self):
        with pytest.raises(ValidationError, match="middle"):
            build("batch", "watermark", "*.mp4", "logo.png", "at", "middle")

    def test_watch_rejects_bad_position_at_start(self):
        with pytest.raises(ValidationError, match="nowhere"):
            build("watch", "folder", "incoming/", "add-text", "Hello", "at", "nowhere")

    def test_watch(self):
        op = build("watch", "folder", "incoming/", "convert", "to", "webm")
        assert isinstance(op, Watch)
        assert op.folder == "incoming/"
        assert [t.text for t in op.command] == ["convert", "to", "webm"]


class TestOperationModel:
    """Operations are immutable and rebindable to another input."""

    def test_frozen(self):
        op = build("mute", "talk.mp4")
        with pytest.raises(dataclasses.FrozenInstanceError):
            op.input = "other.mp4"

    def test_with_input_single(self):
        op = with_input(build("mute", "talk.mp4"), "other.mp4")
        assert op.input == "other.mp4"

    def test_with_input_composite_replaces_base(self):
        op = with_input(build("watermark", "talk.mp4", "logo.png"), "other.mp4")
        assert op.sources == ("other.mp4", "logo.png")

    def test_with_input_without_input(self):
        op = build("generate-test-pattern", "720p", "duration", "5")
        with pytest.raises(ValidationError, match="does not read an input"):
            with_input(op, "x.mp4")


class TestRepairAndReports:
    """Repairs write a file; reports only describe one."""

    def test_fix_framerate_defaults_to_30(self):
        op = build("fix-framerate", "talk.mp4")
        assert isinstance(op, Repair)
        assert op.fps == 30.0
        assert op.output_hint().suffix == "fixed_framerate"

    def test_fix_framerate_target(self):
        assert build("fix", "framerate", "talk.mp4", "to", "24").fps == 24.0

    def test_fps_only_for_framerate(self):
        with pytest.raises(ValidationError, match="does not apply"):
            Repair(verb="repair", input="talk.mp4", kind="repair", fps=24.0)

    def test_repair_suffix(self):
        assert build("repair", "broken.mp4").output_hint().suffix == "repaired"

    def test_report_inputs(self):
        doctor = build("doctor")
        assert isinstance(doctor, Report)
        assert doctor.inputs == ()
        assert build("info", "talk.mp4").inputs == ("talk.mp4",)

    def test_report_needs_input(self):
        with pytest.raises(ValidationError, match="input"):
            Report(verb="info", kind="info")

    def test_batch_rejects_reports(self):
        with pytest.raises(ValidationError, match="cannot run inside batch"):
            build("batch", "info", "*.mp4")

    def test_new_metadata_actions(self):
        assert build("stats", "talk.mp4").output_hint().ext == "json"
        assert build("validate", "talk.mp4").output_hint().suffix == "validation"
        edl = build("export", "edl", "talk.mp4")
        assert isinstance(edl, MetadataOp)
        assert (edl.action, edl.output_hint().ext) == ("edl", "txt")

    def test_sync_cameras_input_count(self):
        with pytest.raises(ValidationError, match="2 expected, 1 given"):
            build("sync-cameras", "a.mp4")
        op = build("sync", "cameras", "a.mp4", "b.mp4", "c.mp4")
        assert op.kind == "sync-cameras"
        assert len(op.sources) == 3
