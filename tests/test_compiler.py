"""Tests for the filter graph compiler and its handlers."""

import os

import pytest

from fakes import FakeProbe
from ffhuman.compiler import CompileContext, FilterGraphCompiler, MediaRole, Phase, make_result
from ffhuman.errors import CompilationError
from ffhuman.grammar.resolver import get_resolver
from ffhuman.operations.builder import build_operation
from ffhuman.planner import IntermediateNamer


def build(*words):
    return build_operation(get_resolver().resolve_argv(list(words)))


@pytest.fixture
def compile_op(tmp_path):
    """Compile an operation with outputs and scratch files under tmp_path."""

    def _compile(op, output="out.mp4", probe=None):
        namer = IntermediateNamer(str(tmp_path), op.primary or output, "test")
        ctx = CompileContext(
            output=str(tmp_path / output),
            namer=namer,
            probe=probe,
            modifiers=op.modifiers,
        )
        stages = FilterGraphCompiler().compile(op, ctx)
        return stages, namer

    return _compile


class TestCompress:
    """Size-targeted compression."""

    def test_single_pass_by_default(self, compile_op):
        stages, _ = compile_op(build("compress", "talk.mp4", "to", "10mb"), probe=FakeProbe())
        assert len(stages) == 1
        args = stages[0].args
        assert "-b:v" in args
        assert "-maxrate" in args
        assert "-pass" not in args

    def test_two_pass(self, compile_op):
        stages, namer = compile_op(build("compress", "talk.mp4", "to", "10mb", "--two-pass"), probe=FakeProbe())
        first, second = stages
        assert second.depends_on == [first]
        assert first.output.role is MediaRole.NULL
        assert first.output.path == os.devnull
        assert first.args[first.args.index("-pass") + 1] == "1"
        assert second.args[second.args.index("-pass") + 1] == "2"
        passlog = first.args[first.args.index("-passlogfile") + 1]
        assert passlog in namer.paths
        assert first.scratch == [f"{passlog}-0.log", f"{passlog}-0.log.mbtree"]

    def test_budget_splits_audio(self, compile_op):
        """10mb over 60s leaves 1286k for video after 111k of audio."""
        stages, _ = compile_op(build("compress", "talk.mp4", "to", "10mb"), probe=FakeProbe())
        args = stages[0].args
        assert args[args.index("-b:v") + 1] == "1286k"
        assert args[args.index("-b:a") + 1] == "111k"

    def test_silent_input_drops_audio(self, compile_op):
        probe = FakeProbe({"has_audio": False})
        stages, _ = compile_op(build("compress", "talk.mp4", "to", "10mb"), probe=probe)
        assert "-an" in stages[0].args

    def test_target_too_small(self, compile_op):
        with pytest.raises(CompilationError, match="too small"):
            compile_op(build("compress", "talk.mp4", "to", "1k"), probe=FakeProbe())

    def test_size_target_needs_probe(self, compile_op):
        with pytest.raises(CompilationError, match="could not be probed"):
            compile_op(build("compress", "talk.mp4", "to", "10mb"))

    def test_bitrate_target_needs_no_duration(self, compile_op):
        stages, _ = compile_op(build("compress", "talk.mp4", "to", "2mbps"))
        assert len(stages) == 1


class TestConvert:
    """Container changes, gifs and audio extraction."""

    def test_container_copy(self, compile_op):
        stages, _ = compile_op(build("convert", "talk.mov", "to", "mp4"))
        assert stages[0].encoder_args == ["-c:v", "copy", "-c:a", "copy"]

    def test_webm_reencodes(self, compile_op):
        stages, _ = compile_op(build("convert", "talk.mp4", "to", "webm"), output="out.webm")
        assert stages[0].encoder_args == ["-c:v", "libvpx-vp9", "-c:a", "libopus"]

    def test_gif_palette_two_stages(self, compile_op):
        stages, namer = compile_op(build("convert", "talk.mp4", "to", "gif"), output="out.gif")
        palette_stage, render = stages
        palette = palette_stage.output.path
        assert palette in namer.paths
        assert palette_stage.output.role is MediaRole.INTERMEDIATE
        assert render.depends_on == [palette_stage]
        assert [ref.path for ref in render.inputs] == ["talk.mp4", palette]
        assert "paletteuse" in render.filter_graph

    def test_audio_extraction_drops_video(self, compile_op):
        stages, _ = compile_op(build("extract-audio", "talk.mp4"), output="out.mp3")
        assert stages[0].encoder_args[0] == "-vn"

    def test_audio_only_input_to_video_recipe(self, compile_op):
        with pytest.raises(CompilationError, match="audio-only"):
            compile_op(build("convert", "song.mp3", "to", "gif"), output="out.gif")


class TestFilterOrdering:
    """Cross-cutting --flag filters slot into phase order."""

    def test_crop_before_scale_before_text(self, compile_op):
        op = build("resize", "talk.mp4", "to", "720p", "--text", "Hi", "--crop", "640x480")
        stages, _ = compile_op(op)
        chain = stages[0].filter_graph.split(",")
        names = [f.split("=")[0] for f in chain]
        assert names.index("crop") < names.index("scale") < names.index("drawtext")

    def test_modifier_notes_match_filters(self, compile_op):
        op = build("rotate", "talk.mp4", "by", "90", "--brightness", "0.2", "--flip", "h")
        stages, _ = compile_op(op)
        notes = stages[0].notes
        assert "--flip -> hflip" in notes
        assert "--brightness -> eq=brightness=0.2" in notes
        assert stages[0].filter_graph == "transpose=1,hflip,eq=brightness=0.2"

    def test_modifiers_inside_filter_complex(self, compile_op):
        op = build("watermark", "talk.mp4", "logo.png", "--resize", "720p")
        stages, _ = compile_op(op)
        graph = stages[0].command.complex_filter
        assert graph.endswith("[vpre];[vpre]scale=1280:720[v]")

    def test_phase_sort_is_stable(self):
        """Filters in the same phase keep handler order."""
        result = make_result(vf=["a", "b"], phase=Phase.EFFECT)
        assert result.video_filters == ["a", "b"]
        assert Phase.CROP < Phase.SCALE < Phase.TEXT < Phase.FORMAT


class TestComposite:
    """Transitions, joins and analysis recipes."""

    def test_crossfade_offset(self, compile_op):
        probe = FakeProbe(overrides={"intro.mp4": {"duration": 10.0}})
        op = build("crossfade", "intro.mp4", "outro.mov", "duration", "2")
        stages, _ = compile_op(op, probe=probe)
        graph = stages[0].command.complex_filter
        assert "xfade=transition=fade:duration=2:offset=8.000" in graph
        assert "acrossfade=d=2" in graph

    def test_crossfade_longer_than_clip(self, compile_op):
        probe = FakeProbe(overrides={"intro.mp4": {"duration": 1.0}})
        op = build("crossfade", "intro.mp4", "outro.mov", "duration", "2")
        with pytest.raises(CompilationError, match="does not fit"):
            compile_op(op, probe=probe)

    def test_watermark_edge_position(self, compile_op):
        stages, _ = compile_op(build("watermark", "talk.mp4", "logo.png", "at", "top"))
        assert stages[0].command.complex_filter.endswith("overlay=(W-w)/2:10[v]")

    def test_overlay_point_position(self, compile_op):
        stages, _ = compile_op(build("overlay", "logo.png", "on", "talk.mp4", "at", "40,20"))
        assert "overlay=40:20[v]" in stages[0].command.complex_filter

    def test_merge_writes_concat_list(self, compile_op):
        stages, namer = compile_op(build("merge", "a.mp4", "b.mp4"))
        artifact = stages[0].artifacts[0]
        assert artifact.path in namer.paths
        assert artifact.content.count("file '") == 2
        assert stages[0].args[stages[0].args.index("-f") + 1] == "concat"

    def test_detect_captures_stderr(self, compile_op, tmp_path):
        stages, _ = compile_op(build("detect-scenes", "talk.mp4"), output="talk_scenes.txt")
        stage = stages[0]
        assert stage.capture == "stderr"
        assert stage.args[-1] == "-"
        assert stage.output.path == str(tmp_path / "talk_scenes.txt")
        assert stage.output.is_final

    def test_metadata_uses_ffprobe(self, compile_op):
        stages, _ = compile_op(build("extract-metadata", "talk.mp4"), output="talk_metadata.json")
        stage = stages[0]
        assert stage.program == "ffprobe"
        assert stage.args[-1] == "talk.mp4"
        assert "-y" not in stage.args

    def test_driver_ops_have_no_stages(self, compile_op):
        op = build("batch", "mute", "*.mp4")
        with pytest.raises(CompilationError, match="no stages"):
            compile_op(op)

    def test_reports_have_no_stages(self, compile_op):
        with pytest.raises(CompilationError, match="prints a report"):
            compile_op(build("info", "talk.mp4"))

    def test_sync_cameras_square_grid(self, compile_op):
        op = build("sync-cameras", "a.mp4", "b.mp4", "c.mp4", "d.mp4")
        stages, _ = compile_op(op)
        graph = stages[0].command.complex_filter
        assert "[c0][c1]hstack=inputs=2[r0]" in graph
        assert "[r0][r1]vstack=inputs=2[grid]" in graph
        assert graph.endswith("[grid]null[v]")
        args = stages[0].args
        assert args[args.index("[v]") + 2] == "0:a?"

    def test_sync_cameras_ragged_grid(self, compile_op):
        stages, _ = compile_op(build("sync-cameras", "a.mp4", "b.mp4", "c.mp4"))
        assert "xstack=inputs=3:layout=0_0|320_0|0_240:fill=black[grid]" in stages[0].command.complex_filter


class TestMetadataReports:
    """ffprobe and decode-check reports saved beside the input."""

    def test_stats_json(self, compile_op):
        stage = compile_op(build("stats", "talk.mp4"), output="talk_stats.json")[0][0]
        assert stage.program == "ffprobe"
        assert stage.capture == "stdout"
        assert "format=size,duration,bit_rate" in stage.args
        assert stage.args[stage.args.index("-of") + 1] == "json"

    def test_edl_lists_keyframes(self, compile_op):
        stage = compile_op(build("export-edl", "talk.mp4"), output="talk_edl.txt")[0][0]
        assert stage.program == "ffprobe"
        assert stage.args[stage.args.index("-skip_frame") + 1] == "nokey"
        assert "frame=pts_time" in stage.args

    def test_validate_decodes_everything(self, compile_op):
        stage = compile_op(build("validate", "talk.mp4"), output="talk_validation.txt")[0][0]
        assert stage.program == "ffmpeg"
        assert stage.capture == "stderr"
        assert stage.args[-1] == "-"
        assert stage.args[stage.args.index("-v") + 1] == "error"


class TestRepair:
    """repair, fix-rotation and fix-framerate."""

    def test_repair_ignores_errors_and_copies(self, compile_op):
        stage = compile_op(build("repair", "broken.mp4"), output="broken_repaired.mp4")[0][0]
        args = stage.args
        assert args.index("-err_detect") < args.index("-i")
        assert args.index("+genpts") < args.index("-i")
        assert stage.encoder_args == ["-c", "copy"]

    def test_repair_reencodes_across_containers(self, compile_op):
        stage = compile_op(build("repair", "broken.mkv"), output="broken_repaired.mp4")[0][0]
        assert "libx264" in stage.args

    def test_fix_rotation_clears_tag(self, compile_op):
        stage = compile_op(build("fix-rotation", "phone.mp4"))[0][0]
        args = stage.args
        assert args[args.index("-metadata:s:v:0") + 1] == "rotate=0"
        assert args[args.index("-c:a") + 1] == "copy"

    def test_fix_framerate_constant_rate(self, compile_op):
        stage = compile_op(build("fix-framerate", "screen.mp4", "to", "24"))[0][0]
        args = stage.args
        assert args[args.index("-vsync") + 1] == "cfr"
        assert args[args.index("-r") + 1] == "24"


class TestOverwriteFlag:
    """The final stage carries -n unless overwriting; scratch stages always -y."""

    def test_no_overwrite(self, compile_op):
        stages, _ = compile_op(build("mute", "talk.mp4"))
        assert stages[0].args[1] == "-n"

    def test_intermediate_stage_overwrites(self, compile_op):
        stages, _ = compile_op(build("convert", "talk.mp4", "to", "gif"), output="out.gif")
        assert stages[0].args[1] == "-y"
        assert stages[1].args[1] == "-n"
