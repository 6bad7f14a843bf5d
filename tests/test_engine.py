"""Tests for the Engine facade."""

import os

import pytest

from fakes import FakeProbe, FakeProcessManager
from ffhuman.engine import Engine, parse_global_options
from ffhuman.errors import ExecutionError, ValidationError
from ffhuman.operations.model import Batch, Compress, Report
from ffhuman.planner import GlobalOptions


@pytest.fixture
def engine(process_manager):
    return Engine(probe=FakeProbe(), process_manager=process_manager)


class TestParse:
    """Global flags are lifted wherever they appear."""

    def test_flags_anywhere(self, engine):
        op, options = engine.parse(["--dry-run", "compress", "talk.mp4", "to", "10mb", "--explain"])
        assert isinstance(op, Compress)
        assert options.dry_run and options.explain
        assert not options.overwrite

    def test_overwrite_short_form(self, engine):
        _, options = engine.parse(["mute", "talk.mp4", "-y"])
        assert options.overwrite

    def test_workers(self, engine):
        _, options = engine.parse(["batch", "mute", "*.mp4", "--workers", "3"])
        assert options.workers == 3

    def test_workers_out_of_range(self, engine):
        with pytest.raises(ValidationError, match="--workers"):
            engine.parse(["batch", "mute", "*.mp4", "--workers", "0"])

    def test_defaults_merged(self):
        options = parse_global_options({"out": "x.mp4"}, GlobalOptions(dry_run=True, workers=5))
        assert options.dry_run
        assert options.output_path == "x.mp4"
        assert options.workers == 5


class TestDryRun:
    """Dry runs render the plan and touch nothing."""

    def test_nothing_written(self, engine, process_manager, media_dir, video):
        before = sorted(os.listdir(media_dir))
        result = engine.run(["compress", video, "to", "10mb", "--two-pass", "--dry-run"])
        assert sorted(os.listdir(media_dir)) == before
        assert process_manager.commands == []
        assert "pass 1 analysis" in result.text
        assert result.exit_code == 0

    def test_identical_renders(self, engine, video):
        first = engine.run(["convert", video, "to", "gif", "--dry-run"]).text
        second = engine.run(["convert", video, "to", "gif", "--dry-run"]).text
        assert first == second

    def test_explain(self, engine, video):
        result = engine.run(["mute", video, "--dry-run", "--explain"])
        assert "#   why:" in result.text


class TestRun:
    """Real runs go through the process manager."""

    def test_output_written(self, engine, process_manager, media_dir, video):
        result = engine.run(["mute", video])
        assert result.plan.outputs == [str(media_dir / "talk_muted.mp4")]
        assert (media_dir / "talk_muted.mp4").exists()
        assert len(result.results) == 1
        assert result.text == ""
        assert "-an" in process_manager.commands[0].to_args()

    def test_failure_raises(self, media_dir, video):
        engine = Engine(probe=FakeProbe(), process_manager=FakeProcessManager(fail_on=1))
        with pytest.raises(ExecutionError) as exc:
            engine.run(["mute", video])
        assert exc.value.exit_code == 1
        assert not (media_dir / "talk_muted.mp4").exists()


class TestBatch:
    """Batches report per file instead of raising."""

    def test_dry_run_blocks(self, engine, media_dir):
        result = engine.run(["batch", "mute", str(media_dir / "*.mp4"), "--dry-run"])
        assert isinstance(result.operation, Batch)
        assert f"# {media_dir / 'intro.mp4'}\n" in result.text
        assert f"# {media_dir / 'talk.mp4'}\n" in result.text
        assert result.exit_code == 0

    def test_failure_sets_exit_code(self, media_dir):
        engine = Engine(probe=FakeProbe(), process_manager=FakeProcessManager(fail_for="intro"))
        result = engine.run(["batch", "mute", str(media_dir / "*.mp4")])
        assert result.exit_code == 1
        assert "1 failed" in result.report.summary()
        assert (media_dir / "talk_muted.mp4").exists()


class TestReports:
    """Reports are printed from probe data; no process runs."""

    def test_info(self, engine, process_manager, video):
        result = engine.run(["info", video])
        assert isinstance(result.operation, Report)
        assert "Video: 1920x1080 @ 30.00 fps" in result.text
        assert "Duration: 60.00s (1:00)" in result.text
        assert process_manager.commands == []
        assert result.plan is None
        assert result.exit_code == 0

    def test_suggest_format_short_clip(self, process_manager, video):
        engine = Engine(probe=FakeProbe({"duration": 12.0, "width": 640, "height": 360}),
                        process_manager=process_manager)
        text = engine.run(["suggest", "format", video]).text
        assert " 1. GIF - " in text
        assert " 2. MP4 (H.264) - " in text
        assert "iPhone" not in text

    def test_analyze_quality_audio_only(self, process_manager, media_dir):
        engine = Engine(probe=FakeProbe({"has_video": False}), process_manager=process_manager)
        text = engine.run(["analyze-quality", str(media_dir / "song.mp3")]).text
        assert "No video stream" in text

    def test_doctor_reports_missing_tools(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PATH", str(tmp_path))
        result = Engine(probe=FakeProbe()).run(["doctor"])
        assert "ffmpeg: not found" in result.text
        assert "FFMPEG not found in PATH" in result.text
        assert result.exit_code == 3
