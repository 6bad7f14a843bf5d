"""Tests for batch conditions, pattern expansion and the batch driver."""

import os

import pytest

from fakes import FakeProbe, FakeProcessManager, make_metadata
from ffhuman.batch.conditions import parse_conditions
from ffhuman.batch.driver import BatchDriver, ItemStatus, expand_pattern
from ffhuman.core.executor.runner import PlanRunner
from ffhuman.errors import ToolchainError, ValidationError
from ffhuman.grammar.resolver import get_resolver
from ffhuman.operations.builder import build_operation
from ffhuman.planner import ExecutionPlanner, GlobalOptions


def build(*words):
    return build_operation(get_resolver().resolve_argv(list(words)))


def make_driver(probe=None, process_manager=None, workers=2):
    probe = probe or FakeProbe()
    planner = ExecutionPlanner(probe=probe, session="test")
    runner = PlanRunner(process_manager or FakeProcessManager())
    return BatchDriver(planner, runner, probe=probe, workers=workers)


class TestConditions:
    """Parsing and evaluating input conditions."""

    def test_parse_compound(self):
        conditions = parse_conditions("duration < 30s and size > 1mb && has-audio")
        assert [c.field for c in conditions] == ["duration", "size", "has-audio"]
        assert conditions[0].value == 30_000
        assert conditions[1].value == 1024 ** 2

    def test_duration(self):
        (short,) = parse_conditions("duration < 30s")
        assert short.evaluate("a.mp4", make_metadata(duration=10.0))
        assert not short.evaluate("a.mp4", make_metadata(duration=60.0))

    def test_unprobed_duration_fails(self):
        (short,) = parse_conditions("duration < 30s")
        assert not short.evaluate("a.mp4", None)

    def test_width(self):
        (wide,) = parse_conditions("width >= 1920")
        assert wide.evaluate("a.mp4", make_metadata(width=1920))
        assert not wide.evaluate("a.mp4", make_metadata(width=1280))

    def test_audio_flags(self):
        (has,) = parse_conditions("has-audio")
        (silent,) = parse_conditions("no-audio")
        quiet = make_metadata(has_audio=False)
        assert not has.evaluate("a.mp4", quiet)
        assert silent.evaluate("a.mp4", quiet)

    def test_ext_without_probe(self):
        (is_mov,) = parse_conditions("ext = .MOV")
        assert is_mov.evaluate("clip.mov")
        assert not is_mov.needs_probe

    def test_size(self, video):
        (small,) = parse_conditions("size < 1kb")
        assert small.evaluate(video)

    def test_ext_only_equality(self):
        with pytest.raises(ValidationError, match="only = and !="):
            parse_conditions("ext > mov")

    def test_unknown_field(self):
        with pytest.raises(ValidationError, match="unknown field"):
            parse_conditions("bitrate > 5")

    def test_garbage(self):
        with pytest.raises(ValidationError):
            parse_conditions("whenever")

    def test_empty(self):
        assert parse_conditions("") == ()


class TestExpandPattern:
    """Glob expansion."""

    def test_sorted_files(self, media_dir):
        files = expand_pattern(str(media_dir / "*.mp4"))
        assert [os.path.basename(f) for f in files] == ["intro.mp4", "talk.mp4"]

    def test_directories_excluded(self, media_dir):
        (media_dir / "folder.mp4").mkdir()
        files = expand_pattern(str(media_dir / "*.mp4"))
        assert len(files) == 2

    def test_recursive(self, media_dir):
        nested = media_dir / "nested"
        nested.mkdir()
        (nested / "deep.mp4").write_bytes(b"\x00")
        files = expand_pattern(str(media_dir / "**" / "*.mp4"), recursive=True)
        assert str(nested / "deep.mp4") in files

    def test_no_matches(self, tmp_path):
        with pytest.raises(ValidationError, match="No files found matching pattern"):
            expand_pattern(str(tmp_path / "*.avi"))


class TestBatchDriver:
    """Each input gets its own plan; failures stay with their input."""

    def test_all_succeed(self, media_dir):
        batch = build("batch", "mute", str(media_dir / "*.mp4"))
        report = make_driver().run_batch(batch, GlobalOptions())
        assert report.count(ItemStatus.SUCCEEDED) == 2
        assert report.ok
        assert (media_dir / "talk_muted.mp4").exists()
        assert (media_dir / "intro_muted.mp4").exists()

    def test_results_in_input_order(self, media_dir):
        batch = build("batch", "mute", str(media_dir / "*.mp4"))
        report = make_driver(workers=4).run_batch(batch, GlobalOptions())
        assert [os.path.basename(r.path) for r in report.results] == ["intro.mp4", "talk.mp4"]

    def test_failure_is_isolated(self, media_dir):
        batch = build("batch", "mute", str(media_dir / "*.mp4"))
        driver = make_driver(process_manager=FakeProcessManager(fail_for="intro"))
        report = driver.run_batch(batch, GlobalOptions())
        by_name = {os.path.basename(r.path): r for r in report.results}
        assert by_name["intro.mp4"].status is ItemStatus.FAILED
        assert "exit code 1" in by_name["intro.mp4"].reason
        assert by_name["talk.mp4"].status is ItemStatus.SUCCEEDED
        assert not report.ok
        assert "1 succeeded" in report.summary()

    def test_condition_skips(self, media_dir):
        probe = FakeProbe(overrides={"intro.mp4": {"duration": 10.0}})
        batch = build("batch", "mute", str(media_dir / "*.mp4"), "when", "duration", "<", "30s")
        report = make_driver(probe=probe).run_batch(batch, GlobalOptions())
        by_name = {os.path.basename(r.path): r for r in report.results}
        assert by_name["intro.mp4"].status is ItemStatus.SUCCEEDED
        assert by_name["talk.mp4"].status is ItemStatus.SKIPPED
        assert by_name["talk.mp4"].reason == "condition not met: duration < 30s"
        assert report.ok

    def test_if_flag_adds_condition(self, media_dir):
        batch = build("batch", "mute", str(media_dir / "*.mp4"), "--if", "ext = mov")
        report = make_driver().run_batch(batch, GlobalOptions())
        assert report.count(ItemStatus.SKIPPED) == 2

    def test_dry_run_plans_only(self, media_dir):
        pm = FakeProcessManager()
        batch = build("batch", "mute", str(media_dir / "*.mp4"))
        report = make_driver(process_manager=pm).run_batch(batch, GlobalOptions(dry_run=True))
        assert report.count(ItemStatus.PLANNED) == 2
        assert all(r.plan is not None for r in report.results)
        assert pm.commands == []

    def test_cancel_one_item(self, media_dir):
        batch = build("batch", "mute", str(media_dir / "*.mp4"))
        driver = make_driver()
        driver.cancel_item(str(media_dir / "intro.mp4"))
        report = driver.run_batch(batch, GlobalOptions())
        by_name = {os.path.basename(r.path): r for r in report.results}
        assert by_name["intro.mp4"].status is ItemStatus.CANCELLED
        assert by_name["intro.mp4"].reason == "cancelled before start"
        assert by_name["talk.mp4"].status is ItemStatus.SUCCEEDED

    def test_plan_error_fails_item(self, media_dir):
        (media_dir / "talk_muted.mp4").write_bytes(b"old")
        batch = build("batch", "mute", str(media_dir / "*.mp4"))
        report = make_driver().run_batch(batch, GlobalOptions())
        by_name = {os.path.basename(r.path): r for r in report.results}
        assert by_name["talk.mp4"].status is ItemStatus.FAILED
        assert "already exists" in by_name["talk.mp4"].reason
        assert by_name["intro.mp4"].status is ItemStatus.SUCCEEDED

    def test_out_rejected(self, media_dir):
        batch = build("batch", "mute", str(media_dir / "*.mp4"))
        with pytest.raises(ValidationError, match="--output-dir"):
            make_driver().run_batch(batch, GlobalOptions(output_path="x.mp4"))

    def test_output_dir(self, media_dir, tmp_path):
        out = tmp_path / "out"
        out.mkdir()
        batch = build("batch", "mute", str(media_dir / "*.mp4"))
        make_driver().run_batch(batch, GlobalOptions(output_dir=str(out)))
        assert sorted(os.listdir(out)) == ["intro_muted.mp4", "talk_muted.mp4"]

    def test_toolchain_error_aborts(self, media_dir):
        def missing_ffmpeg(command, cancel):
            raise ToolchainError("ffmpeg not found in PATH")

        batch = build("batch", "mute", str(media_dir / "*.mp4"))
        driver = make_driver(process_manager=FakeProcessManager(on_execute=missing_ffmpeg), workers=1)
        with pytest.raises(ToolchainError):
            driver.run_batch(batch, GlobalOptions())
