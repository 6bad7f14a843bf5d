"""Tests for output resolution, stage ordering and plan assembly."""

import os
import shlex

import pytest

from ffhuman.compiler import MediaRef, MediaRole, Stage
from ffhuman.core.executor.command_builder import FFMPEGCommand
from ffhuman.errors import PlanError, ToolchainError
from ffhuman.grammar.resolver import get_resolver
from ffhuman.operations.builder import build_operation
from ffhuman.operations.model import Workflow
from ffhuman.planner import (
    DRY_RUN_SESSION,
    ExecutionPlanner,
    GlobalOptions,
    IntermediateNamer,
    new_session_token,
    order_stages,
)


def build(*words):
    return build_operation(get_resolver().resolve_argv(list(words)))


def bare_stage(name, *deps):
    return Stage(name, FFMPEGCommand(), [], MediaRef(name, MediaRole.OUTPUT), depends_on=list(deps))


@pytest.fixture
def planner(probe):
    return ExecutionPlanner(probe=probe, session="test")


class TestResolveOutput:
    """Default output naming and --out handling."""

    def test_beside_input(self, planner, video, media_dir):
        path = planner.resolve_output(build("mute", video), GlobalOptions())
        assert path == str(media_dir / "talk_muted.mp4")

    def test_extension_from_hint(self, planner, video, media_dir):
        path = planner.resolve_output(build("convert", video, "to", "webm"), GlobalOptions())
        assert path == str(media_dir / "talk_converted.webm")

    def test_output_dir(self, planner, video, tmp_path):
        out_dir = tmp_path / "out"
        path = planner.resolve_output(build("mute", video), GlobalOptions(output_dir=str(out_dir)))
        assert path == str(out_dir / "talk_muted.mp4")

    def test_out_wins(self, planner, video):
        path = planner.resolve_output(build("mute", video), GlobalOptions(output_path="x.mp4"))
        assert path == "x.mp4"

    def test_pattern_inserted_into_out(self, planner, video):
        op = build("split", video, "into", "3", "parts")
        path = planner.resolve_output(op, GlobalOptions(output_path="clip.mp4"))
        assert path == "clip_%03d.mp4"

    def test_pattern_out_kept(self, planner, video):
        op = build("split", video, "into", "3", "parts")
        path = planner.resolve_output(op, GlobalOptions(output_path="clip-%02d.mp4"))
        assert path == "clip-%02d.mp4"

    def test_generated_source_uses_its_own_stem(self, planner):
        op = build("generate-test-pattern", "720p", "duration", "5")
        path = planner.resolve_output(op, GlobalOptions(output_dir="renders"))
        assert path == os.path.join("renders", "test_pattern_1280x720.mp4")


class TestPlanChecks:
    """Nothing is planned that could clobber a file or read a missing one."""

    def test_existing_output_refused(self, planner, video, media_dir):
        (media_dir / "talk_muted.mp4").write_bytes(b"old")
        with pytest.raises(PlanError, match="already exists"):
            planner.plan(build("mute", video), GlobalOptions())

    def test_existing_output_with_overwrite(self, planner, video, media_dir):
        (media_dir / "talk_muted.mp4").write_bytes(b"old")
        plan = planner.plan(build("mute", video), GlobalOptions(overwrite=True))
        assert plan.stages[-1].args[1] == "-y"

    def test_final_stage_never_overwrites_by_default(self, planner, video):
        plan = planner.plan(build("mute", video), GlobalOptions())
        assert plan.stages[-1].args[1] == "-n"

    def test_output_equals_input(self, planner, video):
        with pytest.raises(PlanError, match="same file"):
            planner.plan(build("mute", video), GlobalOptions(output_path=video, overwrite=True))

    def test_missing_input(self, planner, tmp_path):
        with pytest.raises(ToolchainError, match="not found"):
            planner.plan(build("mute", str(tmp_path / "nope.mp4")), GlobalOptions())

    def test_missing_output_directory(self, planner, video, tmp_path):
        options = GlobalOptions(output_path=str(tmp_path / "missing" / "x.mp4"))
        with pytest.raises(PlanError, match="directory not found"):
            planner.plan(build("mute", video), options)

    def test_existing_numbered_output(self, planner, video, media_dir):
        (media_dir / "talk_part001.mp4").write_bytes(b"old")
        with pytest.raises(PlanError, match="talk_part001.mp4 already exists"):
            planner.plan(build("split", video, "into", "3", "parts"), GlobalOptions())


class TestPlan:
    """Assembled plans."""

    def test_outputs_and_intermediates(self, video, media_dir):
        planner = ExecutionPlanner(session="test")
        plan = planner.plan(build("convert", video, "to", "gif"), GlobalOptions())
        assert plan.outputs == [str(media_dir / "talk_converted.gif")]
        assert len(plan.intermediates) == 1
        palette = os.path.basename(plan.intermediates[0])
        assert palette.startswith(".talk-")
        assert palette.endswith("-test-palette.png")

    def test_temp_dir(self, video, tmp_path):
        scratch = tmp_path / "scratch"
        scratch.mkdir()
        planner = ExecutionPlanner(session="test", temp_dir=str(scratch))
        plan = planner.plan(build("convert", video, "to", "gif"), GlobalOptions())
        assert os.path.dirname(plan.intermediates[0]) == str(scratch)

    def test_dry_run_plans_are_identical(self, video):
        """Dry runs name scratch files with a fixed session token."""
        options = GlobalOptions(dry_run=True)
        first = ExecutionPlanner().plan(build("convert", video, "to", "gif"), options)
        second = ExecutionPlanner().plan(build("convert", video, "to", "gif"), options)
        assert first.render() == second.render()
        assert DRY_RUN_SESSION in first.intermediates[0]

    def test_render_round_trips(self, planner, video):
        plan = planner.plan(build("add-text", video, "It's a 'test'", "at", "top"), GlobalOptions())
        text = plan.render(explain=True)
        commands = [line for line in text.splitlines() if not line.startswith("#")]
        assert [shlex.split(line) for line in commands] == [s.args for s in plan.stages]
        assert any(line.startswith("#   why:") for line in text.splitlines())

    def test_session_tokens_differ(self):
        assert new_session_token() != new_session_token()
        assert new_session_token(dry_run=True) == DRY_RUN_SESSION


class TestIntermediateNamer:
    """Scratch names are unique per role and shared with child namers."""

    def test_format(self, tmp_path):
        namer = IntermediateNamer(str(tmp_path), "/videos/talk.mp4", "s1")
        path = namer("palette", "png")
        name = os.path.basename(path)
        assert name.startswith(".talk-")
        assert name.endswith("-s1-palette.png")
        assert len(name.split("-")[1]) == 8

    def test_repeated_role_numbered(self, tmp_path):
        namer = IntermediateNamer(str(tmp_path), "talk.mp4", "s1")
        first = namer("palette", "png")
        second = namer("palette", "png")
        assert first != second
        assert second.endswith("-palette2.png")

    def test_child_shares_paths(self, tmp_path):
        namer = IntermediateNamer(str(tmp_path), "talk.mp4", "s1")
        child = namer.child("step1-")
        path = child("output", "mp4")
        assert path.endswith("-step1-output.mp4")
        assert namer.paths == [path]

    def test_same_stem_different_folders(self, tmp_path):
        a = IntermediateNamer(str(tmp_path), "/a/talk.mp4", "s1")("palette")
        b = IntermediateNamer(str(tmp_path), "/b/talk.mp4", "s1")("palette")
        assert a != b


class TestOrderStages:
    """Dependency order, ties in compile order."""

    def test_dependencies_first(self):
        a = bare_stage("a")
        b = bare_stage("b", a)
        c = bare_stage("c")
        assert [s.name for s in order_stages([b, a, c])] == ["a", "b", "c"]

    def test_independent_stages_keep_order(self):
        stages = [bare_stage(n) for n in "xyz"]
        assert order_stages(stages) == stages

    def test_dangling_dependency(self):
        ghost = bare_stage("ghost")
        with pytest.raises(PlanError, match="not in the plan"):
            order_stages([bare_stage("a", ghost)])

    def test_cycle(self):
        a = bare_stage("a")
        b = bare_stage("b", a)
        a.depends_on.append(b)
        with pytest.raises(PlanError, match="cycle"):
            order_stages([a, b])


class TestWorkflowPlan:
    """Chained steps become one plan."""

    def test_two_steps(self, planner, video, media_dir):
        steps = (
            build("trim", "previous-step.mp4", "from", "0", "to", "10"),
            build("mute", "previous-step.mp4"),
        )
        workflow = Workflow(verb="workflow", source=video, steps=steps)
        plan = planner.plan(workflow, GlobalOptions())
        first, second = plan.stages
        assert first.name == "step 1: trim"
        assert second.name == "step 2: mute"
        assert second.depends_on == [first]
        assert first.output.role is MediaRole.INTERMEDIATE
        assert first.output.path.endswith("-step1-output.mp4")
        assert second.inputs[0].path == first.output.path
        assert plan.outputs == [str(media_dir / "talk_muted.mp4")]
        assert first.output.path in plan.intermediates

    def test_report_cannot_feed_next_step(self, planner, video):
        steps = (
            build("detect-scenes", "previous-step.mp4"),
            build("mute", "previous-step.mp4"),
        )
        workflow = Workflow(verb="workflow", source=video, steps=steps)
        with pytest.raises(PlanError, match="does not produce media"):
            planner.plan(workflow, GlobalOptions())
