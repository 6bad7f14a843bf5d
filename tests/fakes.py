"""Fakes for ffprobe and the process manager; nothing here starts ffmpeg."""

import os

from ffhuman.core.executor.process_manager import ProcessResult
from ffhuman.core.video.analyzer import (
    AudioStreamInfo,
    VideoMetadata,
    VideoStreamInfo,
)


def make_metadata(
    path: str = "clip.mp4",
    duration: float = 60.0,
    width: int = 1920,
    height: int = 1080,
    has_video: bool = True,
    has_audio: bool = True,
    frame_rate: float = 30.0,
) -> VideoMetadata:
    video = [VideoStreamInfo(index=0, codec_name="h264", codec_type="video",
                             width=width, height=height, frame_rate=frame_rate)] if has_video else []
    audio = [AudioStreamInfo(index=len(video), codec_name="aac", codec_type="audio",
                             sample_rate=48000, channels=2)] if has_audio else []
    return VideoMetadata(
        file_path=path,
        file_size=1024,
        format_name="mov,mp4,m4a,3gp,3g2,mj2",
        duration=duration,
        nb_streams=len(video) + len(audio),
        video_streams=video,
        audio_streams=audio,
    )


class FakeProbe:
    """Callable stand-in for ``VideoAnalyzer``; per-path overrides by basename."""

    def __init__(self, default=None, overrides=None):
        self.default = default or {}
        self.by_name = overrides or {}
        self.calls = []

    def __call__(self, path):
        self.calls.append(path)
        spec = dict(self.default)
        spec.update(self.by_name.get(os.path.basename(path), {}))
        return make_metadata(path, **spec)


class FakeProcessManager:
    """Records commands; a call fails when it is the ``fail_on``-th (1-based)
    or when any argument contains ``fail_for``.

    Every successful ffmpeg call touches its output file so cleanup can be
    observed.
    """

    def __init__(self, fail_on=None, fail_for=None, stderr="", stdout="", on_execute=None):
        self.fail_on = fail_on
        self.fail_for = fail_for
        self.stderr = stderr
        self.stdout = stdout
        self.on_execute = on_execute
        self.commands = []

    def execute(self, command, timeout=None, cancel=None):
        self.commands.append(command)
        if self.on_execute is not None:
            self.on_execute(command, cancel)
        args = command.to_args()
        output = command.outputs[0] if command.outputs else None
        if output and output not in ("-", os.devnull) and "%" not in output:
            with open(output, "w") as fh:
                fh.write("media")
        failed = self.fail_on is not None and len(self.commands) == self.fail_on
        if self.fail_for is not None and any(self.fail_for in a for a in args):
            failed = True
        return ProcessResult(
            success=not failed,
            return_code=1 if failed else 0,
            stdout=self.stdout,
            stderr=self.stderr or ("Error while encoding\n" if failed else ""),
            command=" ".join(args),
            output_path=output,
        )


