"""Pytest configuration for ffhuman tests.

Puts the project root on sys.path and provides fake ffprobe/ffmpeg
collaborators plus a folder of small stand-in media files.
"""

import os
import sys

import pytest

project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from fakes import FakeProbe, FakeProcessManager  # noqa: E402


@pytest.fixture
def probe():
    return FakeProbe()


@pytest.fixture
def process_manager():
    return FakeProcessManager()


@pytest.fixture
def media_dir(tmp_path):
    """A folder with a few small media files."""
    for name in ("talk.mp4", "intro.mp4", "outro.mov", "song.mp3", "logo.png"):
        (tmp_path / name).write_bytes(b"\x00" * 64)
    return tmp_path


@pytest.fixture
def video(media_dir):
    return str(media_dir / "talk.mp4")
