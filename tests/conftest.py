"""Shared test fixtures for memecompose tests."""

import subprocess

import pytest
from PIL import Image

from memecompose.common import ffmpeg_exe

# Same engine the compositor runs (bundled binary unless overridden).
_FFMPEG = ffmpeg_exe()


def _make_video(out, color="blue", duration=5, audio=True):
    inputs = ["-f", "lavfi", "-i", f"color=c={color}:s=320x240:d={duration}:r=10"]
    codecs = ["-c:v", "libx264", "-crf", "28", "-pix_fmt", "yuv420p"]
    if audio:
        inputs += ["-f", "lavfi", "-i", "anullsrc=r=44100:cl=mono"]
        codecs += ["-shortest", "-c:a", "aac", "-b:a", "32k"]
    subprocess.run(
        [_FFMPEG, "-y", *inputs, *codecs, str(out)],
        check=True,
        capture_output=True,
    )
    return out


@pytest.fixture
def source_video(tmp_path):
    """5-second 320x240 blue test video at 10fps, with a silent audio track."""
    return _make_video(tmp_path / "source.mp4")


@pytest.fixture
def silent_video(tmp_path):
    """3-second 320x240 blue test video with no audio stream."""
    return _make_video(tmp_path / "silent.mp4", duration=3, audio=False)


@pytest.fixture
def clear_template(tmp_path):
    """Fully transparent 400x400 PNG template."""
    path = tmp_path / "template.png"
    Image.new("RGBA", (400, 400), (0, 0, 0, 0)).save(path)
    return path


@pytest.fixture
def bordered_template(tmp_path):
    """400x400 PNG: opaque red 20px border, transparent window inside."""
    path = tmp_path / "bordered.png"
    img = Image.new("RGBA", (400, 400), (255, 0, 0, 255))
    img.paste((0, 0, 0, 0), (20, 20, 380, 380))
    img.save(path)
    return path
