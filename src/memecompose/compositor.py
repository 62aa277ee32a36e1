"""Compositor — run ffmpeg once per job with the built filter graph.

The trim window is authoritative: the source is read with -ss/-t, the
looped stills (template, text layers) get the same -t, and the output
carries an explicit -t so no input's natural length (or lack of one)
decides the duration.

A job either leaves exactly one complete output file or raises and leaves
none. Text layer images live in a private temp directory for the length
of the run; upload and output lifetime is the caller's business (see
jobs.py).
"""

import logging
import shlex
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from .builder import FPS, build_graph
from .common import Fonts, ffmpeg_exe
from .errors import EngineError
from .layers import write_layers
from .request import CompositionRequest
from .stages import FilterGraph, format_number, serialize_graph

logger = logging.getLogger(__name__)

# Lines of ffmpeg stderr kept in an EngineError message.
STDERR_TAIL_LINES = 20

ProgressCallback = Callable[[float], None]


@dataclass(frozen=True)
class EncodeSettings:
    """Output encoding: fast constant-quality H.264, AAC, 30fps, yuv420p."""
    fps: int = FPS
    video_codec: str = "libx264"
    preset: str = "fast"
    crf: int = 23
    audio_codec: str = "aac"
    audio_bitrate: str = "128k"
    pix_fmt: str = "yuv420p"


def build_command(
    graph: FilterGraph,
    request: CompositionRequest,
    video_path: str | Path,
    output_path: str | Path,
    template_path: str | Path | None = None,
    layer_paths: list[str | Path] | tuple = (),
    settings: EncodeSettings | None = None,
    progress: bool = False,
) -> list[str]:
    """Assemble the ffmpeg argv for one job.

    Args:
        graph: Filter graph from the builder.
        request: Validated request (trim window).
        video_path: Uploaded source video (input 0).
        output_path: Destination mp4.
        template_path: Optional PNG template (input 1), looped as a still.
        layer_paths: Rendered text layers, one per graph.layers entry, in
            the same order; looped as stills after the template.
        settings: Encoding settings; defaults to EncodeSettings().
        progress: If True, ask ffmpeg for key=value progress on stdout.
    """
    settings = settings or EncodeSettings()
    if len(layer_paths) != len(graph.layers):
        raise ValueError(
            f"Graph has {len(graph.layers)} text layers, got {len(layer_paths)} images"
        )
    start = format_number(request.trim.start)
    duration = format_number(request.trim.duration)

    inputs = ["-ss", start, "-t", duration, "-i", str(video_path)]
    stills = [template_path] if template_path is not None else []
    for still in [*stills, *layer_paths]:
        inputs += [
            "-loop", "1", "-framerate", str(settings.fps),
            "-t", duration, "-i", str(still),
        ]

    cmd = [
        ffmpeg_exe(), "-y", "-hide_banner", "-nostdin",
        *inputs,
        "-filter_complex", serialize_graph(graph),
        "-map", f"[{graph.output}]",
        "-map", "0:a?",
        "-t", duration,
        "-r", str(settings.fps),
        "-c:v", settings.video_codec,
        "-preset", settings.preset,
        "-crf", str(settings.crf),
        "-pix_fmt", settings.pix_fmt,
        "-c:a", settings.audio_codec,
        "-b:a", settings.audio_bitrate,
        "-movflags", "+faststart",
    ]
    if progress:
        cmd += ["-progress", "pipe:1", "-nostats"]
    cmd.append(str(output_path))
    return cmd


def _stderr_tail(stderr: str) -> str:
    lines = [line for line in stderr.strip().splitlines() if line.strip()]
    return "\n".join(lines[-STDERR_TAIL_LINES:])


def _parse_progress(line: str, duration: float) -> float | None:
    """Fraction done from one ``-progress`` line, or None if not a time line."""
    key, _, value = line.strip().partition("=")
    # out_time_ms is microseconds too (long-standing ffmpeg quirk).
    if key not in ("out_time_us", "out_time_ms") or not value.strip().isdigit():
        return None
    seconds = int(value) / 1_000_000
    return min(1.0, max(0.0, seconds / duration))


def run_ffmpeg(
    cmd: list[str],
    duration: float,
    on_progress: ProgressCallback | None = None,
) -> None:
    """Run ffmpeg to completion.

    stderr goes to a temp file (read on failure) so a chatty encoder can
    never block on a full pipe while stdout is being read for progress.
    If the progress callback raises, ffmpeg is killed and reaped before
    the exception propagates.

    Raises:
        EngineError: ffmpeg exited non-zero; message carries its stderr tail.
    """
    with tempfile.TemporaryFile(mode="w+", encoding="utf-8", errors="replace") as err:
        try:
            proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE if on_progress else subprocess.DEVNULL,
                stderr=err,
                text=True,
            )
        except OSError as e:
            raise EngineError(f"Could not start ffmpeg: {e}") from e
        try:
            if on_progress:
                last = -1.0
                for line in proc.stdout:
                    fraction = _parse_progress(line, duration)
                    if fraction is not None and fraction > last:
                        last = fraction
                        on_progress(fraction)
            returncode = proc.wait()
        except BaseException:
            proc.kill()
            proc.wait()
            raise
        finally:
            if proc.stdout is not None:
                proc.stdout.close()

        if returncode != 0:
            err.seek(0)
            stderr = err.read()
            tail = _stderr_tail(stderr)
            raise EngineError(
                f"ffmpeg exited with code {returncode}:\n{tail}",
                returncode=returncode,
                stderr=stderr,
            )


def _discard(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not remove partial output %s: %s", path, e)


def compose_video(
    request: CompositionRequest,
    video_path: str | Path,
    output_path: str | Path,
    template_path: str | Path | None = None,
    settings: EncodeSettings | None = None,
    on_progress: ProgressCallback | None = None,
    fonts: Fonts | None = None,
) -> Path:
    """Render one composition to output_path.

    Builds the graph (template mode if template_path is given), renders its
    text layers to a private temp directory, runs ffmpeg once, and checks
    that a non-empty file was written.

    Args:
        request: Validated CompositionRequest.
        video_path: Source video.
        output_path: Destination mp4 (parent dirs are created).
        template_path: Optional PNG overlay; switches to template mode.
        settings: Encoding settings.
        on_progress: Optional callback receiving fractions in [0, 1].
        fonts: Text layer fonts; discovered on the system if omitted.

    Returns:
        Path to the finished output.

    Raises:
        EngineError: ffmpeg failed or wrote no usable output. Any partial
            output file has been removed, as it is for any other failure.
        OSError: Output directory could not be created.
    """
    output = Path(output_path)
    output.parent.mkdir(parents=True, exist_ok=True)

    template = template_path is not None
    graph = build_graph(request, template=template)

    logger.info(
        "Composing %s -> %s (%s mode, %ss from %ss)",
        video_path, output, "template" if template else "text",
        format_number(request.trim.duration), format_number(request.trim.start),
    )
    logger.debug("Filter graph: %s", serialize_graph(graph))

    try:
        with tempfile.TemporaryDirectory(prefix="memecompose-layers-") as layer_dir:
            layer_paths = write_layers(
                graph.layers, request.canvas, layer_dir, fonts or Fonts.discover(),
            )
            cmd = build_command(
                graph, request, video_path, output,
                template_path=template_path,
                layer_paths=layer_paths,
                settings=settings,
                progress=on_progress is not None,
            )
            logger.debug("ffmpeg command: %s", shlex.join(cmd))
            run_ffmpeg(cmd, request.trim.duration, on_progress)
    except BaseException:
        _discard(output)
        raise

    if not output.exists() or output.stat().st_size == 0:
        _discard(output)
        raise EngineError(f"ffmpeg reported success but wrote no output to {output}")

    logger.info("Composed %s (%d bytes)", output, output.stat().st_size)
    return output
