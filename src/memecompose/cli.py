"""CLI for local composition and graph inspection.

Usage:
    # Render a meme video
    memecompose compose source.mp4 --params params.yaml --output meme.mp4

    # Template mode (PNG overlay on top of the placed source)
    memecompose compose source.mp4 --template frame.png --output meme.mp4

    # Override single parameters without a params file
    memecompose compose source.mp4 --output meme.mp4 \
        --set trimEnd=5 --set "text=Hello there" --set overlayText=world

    # Validate parameters and print the ffmpeg filter graph (no rendering)
    memecompose graph --params params.yaml
"""

import argparse

from .builder import build_graph
from .common import inspect_template
from .compositor import compose_video
from .errors import EngineError, ValidationError
from .request import load_params, parse_param_overrides, request_from_params
from .stages import serialize_stage


def _add_param_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--params", default=None,
        help="YAML or JSON file with composition parameters",
    )
    parser.add_argument(
        "--set", dest="overrides", action="append", default=[],
        metavar="KEY=VALUE",
        help="Override one parameter (repeatable), e.g. --set trimEnd=5",
    )


def _load_request(parser, parsed):
    try:
        params = load_params(parsed.params)
        params.update(parse_param_overrides(parsed.overrides))
        return request_from_params(params)
    except ValidationError as e:
        parser.error(str(e))


def compose_main(args=None):
    parser = argparse.ArgumentParser(
        prog="memecompose compose",
        description="Compose a meme video from a source clip.",
    )
    parser.add_argument("source", help="Path to source video")
    parser.add_argument("--output", required=True, help="Output mp4 path")
    parser.add_argument(
        "--template", default=None,
        help="PNG template overlay (switches to template mode)",
    )
    _add_param_args(parser)
    parsed = parser.parse_args(args)

    request = _load_request(parser, parsed)
    if parsed.template is not None:
        try:
            info = inspect_template(parsed.template)
        except ValidationError as e:
            parser.error(str(e))
        print(f"Template: {info.width}x{info.height}"
              f"{'' if info.has_alpha else ' (no transparency)'}")

    mode = "template" if parsed.template else "text"
    print(
        f"Composing {parsed.source}  {request.trim.start:.1f}s to "
        f"{request.trim.end:.1f}s  ({mode} mode)"
    )

    def _progress(fraction):
        print(f"\r  {fraction * 100:5.1f}%", end="", flush=True)

    try:
        output = compose_video(
            request, parsed.source, parsed.output,
            template_path=parsed.template,
            on_progress=_progress,
        )
    except EngineError as e:
        print()
        raise SystemExit(f"Composition failed: {e}") from e
    print(f"\nDone: {output}")


def graph_main(args=None):
    parser = argparse.ArgumentParser(
        prog="memecompose graph",
        description="Validate parameters and print the filter graph.",
    )
    parser.add_argument(
        "--template", action="store_true",
        help="Build the template-mode graph",
    )
    _add_param_args(parser)
    parsed = parser.parse_args(args)

    request = _load_request(parser, parsed)
    graph = build_graph(request, template=parsed.template)

    print(f"Parameters valid: {len(graph.stages)} stages, output [{graph.output}]")
    for i, stage in enumerate(graph.stages):
        print(f"  {i}: {serialize_stage(stage)}")
    for layer in graph.layers:
        print(f"  [{layer.input}] {layer.name}: {layer.text!r}")


def serve_main(args=None):
    parser = argparse.ArgumentParser(
        prog="memecompose serve",
        description="Run the HTTP composition service.",
    )
    parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    parser.add_argument(
        "--port", type=int, default=None,
        help="Port (default: $PORT or 3000)",
    )
    parsed = parser.parse_args(args)

    import logging

    import uvicorn

    from .server import create_app
    from .settings import Settings

    logging.basicConfig(level=logging.INFO)
    settings = Settings.from_env()
    port = parsed.port or settings.port
    print(f"memecompose running on port {port}")
    print(f"Health check: http://localhost:{port}/health")
    uvicorn.run(create_app(settings), host=parsed.host, port=port)
