"""Descriptor builder — CompositionRequest to an ordered FilterGraph.

Two layouts:

  Text mode (default): the source is cover-scaled, placed against the
  frame center, cropped to the frame and re-seated on a fresh background.
  Top text, uppercase caption and watermark are laid on top as text
  layers (inputs 1, 2, ...), watermark last.

  Template mode: the source is cover-scaled against the reference frame
  (original frame if supplied, else the frame) and placed on a background,
  then the PNG template (input 1) is laid over the whole canvas at the
  origin. Text and watermark are baked into the template by the caller.

Input 0 is always the trimmed source video. The builder is pure: no I/O,
and total over validated requests. Text layers are only described here;
layers.py renders them.
"""

from .request import CompositionRequest, Rect
from .stages import FilterGraph, Stage, TextLayer
from .text import max_chars_per_line, opacity_to_alpha, wrap_text


# ── Layout constants ──────────────────────────────────────────────

BACKGROUND_COLOR = "white"
FPS = 30

BLACK = (0, 0, 0)
WHITE = (255, 255, 255)

TOP_TEXT_COLOR = BLACK
TOP_TEXT_LINE_SPACING = 8

OVERLAY_TEXT_SIZE_FRAC = 0.055    # caption font size as fraction of canvas width
OVERLAY_TEXT_INSET = 60           # caption top sits this far above frame bottom
OVERLAY_TEXT_COLOR = WHITE
OVERLAY_TEXT_BORDER = 4
OVERLAY_TEXT_BORDER_COLOR = BLACK

WATERMARK_SIZE_FRAC = 0.04
WATERMARK_COLOR = WHITE
WATERMARK_BORDER = 2
WATERMARK_BORDER_COLOR = (0x33, 0x33, 0x33)

SOURCE_INPUT = "0:v"
TEMPLATE_INPUT = "1:v"

# Surface label produced by overlaying each text layer.
LAYER_OUTPUTS = {
    "top_text": "with_text",
    "caption": "with_overlay",
    "watermark": "final",
}


# ── Stage helpers ─────────────────────────────────────────────────


def _background(request: CompositionRequest, label: str) -> Stage:
    canvas = request.canvas
    return Stage(
        "color", (), label,
        (
            ("c", BACKGROUND_COLOR),
            ("s", f"{canvas.width}x{canvas.height}"),
            ("r", FPS),
            ("d", request.trim.duration),
        ),
    )


def _cover_scale(request: CompositionRequest, target: Rect, label: str) -> Stage:
    """Scale the source to cover target*scale, keeping aspect ratio.

    force_original_aspect_ratio=increase grows whichever axis falls short,
    so the result is at least the target size on both axes, never stretched.
    """
    s = request.placement.scale
    return Stage(
        "scale", (SOURCE_INPUT,), label,
        (
            ("w", max(1, round(target.width * s))),
            ("h", max(1, round(target.height * s))),
            ("force_original_aspect_ratio", "increase"),
        ),
    )


def _centered_overlay(
    base: str, top: str, label: str, center: tuple[float, float],
) -> Stage:
    cx, cy = center
    return Stage(
        "overlay", (base, top), label,
        (
            ("x", f"{round(cx)}-overlay_w/2"),
            ("y", f"{round(cy)}-overlay_h/2"),
        ),
    )


def _placement_center(request: CompositionRequest, frame: Rect) -> tuple[float, float]:
    cx, cy = frame.center
    return cx + request.placement.offset_x, cy + request.placement.offset_y


# ── Layers ────────────────────────────────────────────────────────


def _framed_source_stages(request: CompositionRequest) -> tuple[list[Stage], str]:
    """Source placed in the frame via crop-then-reseat.

    Returns (stages, output label). When the frame lies entirely outside
    the canvas, only a background is produced.
    """
    canvas_rect = Rect(0, 0, request.canvas.width, request.canvas.height)
    visible = request.frame.intersect(canvas_rect)
    if visible is None:
        return [_background(request, "bg")], "bg"

    return [
        _background(request, "bg"),
        _cover_scale(request, request.frame, "scaled"),
        _centered_overlay(
            "bg", "scaled", "placed", _placement_center(request, request.frame),
        ),
        Stage(
            "crop", ("placed",), "cropped",
            (
                ("w", round(visible.width)),
                ("h", round(visible.height)),
                ("x", round(visible.x)),
                ("y", round(visible.y)),
                ("exact", 1),
            ),
        ),
        _background(request, "bg2"),
        Stage(
            "overlay", ("bg2", "cropped"), "framed",
            (("x", round(visible.x)), ("y", round(visible.y))),
        ),
    ], "framed"


def _top_text_layer(request: CompositionRequest, input_label: str) -> TextLayer | None:
    top = request.top_text
    if not top.text.strip():
        return None
    lines = wrap_text(top.text, max_chars_per_line(request.canvas.width, top.size))
    centered = top.align == "center"
    return TextLayer(
        name="top_text",
        input=input_label,
        lines=tuple(lines),
        size=top.size,
        fill=TOP_TEXT_COLOR,
        x=request.canvas.width / 2 if centered else top.x,
        y=top.y,
        halign="center" if centered else "left",
        valign="top",
        line_spacing=TOP_TEXT_LINE_SPACING,
    )


def _caption_layer(request: CompositionRequest, input_label: str) -> TextLayer | None:
    text = request.overlay_text.text
    if not text.strip():
        return None
    return TextLayer(
        name="caption",
        input=input_label,
        lines=(text.strip().upper(),),
        size=request.canvas.width * OVERLAY_TEXT_SIZE_FRAC,
        fill=OVERLAY_TEXT_COLOR,
        x=request.canvas.width / 2,
        y=request.frame.bottom - OVERLAY_TEXT_INSET,
        halign="center",
        valign="top",
        bold=True,
        stroke_width=OVERLAY_TEXT_BORDER,
        stroke_fill=OVERLAY_TEXT_BORDER_COLOR,
    )


def _watermark_layer(request: CompositionRequest, input_label: str) -> TextLayer:
    wm = request.watermark
    return TextLayer(
        name="watermark",
        input=input_label,
        lines=(wm.label,),
        size=request.canvas.width * WATERMARK_SIZE_FRAC,
        fill=WATERMARK_COLOR,
        x=wm.x,
        y=wm.y,
        halign="right",
        valign="bottom",
        bold=True,
        stroke_width=WATERMARK_BORDER,
        stroke_fill=WATERMARK_BORDER_COLOR,
        opacity=opacity_to_alpha(wm.opacity_percent),
    )


# ── Public API ────────────────────────────────────────────────────


def build_text_graph(request: CompositionRequest) -> FilterGraph:
    """Frame + top text + caption + watermark layout."""
    stages, current = _framed_source_stages(request)
    layers = []

    for make_layer in (_top_text_layer, _caption_layer, _watermark_layer):
        layer = make_layer(request, f"{len(layers) + 1}:v")
        if layer is None:
            continue
        layers.append(layer)
        output = LAYER_OUTPUTS[layer.name]
        stages.append(Stage(
            "overlay", (current, layer.input), output, (("x", 0), ("y", 0)),
        ))
        current = output

    return FilterGraph(tuple(stages), tuple(layers))


def build_template_graph(request: CompositionRequest) -> FilterGraph:
    """Source under a full-canvas PNG template (input 1)."""
    reference = request.reference_frame
    stages = [
        _background(request, "bg"),
        _cover_scale(request, reference, "scaled"),
        _centered_overlay(
            "bg", "scaled", "placed", _placement_center(request, reference),
        ),
        Stage(
            "overlay", ("placed", TEMPLATE_INPUT), "final",
            (("x", 0), ("y", 0)),
        ),
    ]
    return FilterGraph(tuple(stages))


def build_graph(request: CompositionRequest, template: bool = False) -> FilterGraph:
    """Build the filter graph for a request; template selects the layout."""
    if template:
        return build_template_graph(request)
    return build_text_graph(request)
