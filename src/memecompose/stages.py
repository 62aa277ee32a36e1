"""Typed filter-graph stages and their serialization.

The builder emits an ordered list of Stage records. Each stage names its
input surfaces, one output surface, and its filter options. Only
serialize_graph() turns them into ffmpeg's -filter_complex syntax, so all
escaping happens in one place.

Stage kinds map 1:1 to ffmpeg filters:
  - color:    blank surface source (no inputs)
  - scale:    resize one surface
  - overlay:  draw the second input onto the first
  - crop:     cut a rectangle out of one surface

Text is not drawn by the engine. Each text element is a TextLayer: a
transparent full-canvas image rendered with Pillow (see layers.py) and fed
to the graph as an extra still input, then laid on with overlay.
"""

from dataclasses import dataclass

from .text import escape_filter_value


VALID_STAGE_KINDS = {"color", "scale", "overlay", "crop"}

# Number of inputs each kind consumes.
STAGE_ARITY = {"color": 0, "scale": 1, "overlay": 2, "crop": 1}


@dataclass(frozen=True)
class Stage:
    """One filter application: inputs -> kind(options) -> output.

    options is an ordered tuple of (name, value) pairs. Values are numbers
    or plain strings; strings are escaped at serialization time.
    """
    kind: str
    inputs: tuple[str, ...]
    output: str
    options: tuple[tuple[str, object], ...] = ()

    def __post_init__(self):
        if self.kind not in VALID_STAGE_KINDS:
            raise ValueError(
                f"Unknown stage kind '{self.kind}'. Valid: {sorted(VALID_STAGE_KINDS)}"
            )
        if len(self.inputs) != STAGE_ARITY[self.kind]:
            raise ValueError(
                f"Stage '{self.kind}' takes {STAGE_ARITY[self.kind]} inputs, "
                f"got {len(self.inputs)}"
            )

    def option(self, name: str):
        """Value of an option, or None if unset."""
        for key, value in self.options:
            if key == name:
                return value
        return None


@dataclass(frozen=True)
class TextLayer:
    """One text element, drawn on a transparent canvas-sized image.

    (x, y) is the anchor point. halign picks whether x is the text block's
    left edge, right edge or horizontal center; valign picks whether y is
    its top or bottom edge.
    input is the stream specifier the graph reads it from, e.g. "1:v".
    """
    name: str
    input: str
    lines: tuple[str, ...]
    size: float
    fill: tuple[int, int, int]
    x: float = 0
    y: float = 0
    halign: str = "center"
    valign: str = "top"
    bold: bool = False
    stroke_width: int = 0
    stroke_fill: tuple[int, int, int] = (0, 0, 0)
    line_spacing: int = 0
    opacity: float = 1.0

    @property
    def text(self) -> str:
        return "\n".join(self.lines)


@dataclass(frozen=True)
class FilterGraph:
    """Ordered stages plus the label of the result surface.

    layers are the text images the graph overlays, in input order; they
    follow the source video (and template, if any) on the command line.
    """
    stages: tuple[Stage, ...]
    layers: tuple[TextLayer, ...] = ()

    @property
    def output(self) -> str:
        return self.stages[-1].output

    def find(self, kind: str) -> list[Stage]:
        return [s for s in self.stages if s.kind == kind]

    def layer(self, name: str) -> TextLayer | None:
        for text_layer in self.layers:
            if text_layer.name == name:
                return text_layer
        return None


def format_number(value: float) -> str:
    """Render a number without float noise: 540, 59.4, 0.5."""
    if isinstance(value, int) or float(value).is_integer():
        return str(int(value))
    return f"{value:.4f}".rstrip("0").rstrip(".")


def _format_value(value) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return format_number(value)
    return escape_filter_value(str(value))


def serialize_stage(stage: Stage) -> str:
    """One stage as ``[in0][in1]filter=k=v:k=v[out]``."""
    inputs = "".join(f"[{label}]" for label in stage.inputs)
    body = stage.kind
    if stage.options:
        body += "=" + ":".join(
            f"{key}={_format_value(value)}" for key, value in stage.options
        )
    return f"{inputs}{body}[{stage.output}]"


def serialize_graph(graph: FilterGraph) -> str:
    """The whole graph as a -filter_complex string (stages joined by ';')."""
    return ";".join(serialize_stage(stage) for stage in graph.stages)
