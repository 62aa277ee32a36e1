"""Composition request — the validated, immutable input of one job.

Parses the flat parameter object (HTTP JSON body or a YAML params file),
applies documented defaults, validates geometry and timing once, and
returns a frozen CompositionRequest. Nothing downstream re-checks it.

Params schema (all keys optional):
  templateWidth: 1080          templateHeight: 1080
  frameX: 54   frameY: 195     frameWidth: 972   frameHeight: 810
  frameRadius: 27
  originalFrameX/Y/Width/Height   # template mode placement reference
  trimStart: 0                 trimEnd: 10
  imageScale: 100              imageOffsetX: 0   imageOffsetY: 0
  text: ""   textSize: 42   textX: 54   textY: 40   textAlign: center
  overlayText: ""
  watermarkX: 1010   watermarkY: 1040   watermarkOpacity: 100
"""

import math
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .errors import ValidationError


# ── Defaults ──────────────────────────────────────────────────────

DEFAULT_PARAMS = {
    "templateWidth": 1080,
    "templateHeight": 1080,
    "frameX": 54,
    "frameY": 195,
    "frameWidth": 972,
    "frameHeight": 810,
    "frameRadius": 27,
    "trimStart": 0,
    "trimEnd": 10,
    "imageScale": 100,
    "imageOffsetX": 0,
    "imageOffsetY": 0,
    "text": "",
    "textSize": 42,
    "textX": 54,
    "textY": 40,
    "textAlign": "center",
    "overlayText": "",
    "watermarkX": 1010,
    "watermarkY": 1040,
    "watermarkOpacity": 100,
}

ORIGINAL_FRAME_KEYS = (
    "originalFrameX", "originalFrameY", "originalFrameWidth", "originalFrameHeight",
)

VALID_TEXT_ALIGNS = {"center", "left"}

STRING_KEYS = {"text", "overlayText", "textAlign"}

WATERMARK_LABEL = "SAMOURAIS"


# ── Value types ───────────────────────────────────────────────────


@dataclass(frozen=True)
class Size:
    width: int
    height: int


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> tuple[float, float]:
        return self.x + self.width / 2, self.y + self.height / 2

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def intersect(self, other: "Rect") -> "Rect | None":
        """Overlap of two rectangles, or None if they don't overlap."""
        x0 = max(self.x, other.x)
        y0 = max(self.y, other.y)
        x1 = min(self.x + self.width, other.x + other.width)
        y1 = min(self.y + self.height, other.y + other.height)
        if x1 <= x0 or y1 <= y0:
            return None
        return Rect(x0, y0, x1 - x0, y1 - y0)


@dataclass(frozen=True)
class TrimWindow:
    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass(frozen=True)
class Placement:
    """Source placement relative to the frame center.

    scale_percent 100 means the source exactly covers the frame.
    """
    scale_percent: float = 100
    offset_x: float = 0
    offset_y: float = 0

    @property
    def scale(self) -> float:
        return self.scale_percent / 100


@dataclass(frozen=True)
class TopText:
    text: str = ""
    size: float = 42
    x: float = 54
    y: float = 40
    align: str = "center"


@dataclass(frozen=True)
class OverlayText:
    text: str = ""


@dataclass(frozen=True)
class Watermark:
    x: float = 1010
    y: float = 1040
    opacity_percent: float = 100
    label: str = WATERMARK_LABEL


@dataclass(frozen=True)
class CompositionRequest:
    canvas: Size = field(default_factory=lambda: Size(1080, 1080))
    frame: Rect = field(default_factory=lambda: Rect(54, 195, 972, 810))
    corner_radius: float = 27
    trim: TrimWindow = field(default_factory=lambda: TrimWindow(0, 10))
    placement: Placement = field(default_factory=Placement)
    top_text: TopText = field(default_factory=TopText)
    overlay_text: OverlayText = field(default_factory=OverlayText)
    watermark: Watermark = field(default_factory=Watermark)
    original_frame: Rect | None = None

    @property
    def reference_frame(self) -> Rect:
        """Rectangle the source is placed against in template mode."""
        return self.original_frame or self.frame


# ── Parsing ───────────────────────────────────────────────────────


def _number(params: dict, key: str) -> float:
    """Read a finite number, falling back to the documented default."""
    value = params.get(key)
    if value is None:
        value = DEFAULT_PARAMS.get(key)
    if isinstance(value, bool):
        raise ValidationError(f"'{key}' must be a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f"'{key}' must be a number, got {value!r}") from None
    if not math.isfinite(number):
        raise ValidationError(f"'{key}' must be finite, got {value!r}")
    # Keep integers integral so pixel values serialize without a ".0".
    return int(number) if number.is_integer() else number


def _string(params: dict, key: str) -> str:
    value = params.get(key, DEFAULT_PARAMS.get(key))
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"'{key}' must be a string, got {type(value).__name__}")
    return value


def _positive(params: dict, key: str) -> float:
    value = _number(params, key)
    if value <= 0:
        raise ValidationError(f"'{key}' must be > 0, got {value}")
    return value


def _canvas_dimension(params: dict, key: str) -> int:
    value = _positive(params, key)
    if not isinstance(value, int):
        raise ValidationError(f"'{key}' must be a whole number of pixels, got {value}")
    return value


def _original_frame(params: dict) -> Rect | None:
    present = [k for k in ORIGINAL_FRAME_KEYS if params.get(k) is not None]
    if not present:
        return None
    if len(present) != len(ORIGINAL_FRAME_KEYS):
        missing = [k for k in ORIGINAL_FRAME_KEYS if k not in present]
        raise ValidationError(
            f"Original frame is partially specified; missing {missing}"
        )
    return Rect(
        _number(params, "originalFrameX"),
        _number(params, "originalFrameY"),
        _positive(params, "originalFrameWidth"),
        _positive(params, "originalFrameHeight"),
    )


def request_from_params(params: dict | None) -> CompositionRequest:
    """Validate a flat params dict and build a CompositionRequest.

    Omitted keys take the values in DEFAULT_PARAMS. Unknown keys are ignored.

    Raises:
        ValidationError: Non-numeric or non-finite numbers, non-positive
            or fractional canvas dimensions, non-positive frame dimensions,
            bad trim window, non-positive scale or text size, unknown text
            alignment, partial original frame.
    """
    if params is None:
        params = {}
    if not isinstance(params, dict):
        raise ValidationError(
            f"Parameters must be an object, got {type(params).__name__}"
        )

    canvas = Size(
        _canvas_dimension(params, "templateWidth"),
        _canvas_dimension(params, "templateHeight"),
    )
    frame = Rect(
        _number(params, "frameX"),
        _number(params, "frameY"),
        _positive(params, "frameWidth"),
        _positive(params, "frameHeight"),
    )

    corner_radius = _number(params, "frameRadius")
    if corner_radius < 0:
        raise ValidationError(f"'frameRadius' must be >= 0, got {corner_radius}")

    start = _number(params, "trimStart")
    end = _number(params, "trimEnd")
    if start < 0:
        raise ValidationError(f"'trimStart' must be >= 0, got {start}")
    if end <= start:
        raise ValidationError(f"'trimEnd' ({end}) must be > 'trimStart' ({start})")

    placement = Placement(
        scale_percent=_positive(params, "imageScale"),
        offset_x=_number(params, "imageOffsetX"),
        offset_y=_number(params, "imageOffsetY"),
    )

    align = _string(params, "textAlign") or "center"
    if align not in VALID_TEXT_ALIGNS:
        raise ValidationError(
            f"Invalid textAlign '{align}'. Valid: {sorted(VALID_TEXT_ALIGNS)}"
        )
    top_text = TopText(
        text=_string(params, "text"),
        size=_positive(params, "textSize"),
        x=_number(params, "textX"),
        y=_number(params, "textY"),
        align=align,
    )

    opacity = min(100, max(0, _number(params, "watermarkOpacity")))
    watermark = Watermark(
        x=_number(params, "watermarkX"),
        y=_number(params, "watermarkY"),
        opacity_percent=opacity,
    )

    return CompositionRequest(
        canvas=canvas,
        frame=frame,
        corner_radius=corner_radius,
        trim=TrimWindow(start, end),
        placement=placement,
        top_text=top_text,
        overlay_text=OverlayText(_string(params, "overlayText")),
        watermark=watermark,
        original_frame=_original_frame(params),
    )


def parse_param_overrides(pairs: list[str]) -> dict:
    """Turn CLI ``key=value`` strings into a params dict.

    Numeric values are parsed as YAML scalars (``trimEnd=5`` gives an int);
    text keys are kept verbatim.
    """
    overrides = {}
    for pair in pairs:
        if "=" not in pair:
            raise ValidationError(f"Expected key=value, got '{pair}'")
        key, raw = pair.split("=", 1)
        key = key.strip()
        if key in STRING_KEYS or not raw:
            overrides[key] = raw
            continue
        value = yaml.safe_load(raw)
        overrides[key] = value if value is not None else ""
    return overrides


def load_params(params_path: str | Path | None) -> dict:
    """Load a YAML (or JSON) params file. None returns an empty dict."""
    if params_path is None:
        return {}
    with open(params_path) as f:
        raw = yaml.safe_load(f)
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValidationError(
            f"Params file {params_path}: top level must be a mapping"
        )
    return raw
