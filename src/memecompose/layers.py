"""Text layer rendering with Pillow.

Each TextLayer becomes a transparent RGBA PNG the size of the canvas, with
the text block positioned by its ink bounding box (stroke included), so
"right/bottom edge at (x, y)" means exactly that. The compositor feeds
these images to ffmpeg as looped still inputs.
"""

import logging
from pathlib import Path

from PIL import Image, ImageDraw

from .common import Fonts, load_font
from .request import Size
from .stages import TextLayer

logger = logging.getLogger(__name__)


def _block_origin(layer: TextLayer, width: float, height: float) -> tuple[float, float]:
    """Top-left corner of the text block for the layer's anchor."""
    if layer.halign == "left":
        left = layer.x
    elif layer.halign == "right":
        left = layer.x - width
    else:
        left = layer.x - width / 2
    top = layer.y - height if layer.valign == "bottom" else layer.y
    return left, top


def render_layer(layer: TextLayer, canvas: Size, fonts: Fonts | None = None) -> Image.Image:
    """Draw one text layer on a transparent canvas-sized image."""
    img = Image.new("RGBA", (canvas.width, canvas.height), (0, 0, 0, 0))
    draw = ImageDraw.Draw(img)
    font = load_font(layer.size, bold=layer.bold, fonts=fonts)

    text_opts = dict(
        font=font,
        spacing=layer.line_spacing,
        stroke_width=layer.stroke_width,
        align=layer.halign,
    )
    l, t, r, b = draw.multiline_textbbox((0, 0), layer.text, **text_opts)
    left, top = _block_origin(layer, r - l, b - t)

    draw.multiline_text(
        (round(left - l), round(top - t)),
        layer.text,
        fill=(*layer.fill, 255),
        stroke_fill=(*layer.stroke_fill, 255),
        **text_opts,
    )

    if layer.opacity < 1.0:
        alpha = img.getchannel("A").point(lambda v: round(v * layer.opacity))
        img.putalpha(alpha)
    return img


def write_layers(
    layers: tuple[TextLayer, ...] | list[TextLayer],
    canvas: Size,
    directory: str | Path,
    fonts: Fonts | None = None,
) -> list[Path]:
    """Render every layer to ``<directory>/<name>.png``, in input order."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    fonts = fonts or Fonts.discover()

    paths = []
    for layer in layers:
        path = directory / f"{layer.name}.png"
        render_layer(layer, canvas, fonts).save(path)
        logger.debug("Rendered %s layer %r -> %s", layer.name, layer.text, path)
        paths.append(path)
    return paths
