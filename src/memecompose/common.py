"""memecompose.common — shared utilities.

Contains: ffmpeg executable lookup, font discovery and loading for the
text layers, and template image inspection.
"""

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path

import imageio_ffmpeg
from PIL import Image, ImageFont

from .errors import ValidationError


# ── ffmpeg ─────────────────────────────────────────────────────────

FFMPEG_ENV_VAR = "MEMECOMPOSE_FFMPEG"


def ffmpeg_exe() -> str:
    """Path to the ffmpeg binary.

    MEMECOMPOSE_FFMPEG overrides the binary bundled with imageio-ffmpeg
    (useful for system builds with extra encoders).
    """
    return os.environ.get(FFMPEG_ENV_VAR) or imageio_ffmpeg.get_ffmpeg_exe()


def ffmpeg_available() -> bool:
    """True if ffmpeg can be located and answers ``-version``."""
    try:
        result = subprocess.run(
            [ffmpeg_exe(), "-version"], capture_output=True, check=False,
        )
    except (OSError, RuntimeError):
        return False
    return result.returncode == 0


# ── Font paths ─────────────────────────────────────────────────────
# DejaVu ships with most Linux images (fonts-dejavu-core), Liberation as
# fallback. Pillow needs a file path, not a family name.

FONT_PATHS = [
    Path("/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"),
    Path("/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf"),
    Path("/usr/share/fonts/TTF/DejaVuSans.ttf"),
]

BOLD_FONT_PATHS = [
    Path("/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf"),
    Path("/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf"),
    Path("/usr/share/fonts/TTF/DejaVuSans-Bold.ttf"),
]


def find_font(bold: bool = False) -> str | None:
    """First existing font file, bold face if requested.

    Falls back to the regular list when no bold face is installed.
    Returns None if nothing is found; load_font then falls back to
    Pillow's bundled font.
    """
    candidates = BOLD_FONT_PATHS + FONT_PATHS if bold else FONT_PATHS
    for font_path in candidates:
        if font_path.exists():
            return str(font_path)
    return None


@dataclass(frozen=True)
class Fonts:
    """Font files for the text layers; None falls back to Pillow's own font."""
    regular: str | None = None
    bold: str | None = None

    @classmethod
    def discover(cls) -> "Fonts":
        return cls(regular=find_font(), bold=find_font(bold=True))

    def path(self, bold: bool = False) -> str | None:
        return self.bold if bold else self.regular


def load_font(
    size: float, bold: bool = False, fonts: Fonts | None = None,
) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Load the regular (or bold) face at the given pixel size.

    Falls back to Pillow's bundled font, which is still scalable when
    Pillow is built with FreeType (the default for its wheels).
    """
    fonts = fonts or Fonts.discover()
    size = max(1, round(size))
    font_path = fonts.path(bold)
    if font_path:
        try:
            return ImageFont.truetype(font_path, size=size)
        except OSError:
            pass
    # Last resort: Pillow default font.
    return ImageFont.load_default(size=size)


# ── Template images ────────────────────────────────────────────────


@dataclass(frozen=True)
class TemplateInfo:
    width: int
    height: int
    has_alpha: bool


def inspect_template(path: str | Path) -> TemplateInfo:
    """Open a template overlay and report its size and transparency.

    Raises:
        ValidationError: Not a readable PNG image.
    """
    try:
        with Image.open(path) as img:
            fmt = img.format
            has_alpha = img.mode in ("RGBA", "LA") or (
                img.mode == "P" and "transparency" in img.info
            )
            width, height = img.size
    except (OSError, Image.DecompressionBombError) as e:
        raise ValidationError(f"Template is not a readable image: {e}") from e
    if fmt != "PNG":
        raise ValidationError(f"Template must be a PNG image, got {fmt}")
    return TemplateInfo(width=width, height=height, has_alpha=has_alpha)
