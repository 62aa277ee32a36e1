"""Text layout, filter-value escaping and opacity helpers."""

import textwrap

# Average glyph advance as a fraction of font size, used to turn a pixel
# width into a character budget.
CHAR_WIDTH_FACTOR = 0.6

# Characters that must be backslash-escaped inside an option value, then
# again at the filtergraph level. Order matters: backslash first.
_OPTION_SPECIALS = ("\\", "'", ":")
_GRAPH_SPECIALS = ("\\", "'", "[", "]", ",", ";")


def max_chars_per_line(canvas_width: float, font_size: float) -> int:
    """Character budget for one wrapped line; never less than 1."""
    return max(1, int(canvas_width / (font_size * CHAR_WIDTH_FACTOR)))


def wrap_text(text: str, max_chars: int) -> list[str]:
    """Word-wrap text to at most max_chars per line.

    Splits only at spaces, never inside a word, so a word longer than the
    budget stays on its own line. Existing newlines are kept as hard breaks.
    Blank input returns an empty list.
    """
    lines = []
    for paragraph in text.strip().splitlines():
        wrapped = textwrap.wrap(
            paragraph,
            width=max_chars,
            break_long_words=False,
            break_on_hyphens=False,
        )
        lines.extend(wrapped or [""])
    return lines


def _escape(value: str, specials: tuple[str, ...]) -> str:
    for char in specials:
        value = value.replace(char, "\\" + char)
    return value


def escape_filter_value(value: str) -> str:
    """Escape a string for use as a filter option value in -filter_complex.

    Two levels, as ffmpeg parses them: first the option value (backslash,
    quote, colon), then the filtergraph description (backslash, quote,
    brackets, comma, semicolon). Newlines pass through untouched.
    """
    return _escape(_escape(value, _OPTION_SPECIALS), _GRAPH_SPECIALS)


def opacity_to_alpha(percent: float) -> float:
    """Map an opacity percentage to an alpha in [0, 1], clamping first."""
    return min(100.0, max(0.0, float(percent))) / 100.0

