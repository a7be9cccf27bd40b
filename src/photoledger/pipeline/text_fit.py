"""Text fitting against real glyph widths.

Renderers must not rely on character counts: a Japanese label and a Latin
station code of the same length differ by a factor of two in width. Widths
are measured with Pillow's FreeType bindings so the PDF and spreadsheet
renderers truncate identically.
"""

import logging
import unicodedata
from functools import lru_cache
from pathlib import Path
from typing import Optional, Protocol

from PIL import ImageFont

from photoledger.models.layout import pt_to_mm

logger = logging.getLogger(__name__)

# Fonts with Japanese glyphs, tried in order when no font path is configured
JAPANESE_FONT_CANDIDATES: tuple[str, ...] = (
    r"C:\Windows\Fonts\YuMincho.ttc",
    r"C:\Windows\Fonts\msmincho.ttc",
    r"C:\Windows\Fonts\meiryo.ttc",
    r"C:\Windows\Fonts\YuGothM.ttc",
    r"C:\Windows\Fonts\msgothic.ttc",
    "/System/Library/Fonts/ヒラギノ明朝 ProN.ttc",
    "/System/Library/Fonts/ヒラギノ角ゴシック W3.ttc",
    "/System/Library/Fonts/Supplemental/Arial Unicode.ttf",
    "/usr/share/fonts/opentype/noto/NotoSerifCJK-Regular.ttc",
    "/usr/share/fonts/opentype/noto/NotoSansCJK-Regular.ttc",
    "/usr/share/fonts/truetype/noto/NotoSansCJK-Regular.ttc",
    "/usr/share/fonts/opentype/ipaexfont-mincho/ipaexm.ttf",
    "/usr/share/fonts/opentype/ipaexfont-gothic/ipaexg.ttf",
    "/usr/share/fonts/truetype/fonts-japanese-mincho.ttf",
    "/usr/share/fonts/truetype/fonts-japanese-gothic.ttf",
)


class TextMetrics(Protocol):
    def width_mm(self, text: str) -> float: ...


def find_japanese_font(candidates: Optional[tuple[str, ...]] = None) -> Optional[str]:
    """First installed font from the candidate list, or None."""
    for candidate in candidates or JAPANESE_FONT_CANDIDATES:
        if Path(candidate).is_file():
            return candidate
    return None


def is_wide(char: str) -> bool:
    """True for characters set in a full em (CJK ideographs, kana, full-width forms)."""
    return unicodedata.east_asian_width(char) in ("W", "F")


@lru_cache(maxsize=16)
def load_font(font_path: Optional[str], size_pt: float) -> ImageFont.FreeTypeFont:
    """Load a font once per (path, size).

    Without a path, Pillow's bundled scalable font is used.
    """
    if font_path:
        return ImageFont.truetype(font_path, size=size_pt)
    return ImageFont.load_default(size=size_pt)


class GlyphMetrics:
    """Measures text width in millimetres at a fixed font size.

    Without an explicit font path the first installed Japanese font is
    used. When none is installed, Pillow's bundled font measures Latin text
    and every wide character counts as one em, since the bundled font has
    no glyphs for it.
    """

    def __init__(self, font_path: Optional[str] = None, font_size_pt: float = 9.0):
        self.font_size_pt = font_size_pt
        self.font_path = font_path or find_japanese_font()
        self.covers_cjk = self.font_path is not None
        if not self.covers_cjk:
            logger.warning(
                "No Japanese font found; measuring wide characters as %.1fpt each",
                font_size_pt,
            )
        self.font = load_font(self.font_path, font_size_pt)

    def width_mm(self, text: str) -> float:
        if not text:
            return 0.0
        if self.covers_cjk:
            return pt_to_mm(self.font.getlength(text))
        wide = sum(1 for char in text if is_wide(char))
        narrow = "".join(char for char in text if not is_wide(char))
        points = wide * self.font_size_pt
        if narrow:
            points += self.font.getlength(narrow)
        return pt_to_mm(points)

    def __repr__(self) -> str:
        return f"GlyphMetrics(font_path={self.font_path!r}, font_size_pt={self.font_size_pt})"


def fits(text: str, max_width_mm: float, metrics: TextMetrics) -> bool:
    return metrics.width_mm(text) <= max_width_mm + 1e-9


def truncate_to_width(
    text: str,
    max_width_mm: float,
    metrics: TextMetrics,
    ellipsis: str = "…",
) -> tuple[str, bool]:
    """Cut text so that it fits a width, marking the cut with an ellipsis.

    Args:
        text: Single-line text.
        max_width_mm: Available width.
        metrics: Width measurer.
        ellipsis: Truncation marker appended to cut text.

    Returns:
        (fitted text, truncated flag). When not even the ellipsis fits the
        result is an empty string.
    """
    if fits(text, max_width_mm, metrics):
        return text, False
    if not fits(ellipsis, max_width_mm, metrics):
        return "", True

    # Longest prefix whose ellipsized form still fits
    lo, hi = 0, len(text)
    while lo < hi:
        mid = (lo + hi + 1) // 2
        if fits(text[:mid] + ellipsis, max_width_mm, metrics):
            lo = mid
        else:
            hi = mid - 1
    # Kerning can make width non-monotonic in prefix length
    while lo > 0 and not fits(text[:lo] + ellipsis, max_width_mm, metrics):
        lo -= 1
    return text[:lo].rstrip() + ellipsis, True


def _break_line(text: str, max_width_mm: float, metrics: TextMetrics) -> int:
    """Number of leading characters of text that fit on one line (at least 1)."""
    lo, hi = 1, len(text)
    while lo < hi:
        mid = (lo + hi + 1) // 2
        if fits(text[:mid], max_width_mm, metrics):
            lo = mid
        else:
            hi = mid - 1
    # Prefer breaking after a space when the line holds Latin words
    if lo < len(text) and text[lo] != " ":
        space = text.rfind(" ", 1, lo)
        if space > 0:
            return space + 1
    return lo


def wrap_to_width(
    text: str,
    max_width_mm: float,
    max_lines: int,
    metrics: TextMetrics,
    ellipsis: str = "…",
) -> tuple[list[str], bool]:
    """Wrap text into at most max_lines lines of the given width.

    Breaking is character-greedy so unspaced Japanese wraps correctly.
    Explicit newlines start a new line. If the text does not fit, the last
    line is ellipsized.

    Returns:
        (lines, truncated flag)
    """
    if max_lines < 1:
        return [], bool(text)

    pending = text.splitlines() or [""]
    lines: list[str] = []
    truncated = False

    while pending:
        paragraph = pending.pop(0)
        while True:
            if len(lines) == max_lines:
                truncated = True
                break
            if fits(paragraph, max_width_mm, metrics):
                lines.append(paragraph)
                break
            cut = _break_line(paragraph, max_width_mm, metrics)
            lines.append(paragraph[:cut].rstrip())
            paragraph = paragraph[cut:].lstrip(" ")
            if not paragraph:
                break
        if truncated:
            break

    # A single glyph wider than the column still has to be cut
    for i, line in enumerate(lines):
        if not fits(line, max_width_mm, metrics):
            lines[i], _ = truncate_to_width(line, max_width_mm, metrics, ellipsis)
            truncated = True

    if truncated and not lines[-1].endswith(ellipsis):
        lines[-1], _ = truncate_to_width(lines[-1] + ellipsis, max_width_mm, metrics, ellipsis)
    return lines, truncated
