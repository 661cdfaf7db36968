from __future__ import annotations

import io
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import fitz  # PyMuPDF
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import ShapedStr, TTFError, TTFont, TTFOpenFile, shapeStr
from reportlab.pdfgen import canvas

from .. import config
from ..errors import RenderError, RenderFailure, TemplateError
from .layout import PageLayout
from .names import NameEntry


logger = logging.getLogger(__name__)

# PyMuPDF is not thread-safe; every fitz call goes through this lock.
_PDF_LOCK = threading.Lock()
_FONT_LOCK = threading.Lock()

SAVE_OPTIONS = {"garbage": 3, "deflate": True, "no_new_id": True}


@dataclass(frozen=True)
class PlacedLine:
    text: str
    x: float
    baseline: float  # PDF user space, origin bottom-left


_FONT_FILES: Dict[Tuple[Tuple[str, ...], str], Optional[str]] = {}


def find_font_file(family: str) -> Optional[str]:
    """Locate the TTF behind a family; None for base-14 families and fonts that are not installed."""
    candidates = config.FONT_FAMILIES.get(family)
    if not isinstance(candidates, tuple):
        return None
    key = (candidates, str(config.FONT_DIR))
    with _FONT_LOCK:
        if key in _FONT_FILES:
            return _FONT_FILES[key]
        found = None
        for filename in candidates:
            local = config.FONT_DIR / filename
            if local.is_file():
                found = str(local)
                break
            try:
                found, handle = TTFOpenFile(filename)
            except TTFError:
                continue
            handle.close()
            break
        _FONT_FILES[key] = found
    return found


def font_available(family: str) -> bool:
    target = config.FONT_FAMILIES.get(family)
    if target is None:
        return False
    return isinstance(target, str) or find_font_file(family) is not None


def resolve_font(family: str) -> str:
    """Map an editor font family to a registered reportlab font name."""
    target = config.FONT_FAMILIES.get(family)
    if target is None:
        raise RenderError(RenderFailure.UNSUPPORTED_GLYPH, f"unknown font family {family!r}")
    if isinstance(target, str):
        return target
    path = find_font_file(family)
    if path is None:
        raise RenderError(
            RenderFailure.UNSUPPORTED_GLYPH,
            f"font {family!r} is not installed (none of {', '.join(target)} in {config.FONT_DIR} "
            "or the system font folders)",
        )
    font_name = Path(path).stem
    with _FONT_LOCK:
        if font_name not in pdfmetrics.getRegisteredFontNames():
            pdfmetrics.registerFont(TTFont(font_name, path))
            if Path(path).name == target[0]:
                logger.info("Registered font %s from %s", family, path)
            else:
                logger.warning("%s uses %s; %s was not found", family, path, target[0])
    return font_name


def missing_glyphs(font_name: str, text: str) -> List[str]:
    font = pdfmetrics.getFont(font_name)
    char_map = getattr(getattr(font, "face", None), "charToGlyph", None)
    missing: List[str] = []
    for ch in text:
        if ch.isspace() or ch in missing:
            continue
        if char_map is not None:
            if ord(ch) not in char_map:
                missing.append(ch)
            continue
        # base-14 fonts are drawn with WinAnsiEncoding
        try:
            ch.encode("cp1252")
        except UnicodeEncodeError:
            missing.append(ch)
    return missing


def layout_lines(
    lines: Sequence[str],
    layout: PageLayout,
    page_width: float,
    page_height: float,
    ascent: float,
    descent: float,
) -> List[PlacedLine]:
    """
    Place each display line relative to the layout anchor.

    The block of len(lines) line boxes, each lineSpacing * fontSize tall, is
    centred vertically on the anchor. Inside a line box the glyphs sit the way
    CSS line-height places them: half the leading above, then the ascent down
    to the baseline. Horizontally the anchor is the left edge, the midpoint or
    the right edge of every line depending on alignment.
    """
    anchor_x = layout.position[0] / 100.0 * page_width
    anchor_y = layout.position[1] / 100.0 * page_height  # measured from the top
    pitch = layout.line_spacing * layout.font_size
    top = anchor_y - pitch * len(lines) / 2.0
    half_leading = (pitch - (ascent - descent)) / 2.0

    placed: List[PlacedLine] = []
    for index, text in enumerate(lines):
        from_top = top + index * pitch + half_leading + ascent
        placed.append(PlacedLine(text=text, x=anchor_x, baseline=page_height - from_top))
    return placed


def _open_pdf(data: bytes) -> fitz.Document:
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except (RuntimeError, ValueError, TypeError) as exc:
        raise RenderError(RenderFailure.MALFORMED_TEMPLATE, str(exc)) from exc
    if doc.needs_pass:
        doc.close()
        raise RenderError(RenderFailure.MALFORMED_TEMPLATE, "page is encrypted")
    return doc


def page_size(page_bytes: bytes) -> Tuple[float, float]:
    with _PDF_LOCK:
        with _open_pdf(page_bytes) as doc:
            if doc.page_count != 1:
                raise RenderError(
                    RenderFailure.MALFORMED_TEMPLATE,
                    f"expected a single page, found {doc.page_count}",
                )
            rect = doc.load_page(0).rect
            return float(rect.width), float(rect.height)


def shape_line(text: str, font_name: str, font_size: float) -> Tuple[str, float]:
    """
    Shape one display line and measure it.

    TrueType fonts go through HarfBuzz, so vowel signs are reordered and
    conjuncts formed the way the script needs; the result is a ShapedStr that
    reportlab draws glyph by glyph. Base-14 fonts come back as plain text.
    """
    if getattr(pdfmetrics.getFont(font_name), "shapable", False):
        shaped = shapeStr(text, font_name, font_size)
        if isinstance(shaped, ShapedStr):
            advance = sum(glyph.x_advance for glyph in shaped.__shapeData__)
            return shaped, advance * font_size / 1000.0
    return text, pdfmetrics.stringWidth(text, font_name, font_size)


def _draw_overlay(
    lines: Sequence[str],
    layout: PageLayout,
    font_name: str,
    page_width: float,
    page_height: float,
) -> bytes:
    ascent, descent = pdfmetrics.getAscentDescent(font_name, layout.font_size)
    placed = layout_lines(lines, layout, page_width, page_height, ascent, descent)

    buffer = io.BytesIO()
    # invariant=1 drops the timestamp and random id so output is reproducible
    canv = canvas.Canvas(buffer, pagesize=(page_width, page_height), invariant=1)
    canv.setFillColorRGB(*layout.rgb)
    canv.setFont(font_name, layout.font_size)
    for line in placed:
        text, width = shape_line(line.text, font_name, layout.font_size)
        if layout.alignment == "left":
            x = line.x
        elif layout.alignment == "right":
            x = line.x - width
        else:
            x = line.x - width / 2.0
        canv.drawString(x, line.baseline, text)
    canv.showPage()
    canv.save()
    return buffer.getvalue()


def _stamp(page_bytes: bytes, overlay: bytes) -> bytes:
    with _PDF_LOCK:
        with _open_pdf(page_bytes) as doc, fitz.open(stream=overlay, filetype="pdf") as stamp:
            try:
                page = doc.load_page(0)
                page.show_pdf_page(page.rect, stamp, 0, overlay=True)
                return doc.tobytes(**SAVE_OPTIONS)
            except (RuntimeError, ValueError) as exc:
                raise RenderError(RenderFailure.MALFORMED_TEMPLATE, f"cannot stamp page: {exc}") from exc


def render(page_bytes: bytes, layout: PageLayout, name: NameEntry) -> bytes:
    """Personalize one single-page PDF; disabled layouts return the page untouched."""
    if not layout.enabled:
        return page_bytes
    try:
        font_name = resolve_font(layout.font_family)
        missing = missing_glyphs(font_name, "".join(name.lines))
        if missing:
            listed = ", ".join(f"{ch!r} (U+{ord(ch):04X})" for ch in missing)
            raise RenderError(
                RenderFailure.UNSUPPORTED_GLYPH,
                f"{layout.font_family} cannot render {listed}",
            )
        width, height = page_size(page_bytes)
        overlay = _draw_overlay(name.lines, layout, font_name, width, height)
        return _stamp(page_bytes, overlay)
    except MemoryError as exc:
        raise RenderError(RenderFailure.OUT_OF_MEMORY, f"page {layout.page_number}") from exc


def split_template(template_bytes: bytes) -> List[bytes]:
    """Break a template into one standalone single-page PDF per page."""
    with _PDF_LOCK:
        try:
            source = fitz.open(stream=template_bytes, filetype="pdf")
        except (RuntimeError, ValueError, TypeError) as exc:
            raise TemplateError(f"Template is not a readable PDF: {exc}") from exc
        with source:
            if source.needs_pass:
                raise TemplateError("Template is encrypted")
            if source.page_count < 1:
                raise TemplateError("Template has no pages")
            pages: List[bytes] = []
            for index in range(source.page_count):
                with fitz.open() as single:
                    single.insert_pdf(source, from_page=index, to_page=index)
                    pages.append(single.tobytes(**SAVE_OPTIONS))
    return pages


def merge_pages(pages: Sequence[bytes]) -> bytes:
    with _PDF_LOCK:
        with fitz.open() as merged:
            for page_bytes in pages:
                with _open_pdf(page_bytes) as part:
                    merged.insert_pdf(part)
            return merged.tobytes(**SAVE_OPTIONS)
