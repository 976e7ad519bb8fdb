from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from reportlab.lib.utils import simpleSplit
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.cidfonts import UnicodeCIDFont
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen.canvas import Canvas

from annobake.bake.signature import SignatureImage
from annobake.bake.transform import PdfGeometry
from annobake.config import Settings, get_settings
from annobake.errors import UnsupportedTextError
from annobake.types import (
    Annotation,
    AnnotationType,
    CommentAnnotation,
    HighlightAnnotation,
    MarkRecord,
    SignatureAnnotation,
    UnderlineAnnotation,
)


logger = logging.getLogger(__name__)

COMMENT_BORDER_RGB = (0.8, 0.6, 0.0)
COMMENT_LABEL_FILL_RGB = (1.0, 1.0, 0.8)
COMMENT_LABEL_BORDER_RGB = (0.8, 0.8, 0.6)
COMMENT_TEXT_RGB = (0.0, 0.0, 0.0)
COMMENT_LABEL_PADDING = 2.0
COMMENT_LEADING_RATIO = 1.2


def parse_hex_color(value: str | None) -> tuple[float, float, float] | None:
    token = str(value or '').strip()
    if not re.fullmatch(r'#?(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})', token):
        return None
    token = token.lstrip('#')
    if len(token) == 3:
        token = ''.join(ch * 2 for ch in token)
    r = int(token[0:2], 16) / 255.0
    g = int(token[2:4], 16) / 255.0
    b = int(token[4:6], 16) / 255.0
    return (r, g, b)


@dataclass(frozen=True)
class RenderStyle:
    highlight_color: str = '#FFEB3B'
    highlight_opacity: float = 0.3
    underline_color: str = '#FF0000'
    underline_thickness: float = 2.0
    fallback_width: float = 100.0
    fallback_height: float = 20.0
    y_fallback_offset: float = 10.0
    comment_icon_size: float = 20.0
    comment_icon_color: str = '#FFCC00'
    comment_icon_opacity: float = 0.8
    comment_font_name: str = 'Helvetica'
    comment_unicode_font_path: Path | None = None
    comment_cjk_font_name: str = 'STSong-Light'
    comment_font_size: float = 10.0
    comment_margin: float = 10.0

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> 'RenderStyle':
        settings = settings or get_settings()
        return cls(
            highlight_color=settings.highlight_color,
            highlight_opacity=settings.highlight_opacity,
            underline_color=settings.underline_color,
            underline_thickness=settings.underline_thickness,
            fallback_width=settings.fallback_width,
            fallback_height=settings.fallback_height,
            y_fallback_offset=settings.y_fallback_offset,
            comment_icon_size=settings.comment_icon_size,
            comment_icon_color=settings.comment_icon_color,
            comment_icon_opacity=settings.comment_icon_opacity,
            comment_font_name=settings.comment_font_name,
            comment_unicode_font_path=settings.comment_unicode_font_path,
            comment_cjk_font_name=settings.comment_cjk_font_name,
            comment_font_size=settings.comment_font_size,
            comment_margin=settings.comment_margin,
        )


@dataclass
class PageContext:
    canvas: Canvas
    page_index: int
    page_width: float
    page_height: float
    style: RenderStyle


def _color_or_default(value: str | None, default: str) -> tuple[float, float, float]:
    return parse_hex_color(value) or parse_hex_color(default) or (0.0, 0.0, 0.0)


def render_highlight(
    ctx: PageContext,
    annotation: HighlightAnnotation,
    geometry: PdfGeometry,
) -> list[MarkRecord]:
    style = ctx.style
    width = geometry.width or style.fallback_width * geometry.scale_factor
    height = geometry.height or style.fallback_height * geometry.scale_factor

    canvas = ctx.canvas
    canvas.setFillColorRGB(*_color_or_default(annotation.color, style.highlight_color))
    canvas.setFillAlpha(style.highlight_opacity)
    canvas.rect(geometry.x, geometry.y, width, height, stroke=0, fill=1)

    return [
        MarkRecord(
            annotation_id=annotation.id,
            page_index=ctx.page_index,
            kind='highlight',
            x=geometry.x,
            y=geometry.y,
            width=width,
            height=height,
            opacity=style.highlight_opacity,
        )
    ]


def render_underline(
    ctx: PageContext,
    annotation: UnderlineAnnotation,
    geometry: PdfGeometry,
) -> list[MarkRecord]:
    style = ctx.style
    width = geometry.width or style.fallback_width * geometry.scale_factor

    canvas = ctx.canvas
    canvas.setStrokeColorRGB(*_color_or_default(annotation.color, style.underline_color))
    canvas.setLineWidth(style.underline_thickness)
    canvas.line(geometry.x, geometry.y, geometry.x + width, geometry.y)

    return [
        MarkRecord(
            annotation_id=annotation.id,
            page_index=ctx.page_index,
            kind='underline',
            x=geometry.x,
            y=geometry.y,
            width=width,
            height=style.underline_thickness,
        )
    ]


def _is_cjk(char: str) -> bool:
    code = ord(char)
    return (
        0x3000 <= code <= 0x303F  # CJK symbols and punctuation
        or 0x3400 <= code <= 0x4DBF  # CJK Extension A
        or 0x4E00 <= code <= 0x9FFF  # CJK Unified Ideographs
        or 0xF900 <= code <= 0xFAFF  # CJK Compatibility Ideographs
        or 0xFF00 <= code <= 0xFFEF  # Fullwidth forms
    )


def _register_ttf_font(font_name: str, font_path: Path) -> bool:
    if font_name in pdfmetrics.getRegisteredFontNames():
        return True
    try:
        pdfmetrics.registerFont(TTFont(font_name, str(font_path)))
        return True
    except Exception as exc:
        logger.warning('Failed to register PDF font %s from %s: %s', font_name, font_path, exc)
        return False


def _register_cid_font(font_name: str) -> bool:
    if font_name in pdfmetrics.getRegisteredFontNames():
        return True
    try:
        pdfmetrics.registerFont(UnicodeCIDFont(font_name))
        return True
    except Exception as exc:
        logger.warning('Failed to register CID font %s: %s', font_name, exc)
        return False


def _font_covers(font_name: str, text: str) -> bool:
    font = pdfmetrics.getFont(font_name)
    if isinstance(font, TTFont):
        glyphs = font.face.charToGlyph
        return all(ord(char) in glyphs for char in text if not char.isspace())
    if isinstance(font, UnicodeCIDFont):
        return all(ord(char) < 128 or _is_cjk(char) for char in text)
    # Standard Type 1 fonts are written with WinAnsiEncoding.
    try:
        text.encode('cp1252')
    except UnicodeEncodeError:
        return False
    return True


def resolve_comment_font(text: str, style: RenderStyle) -> str:
    """Pick the first font able to draw ``text``.

    Tries the configured comment font, then the optional TrueType font, then
    the CJK CID font when the text holds CJK characters. Raises
    ``UnsupportedTextError`` naming the characters none of them cover.
    """
    candidates = [style.comment_font_name]
    if style.comment_unicode_font_path is not None:
        font_path = Path(style.comment_unicode_font_path)
        ttf_name = f'annobake-{font_path.stem}'
        if _register_ttf_font(ttf_name, font_path):
            candidates.append(ttf_name)
    if any(_is_cjk(char) for char in text) and _register_cid_font(style.comment_cjk_font_name):
        candidates.append(style.comment_cjk_font_name)

    for font_name in candidates:
        if _font_covers(font_name, text):
            return font_name

    missing = ''.join(
        sorted({char for char in text if not any(_font_covers(name, char) for name in candidates)})
    )
    raise UnsupportedTextError(missing)


def _split_token_by_width(token: str, *, font_name: str, font_size: float, max_width: float) -> list[str]:
    chunks: list[str] = []
    current = ''
    for char in token:
        candidate = f'{current}{char}'
        if current and pdfmetrics.stringWidth(candidate, font_name, font_size) > max_width:
            chunks.append(current)
            current = char
            continue
        current = candidate
    if current:
        chunks.append(current)
    return chunks


def _comment_lines(text: str, *, font_name: str, font_size: float, max_width: float) -> list[str]:
    max_width = max(font_size, max_width)
    lines: list[str] = []
    for line in simpleSplit(text, font_name, font_size, max_width):
        if not line.strip():
            continue
        if pdfmetrics.stringWidth(line, font_name, font_size) <= max_width:
            lines.append(line)
            continue
        # simpleSplit leaves a word wider than the line intact
        lines.extend(
            _split_token_by_width(line.strip(), font_name=font_name, font_size=font_size, max_width=max_width)
        )
    return lines


def render_comment(
    ctx: PageContext,
    annotation: CommentAnnotation,
    geometry: PdfGeometry,
) -> list[MarkRecord]:
    style = ctx.style
    icon_size = style.comment_icon_size * geometry.scale_factor
    icon_x = geometry.x - icon_size / 2
    icon_y = geometry.anchor_y - icon_size / 2

    font_name = style.comment_font_name
    font_size = style.comment_font_size
    margin = style.comment_margin
    text = str(annotation.content or '').strip()
    lines: list[str] = []
    if text:
        font_name = resolve_comment_font(text, style)
        lines = _comment_lines(
            text,
            font_name=font_name,
            font_size=font_size,
            max_width=ctx.page_width - 2 * margin,
        )

    # Measure before drawing so a bad font leaves nothing half drawn.
    text_width = max((pdfmetrics.stringWidth(line, font_name, font_size) for line in lines), default=0.0)
    text_x = geometry.x + icon_size
    if text_x + text_width > ctx.page_width - margin:
        text_x = max(margin, ctx.page_width - text_width - margin)

    canvas = ctx.canvas
    canvas.setFillColorRGB(*_color_or_default(annotation.color, style.comment_icon_color))
    canvas.setStrokeColorRGB(*COMMENT_BORDER_RGB)
    canvas.setLineWidth(1)
    canvas.setFillAlpha(style.comment_icon_opacity)
    canvas.setStrokeAlpha(style.comment_icon_opacity)
    canvas.rect(icon_x, icon_y, icon_size, icon_size, stroke=1, fill=1)
    canvas.setFillAlpha(1)
    canvas.setStrokeAlpha(1)

    marks = [
        MarkRecord(
            annotation_id=annotation.id,
            page_index=ctx.page_index,
            kind='comment_icon',
            x=icon_x,
            y=icon_y,
            width=icon_size,
            height=icon_size,
            opacity=style.comment_icon_opacity,
        )
    ]
    if not lines:
        return marks

    leading = font_size * COMMENT_LEADING_RATIO
    first_baseline = geometry.anchor_y - font_size
    last_baseline = first_baseline - leading * (len(lines) - 1)

    box_x = text_x - COMMENT_LABEL_PADDING
    box_y = last_baseline - COMMENT_LABEL_PADDING
    box_width = text_width + 2 * COMMENT_LABEL_PADDING
    box_height = (geometry.anchor_y + COMMENT_LABEL_PADDING) - box_y

    canvas.setFillColorRGB(*COMMENT_LABEL_FILL_RGB)
    canvas.setStrokeColorRGB(*COMMENT_LABEL_BORDER_RGB)
    canvas.rect(box_x, box_y, box_width, box_height, stroke=1, fill=1)

    canvas.setFillColorRGB(*COMMENT_TEXT_RGB)
    canvas.setFont(font_name, font_size)
    for index, line in enumerate(lines):
        canvas.drawString(text_x, first_baseline - leading * index, line)

    marks.append(
        MarkRecord(
            annotation_id=annotation.id,
            page_index=ctx.page_index,
            kind='comment_label',
            x=box_x,
            y=box_y,
            width=box_width,
            height=box_height,
        )
    )
    return marks


def render_signature(
    ctx: PageContext,
    annotation: SignatureAnnotation,
    geometry: PdfGeometry,
    image: SignatureImage,
) -> list[MarkRecord]:
    width = image.width * geometry.scale_factor
    height = image.height * geometry.scale_factor
    bottom = geometry.y - height

    ctx.canvas.drawImage(
        image.reader,
        geometry.x,
        bottom,
        width=width,
        height=height,
        mask='auto',
    )

    return [
        MarkRecord(
            annotation_id=annotation.id,
            page_index=ctx.page_index,
            kind=f'signature_{image.subtype}',
            x=geometry.x,
            y=bottom,
            width=width,
            height=height,
        )
    ]


# Signatures are dispatched separately: their image must be awaited first.
RENDERERS: dict[AnnotationType, Callable[[PageContext, Annotation, PdfGeometry], list[MarkRecord]]] = {
    AnnotationType.highlight: render_highlight,
    AnnotationType.underline: render_underline,
    AnnotationType.comment: render_comment,
}
