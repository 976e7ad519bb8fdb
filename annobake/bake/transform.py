"""Viewer-space to PDF-space coordinate mapping.

Viewer coordinates are rendered pixels with a top-left origin and Y growing
downward. PDF coordinates are points with a bottom-left origin. The scale
between the two is recovered from the page size the viewer recorded when the
mark was placed; the smaller of the two axis ratios is used so a mark never
overflows the more constrained axis.
"""

from __future__ import annotations

from dataclasses import dataclass

from annobake.types import ViewerMetadata


DEFAULT_Y_FALLBACK = 10.0


@dataclass(frozen=True)
class PdfGeometry:
    x: float
    y: float
    width: float | None
    height: float | None
    scale_factor: float
    # PDF-space Y of the viewer anchor itself, before the height offset.
    anchor_y: float


def compute_scale_factor(
    metadata: ViewerMetadata | None,
    page_width: float,
    page_height: float,
) -> float:
    if metadata is None:
        return 1.0
    x_scale = float(page_width) / float(metadata.page_width)
    y_scale = float(page_height) / float(metadata.page_height)
    return min(x_scale, y_scale)


def to_pdf_space(
    *,
    x: float,
    y: float,
    width: float | None = None,
    height: float | None = None,
    metadata: ViewerMetadata | None,
    page_width: float,
    page_height: float,
    y_fallback: float = DEFAULT_Y_FALLBACK,
) -> PdfGeometry:
    scale = compute_scale_factor(metadata, page_width, page_height)

    scaled_width = float(width) * scale if width else None
    scaled_height = float(height) * scale if height else None

    anchor_y = float(page_height) - float(y) * scale
    offset = scaled_height if scaled_height is not None else float(y_fallback)

    return PdfGeometry(
        x=float(x) * scale,
        y=anchor_y - offset,
        width=scaled_width,
        height=scaled_height,
        scale_factor=scale,
        anchor_y=anchor_y,
    )
