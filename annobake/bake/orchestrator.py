from __future__ import annotations

import asyncio
import io
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from pydantic import ValidationError
from pypdf import PasswordType, PdfReader, PdfWriter, Transformation
from reportlab.pdfgen.canvas import Canvas

from annobake.bake.pages import group_by_page
from annobake.bake.renderers import RENDERERS, PageContext, RenderStyle, render_signature
from annobake.bake.signature import load_signature_image
from annobake.bake.transform import to_pdf_space
from annobake.errors import DocumentLoadError, InvalidSignatureError, UnsupportedImageError
from annobake.types import (
    Annotation,
    AnnotationType,
    BakeStatus,
    BakeWarning,
    MarkRecord,
    SignatureAnnotation,
    WarningCode,
    annotation_geometry,
    parse_annotation,
)


logger = logging.getLogger(__name__)


@dataclass
class BakeResult:
    document: PdfWriter
    page_count: int
    warnings: list[BakeWarning] = field(default_factory=list)
    marks: list[MarkRecord] = field(default_factory=list)

    @property
    def status(self) -> BakeStatus:
        return BakeStatus.partial if self.warnings else BakeStatus.success

    @property
    def skipped_ids(self) -> list[str]:
        return [item.annotation_id for item in self.warnings if item.annotation_id]


def _load_reader(source_pdf: bytes) -> PdfReader:
    if not source_pdf:
        raise DocumentLoadError('source bytes are empty')
    try:
        reader = PdfReader(io.BytesIO(source_pdf))
    except Exception as exc:
        raise DocumentLoadError(str(exc) or exc.__class__.__name__) from exc

    if reader.is_encrypted:
        try:
            decrypted = reader.decrypt('')
        except Exception as exc:
            raise DocumentLoadError(f'encrypted document: {exc}') from exc
        if decrypted == PasswordType.NOT_DECRYPTED:
            raise DocumentLoadError('encrypted document requires a password')

    try:
        len(reader.pages)
    except Exception as exc:
        raise DocumentLoadError(f'page tree is unreadable: {exc}') from exc
    return reader


def _coerce_annotations(
    raw_items: Iterable[Annotation | dict[str, Any]],
    warnings: list[BakeWarning],
) -> list[Annotation]:
    coerced: list[Annotation] = []
    for raw in raw_items:
        if isinstance(raw, dict):
            try:
                coerced.append(parse_annotation(raw))
            except ValidationError as exc:
                annotation_id = str(raw.get('id') or '') or None
                reason = f'invalid annotation record: {exc.error_count()} validation error(s)'
                logger.warning('Skipping annotation %s: %s', annotation_id, reason)
                warnings.append(
                    BakeWarning(annotation_id=annotation_id, code=WarningCode.invalid_record, reason=reason)
                )
            continue
        coerced.append(raw)
    return coerced


def _new_overlay(width: float, height: float) -> tuple[io.BytesIO, Canvas]:
    buffer = io.BytesIO()
    canvas = Canvas(buffer, pagesize=(width, height))
    return buffer, canvas


async def _render_annotation(ctx: PageContext, annotation: Annotation) -> list[MarkRecord]:
    width, height = annotation_geometry(annotation)
    geometry = to_pdf_space(
        x=annotation.x,
        y=annotation.y,
        width=width,
        height=height,
        metadata=annotation.metadata,
        page_width=ctx.page_width,
        page_height=ctx.page_height,
        y_fallback=ctx.style.y_fallback_offset,
    )

    image = None
    if isinstance(annotation, SignatureAnnotation):
        image = await load_signature_image(annotation.content or '')

    ctx.canvas.saveState()
    try:
        if image is not None:
            return render_signature(ctx, annotation, geometry, image)
        renderer = RENDERERS[AnnotationType(annotation.type)]
        return renderer(ctx, annotation, geometry)
    finally:
        ctx.canvas.restoreState()


async def bake_annotations(
    source_pdf: bytes,
    annotations: Iterable[Annotation | dict[str, Any]],
    *,
    style: RenderStyle | None = None,
) -> BakeResult:
    """Draw every annotation onto a freshly loaded copy of ``source_pdf``.

    Raises ``DocumentLoadError`` when the bytes are not a usable PDF. Any
    problem with a single annotation is recorded as a ``BakeWarning`` and the
    remaining annotations are still drawn.
    """
    style = style or RenderStyle.from_settings()
    reader = await asyncio.to_thread(_load_reader, source_pdf)
    writer = PdfWriter(clone_from=reader)
    page_count = len(writer.pages)

    result = BakeResult(document=writer, page_count=page_count)
    items = _coerce_annotations(annotations, result.warnings)
    grouped = group_by_page(items, page_count, warnings=result.warnings)

    for page_index, page_items in grouped.items():
        page = writer.pages[page_index]
        box = page.mediabox
        page_width = float(box.width)
        page_height = float(box.height)

        buffer, canvas = _new_overlay(page_width, page_height)
        ctx = PageContext(
            canvas=canvas,
            page_index=page_index,
            page_width=page_width,
            page_height=page_height,
            style=style,
        )

        page_marks: list[MarkRecord] = []
        for annotation in page_items:
            if isinstance(annotation, SignatureAnnotation) and not str(annotation.content or '').strip():
                _record_warning(
                    result,
                    annotation,
                    page_index,
                    WarningCode.missing_content,
                    'signature has no image content',
                )
                continue
            try:
                page_marks.extend(await _render_annotation(ctx, annotation))
            except InvalidSignatureError as exc:
                _record_warning(result, annotation, page_index, WarningCode.invalid_signature, str(exc))
            except UnsupportedImageError as exc:
                _record_warning(result, annotation, page_index, WarningCode.unsupported_image, str(exc))
            except Exception as exc:
                _record_warning(
                    result,
                    annotation,
                    page_index,
                    WarningCode.render_failed,
                    f'{exc.__class__.__name__}: {exc}',
                )

        if not page_marks:
            continue

        canvas.showPage()
        canvas.save()
        overlay = PdfReader(io.BytesIO(buffer.getvalue())).pages[0]
        page.merge_transformed_page(
            overlay,
            Transformation().translate(float(box.left), float(box.bottom)),
        )
        result.marks.extend(page_marks)

    logger.info(
        'Baked %s mark(s) across %s page(s); %s annotation(s) skipped',
        len(result.marks),
        len({mark.page_index for mark in result.marks}),
        len(result.warnings),
    )
    return result


def _record_warning(
    result: BakeResult,
    annotation: Annotation,
    page_index: int,
    code: WarningCode,
    reason: str,
) -> None:
    logger.warning('Skipping %s annotation %s on page %s: %s', annotation.type, annotation.id, page_index, reason)
    result.warnings.append(
        BakeWarning(
            annotation_id=annotation.id,
            page_index=page_index,
            code=code,
            reason=reason,
        )
    )
