from __future__ import annotations

import asyncio
import io
from pathlib import Path
from typing import Any, Iterable

from pypdf import PdfWriter

from annobake.bake.orchestrator import BakeResult, bake_annotations
from annobake.bake.renderers import RenderStyle
from annobake.config import get_settings
from annobake.types import Annotation, BakeWarning


DEFAULT_DOCUMENT_NAME = 'document.pdf'


def serialize_document(writer: PdfWriter) -> bytes:
    output = io.BytesIO()
    writer.write(output)
    return output.getvalue()


def export_filename(original_name: str | None, *, prefix: str | None = None) -> str:
    if prefix is None:
        prefix = get_settings().export_prefix
    name = Path(str(original_name or '').strip()).name or DEFAULT_DOCUMENT_NAME
    return f'{prefix}{name}'


async def bake_pdf_bytes(
    source_pdf: bytes,
    annotations: Iterable[Annotation | dict[str, Any]],
    *,
    style: RenderStyle | None = None,
) -> tuple[bytes, list[BakeWarning]]:
    result = await bake_annotations(source_pdf, annotations, style=style)
    data = await asyncio.to_thread(serialize_document, result.document)
    return data, result.warnings


def bake_pdf_file(
    source_path: Path,
    annotations: Iterable[Annotation | dict[str, Any]],
    *,
    output_path: Path | None = None,
    style: RenderStyle | None = None,
) -> tuple[Path, BakeResult]:
    source_path = Path(source_path)
    if output_path is None:
        output_path = source_path.with_name(export_filename(source_path.name))

    result = asyncio.run(bake_annotations(source_path.read_bytes(), annotations, style=style))

    output_path.parent.mkdir(parents=True, exist_ok=True)
    tmp = output_path.with_suffix(output_path.suffix + '.tmp')
    tmp.write_bytes(serialize_document(result.document))
    tmp.replace(output_path)
    return output_path, result
