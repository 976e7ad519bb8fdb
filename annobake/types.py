from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Iterable, Literal, Union
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    ValidatorFunctionWrapHandler,
    field_validator,
)


HEX_COLOR_RE = re.compile(r'^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$')


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_annotation_id() -> str:
    return str(uuid4())


class AnnotationType(str, Enum):
    highlight = 'highlight'
    underline = 'underline'
    comment = 'comment'
    signature = 'signature'


class ViewerMetadata(BaseModel):
    """Viewer zoom and rendered page size captured when the mark was placed."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    original_scale: float = Field(default=1.0, alias='originalScale')
    page_width: float = Field(alias='pageWidth', gt=0)
    page_height: float = Field(alias='pageHeight', gt=0)
    pdf_width: float | None = Field(default=None, alias='pdfWidth')
    pdf_height: float | None = Field(default=None, alias='pdfHeight')


class _AnnotationBase(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(default_factory=new_annotation_id)
    x: float
    y: float
    # Zero-based; out-of-range values are clamped when baking, not rejected here.
    page_number: int = Field(alias='pageNumber')
    metadata: ViewerMetadata | None = None
    created_at: datetime = Field(default_factory=utcnow, alias='createdAt')

    @field_validator('metadata', mode='wrap')
    @classmethod
    def _drop_unusable_metadata(cls, value: Any, handler: ValidatorFunctionWrapHandler) -> ViewerMetadata | None:
        # Unusable viewer metadata degrades to a scale factor of 1.
        try:
            return handler(value)
        except ValidationError:
            return None


class _ColoredAnnotation(_AnnotationBase):
    color: str | None = None

    @field_validator('color')
    @classmethod
    def _check_color(cls, value: str | None) -> str | None:
        if value is None:
            return None
        token = value.strip()
        if not HEX_COLOR_RE.fullmatch(token):
            raise ValueError(f'color must be #RRGGBB or #RGB, got {value!r}')
        return token


class HighlightAnnotation(_ColoredAnnotation):
    type: Literal['highlight'] = 'highlight'
    width: float | None = None
    height: float | None = None
    # Selected text; kept for reference only, never drawn.
    text: str | None = Field(default=None, alias='content')


class UnderlineAnnotation(_ColoredAnnotation):
    type: Literal['underline'] = 'underline'
    width: float | None = None
    height: float | None = None
    text: str | None = Field(default=None, alias='content')


class CommentAnnotation(_ColoredAnnotation):
    type: Literal['comment'] = 'comment'
    content: str = ''


class SignatureAnnotation(_AnnotationBase):
    type: Literal['signature'] = 'signature'
    # data:image/{png|jpeg};base64,... ; checked by the signature renderer only
    content: str | None = None


Annotation = Annotated[
    Union[HighlightAnnotation, UnderlineAnnotation, CommentAnnotation, SignatureAnnotation],
    Field(discriminator='type'),
]

_ANNOTATION_ADAPTER: TypeAdapter[Annotation] = TypeAdapter(Annotation)


def parse_annotation(raw: dict[str, Any]) -> Annotation:
    return _ANNOTATION_ADAPTER.validate_python(raw)


def parse_annotations(rows: Iterable[dict[str, Any]]) -> list[Annotation]:
    return [parse_annotation(row) for row in rows]


def annotation_to_payload(annotation: Annotation) -> dict[str, Any]:
    return annotation.model_dump(mode='json', by_alias=True, exclude_none=True)


def annotation_geometry(annotation: Annotation) -> tuple[float | None, float | None]:
    if isinstance(annotation, (HighlightAnnotation, UnderlineAnnotation)):
        return annotation.width, annotation.height
    return None, None


class WarningCode(str, Enum):
    invalid_record = 'invalid_record'
    missing_content = 'missing_content'
    invalid_signature = 'invalid_signature'
    unsupported_image = 'unsupported_image'
    render_failed = 'render_failed'
    page_out_of_range = 'page_out_of_range'


class BakeWarning(BaseModel):
    annotation_id: str | None
    page_index: int | None = None
    code: WarningCode
    reason: str


class BakeStatus(str, Enum):
    success = 'success'
    partial = 'partial'


class MarkRecord(BaseModel):
    annotation_id: str
    page_index: int
    kind: str
    x: float
    y: float
    width: float
    height: float
    opacity: float = 1.0
