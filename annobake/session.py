"""Caller-owned annotation session.

The session replaces ambient browser state: it holds the annotation list for
one document, in append order, which is also the undo order. Persisting it is
optional and goes through ``save_session`` / ``load_session``.
"""

from __future__ import annotations

import hashlib
import threading
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from .config import get_settings
from .errors import AnnotationNotFoundError, DuplicateAnnotationError
from .storage import (
    append_event,
    list_session_ids,
    read_json,
    remove_session_dir,
    session_path,
    write_json_atomic,
)
from .types import (
    Annotation,
    CommentAnnotation,
    SignatureAnnotation,
    ViewerMetadata,
    annotation_to_payload,
    parse_annotation,
    utcnow,
)


_STATE_LOCK = threading.RLock()
_UNSET: Any = object()


def fingerprint_document(pdf_bytes: bytes) -> str:
    return hashlib.sha256(pdf_bytes).hexdigest()


class AnnotationSession(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    document_name: str
    document_fingerprint: str | None = None
    selected_color: str = '#FFEB3B'
    annotations: list[Annotation] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def for_document(cls, document_name: str, pdf_bytes: bytes | None = None) -> 'AnnotationSession':
        return cls(
            document_name=document_name,
            document_fingerprint=fingerprint_document(pdf_bytes) if pdf_bytes is not None else None,
        )

    def _touch(self) -> None:
        self.updated_at = utcnow()

    def _index_of(self, annotation_id: str) -> int:
        for index, item in enumerate(self.annotations):
            if item.id == annotation_id:
                return index
        raise AnnotationNotFoundError(annotation_id)

    def get(self, annotation_id: str) -> Annotation:
        return self.annotations[self._index_of(annotation_id)]

    def add(self, annotation: Annotation | dict[str, Any]) -> Annotation:
        if isinstance(annotation, dict):
            annotation = parse_annotation(annotation)
        if any(item.id == annotation.id for item in self.annotations):
            raise DuplicateAnnotationError(annotation.id)
        self.annotations.append(annotation)
        self._touch()
        return annotation

    def undo(self) -> Annotation | None:
        if not self.annotations:
            return None
        removed = self.annotations.pop()
        self._touch()
        return removed

    def clear(self) -> int:
        count = len(self.annotations)
        self.annotations = []
        self._touch()
        return count

    def find_comment_near(
        self,
        page_number: int,
        x: float,
        y: float,
        *,
        tolerance: float | None = None,
    ) -> CommentAnnotation | None:
        if tolerance is None:
            tolerance = get_settings().comment_match_tolerance
        for item in self.annotations:
            if not isinstance(item, CommentAnnotation) or item.page_number != page_number:
                continue
            if abs(item.x - x) < tolerance and abs(item.y - y) < tolerance:
                return item
        return None

    def upsert_comment(
        self,
        *,
        page_number: int,
        x: float,
        y: float,
        content: str,
        metadata: ViewerMetadata | None = None,
        tolerance: float | None = None,
    ) -> CommentAnnotation:
        """Edit the comment placed near ``(x, y)`` on the page, or add a new one."""
        existing = self.find_comment_near(page_number, x, y, tolerance=tolerance)
        if existing is not None:
            return self.update_annotation(existing.id, content=content)  # type: ignore[return-value]

        comment = CommentAnnotation(
            x=x,
            y=y,
            page_number=page_number,
            content=content,
            metadata=metadata,
        )
        self.add(comment)
        return comment

    def update_annotation(
        self,
        annotation_id: str,
        *,
        color: str | None = _UNSET,
        content: str | None = _UNSET,
    ) -> Annotation:
        index = self._index_of(annotation_id)
        current = self.annotations[index]

        payload = annotation_to_payload(current)
        if color is not _UNSET:
            if isinstance(current, SignatureAnnotation):
                raise ValueError('signature annotations have no color')
            payload['color'] = color
        if content is not _UNSET:
            payload['content'] = content

        updated = parse_annotation(payload)
        self.annotations[index] = updated
        self._touch()
        return updated

    def to_payload(self) -> dict[str, Any]:
        return {
            'id': str(self.id),
            'document_name': self.document_name,
            'document_fingerprint': self.document_fingerprint,
            'selected_color': self.selected_color,
            'annotations': [annotation_to_payload(item) for item in self.annotations],
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> 'AnnotationSession':
        return cls.model_validate(payload)


def save_session(session: AnnotationSession) -> AnnotationSession:
    with _STATE_LOCK:
        write_json_atomic(session_path(session.id), session.to_payload())
    return session


def load_session(session_id: UUID | str) -> AnnotationSession | None:
    try:
        path = session_path(session_id)
    except ValueError:
        return None
    if not path.exists():
        return None
    with _STATE_LOCK:
        payload = read_json(path)
    return AnnotationSession.from_payload(payload)


def list_sessions() -> list[AnnotationSession]:
    sessions: list[AnnotationSession] = []
    for session_id in list_session_ids():
        loaded = load_session(session_id)
        if loaded is not None:
            sessions.append(loaded)
    return sessions


def delete_session(session_id: UUID | str) -> bool:
    with _STATE_LOCK:
        return remove_session_dir(session_id)


def record_event(session: AnnotationSession, event: str, **extra: Any) -> None:
    append_event(session.id, event, **extra)
