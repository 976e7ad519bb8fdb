"""Annotation session: undo order, comment editing and persistence."""

import json

import pytest
from pydantic import ValidationError

from annobake.errors import AnnotationNotFoundError, DuplicateAnnotationError
from annobake.session import (
    AnnotationSession,
    delete_session,
    fingerprint_document,
    list_sessions,
    load_session,
    record_event,
    save_session,
)
from annobake.storage import read_events
from annobake.types import CommentAnnotation, HighlightAnnotation, SignatureAnnotation, parse_annotation


def _session() -> AnnotationSession:
    return AnnotationSession(document_name='doc.pdf')


def test_undo_removes_in_reverse_append_order():
    session = _session()
    added = [
        session.add(HighlightAnnotation(x=i, y=i, width=10, height=5, pageNumber=0)) for i in range(5)
    ]

    removed = [session.undo() for _ in range(5)]

    assert [item.id for item in removed] == [item.id for item in reversed(added)]
    assert session.annotations == []
    assert session.undo() is None


def test_ids_are_unique_within_a_session():
    session = _session()
    session.add({'id': 'same', 'type': 'comment', 'x': 1, 'y': 1, 'pageNumber': 0, 'content': 'a'})

    with pytest.raises(DuplicateAnnotationError):
        session.add({'id': 'same', 'type': 'comment', 'x': 50, 'y': 50, 'pageNumber': 0, 'content': 'b'})


def test_generated_ids_are_never_reused():
    ids = {HighlightAnnotation(x=0, y=0, pageNumber=0).id for _ in range(50)}
    assert len(ids) == 50


def test_clear_empties_the_collection():
    session = _session()
    session.add(CommentAnnotation(x=1, y=1, pageNumber=0, content='x'))
    session.add(CommentAnnotation(x=90, y=1, pageNumber=0, content='y'))

    assert session.clear() == 2
    assert session.annotations == []


def test_upsert_comment_edits_nearby_comment_on_same_page():
    session = _session()
    original = session.upsert_comment(page_number=1, x=100, y=200, content='first')

    edited = session.upsert_comment(page_number=1, x=105, y=195, content='second')

    assert edited.id == original.id
    assert (edited.x, edited.y) == (100, 200)
    assert [item.content for item in session.annotations] == ['second']


def test_upsert_comment_creates_new_when_far_or_other_page():
    session = _session()
    session.upsert_comment(page_number=1, x=100, y=200, content='first')

    session.upsert_comment(page_number=1, x=110, y=200, content='far')
    session.upsert_comment(page_number=2, x=100, y=200, content='other page')

    assert [item.content for item in session.annotations] == ['first', 'far', 'other page']


def test_update_annotation_replaces_frozen_record():
    session = _session()
    highlight = session.add(HighlightAnnotation(x=1, y=1, width=5, height=5, pageNumber=0, content='word'))

    updated = session.update_annotation(highlight.id, color='#00FF00')

    assert updated.color == '#00FF00'
    assert updated.text == 'word'
    assert updated.created_at == highlight.created_at
    assert session.get(highlight.id) is updated
    with pytest.raises(ValidationError):
        highlight.color = '#000000'


def test_update_annotation_errors():
    session = _session()
    signature = session.add(SignatureAnnotation(x=1, y=1, pageNumber=0, content='data:image/png;base64,AA=='))

    with pytest.raises(AnnotationNotFoundError):
        session.update_annotation('missing', content='x')
    with pytest.raises(ValueError):
        session.update_annotation(signature.id, color='#FF0000')


def test_none_tool_is_not_a_storable_annotation():
    with pytest.raises(ValidationError):
        parse_annotation({'type': 'none', 'x': 1, 'y': 1, 'pageNumber': 0})


def test_bad_color_is_rejected():
    with pytest.raises(ValidationError):
        HighlightAnnotation(x=1, y=1, pageNumber=0, color='yellow')


def test_payload_round_trip_keeps_metadata_block():
    session = AnnotationSession.for_document('doc.pdf', b'%PDF-1.4 fake')
    session.add(
        {
            'type': 'highlight',
            'x': 50,
            'y': 100,
            'width': 120,
            'height': 18,
            'pageNumber': 0,
            'metadata': {'originalScale': 1.5, 'pageWidth': 918, 'pageHeight': 1188, 'pdfWidth': 612},
        }
    )

    payload = json.loads(json.dumps(session.to_payload()))
    restored = AnnotationSession.from_payload(payload)

    row = payload['annotations'][0]
    assert row['pageNumber'] == 0
    assert row['metadata'] == {'originalScale': 1.5, 'pageWidth': 918, 'pageHeight': 1188, 'pdfWidth': 612}
    assert restored.annotations == session.annotations
    assert restored.document_fingerprint == fingerprint_document(b'%PDF-1.4 fake')


def test_save_load_list_delete(isolated_settings):
    session = _session()
    session.add(CommentAnnotation(x=1, y=2, pageNumber=0, content='persist me'))
    save_session(session)
    record_event(session, 'created')

    loaded = load_session(str(session.id))

    assert loaded is not None
    assert loaded.annotations == session.annotations
    assert [item.id for item in list_sessions()] == [session.id]
    assert [row['event'] for row in read_events(session.id)] == ['created']
    assert (isolated_settings.data_dir / 'sessions' / str(session.id) / 'session.json').exists()

    assert delete_session(session.id) is True
    assert load_session(session.id) is None
    assert load_session('not-a-uuid') is None
