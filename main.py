from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from annobake.bake.export import bake_pdf_file, export_filename
from annobake.bake.orchestrator import BakeResult
from annobake.config import get_settings
from annobake.errors import AnnobakeError, DocumentLoadError
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
from annobake.types import annotation_to_payload


def _print_json(payload: dict) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _error(message: str) -> int:
    _print_json({'status': 'error', 'message': message})
    return 2


def _configure_logging() -> None:
    level = getattr(logging, str(get_settings().log_level).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
        stream=sys.stderr,
    )


def _check_pdf_path(pdf_path: Path) -> str | None:
    settings = get_settings()
    if not pdf_path.exists() or not pdf_path.is_file():
        return f'PDF not found: {pdf_path}'
    file_size = int(pdf_path.stat().st_size)
    if file_size <= 0:
        return f'PDF is empty: {pdf_path}'
    if file_size > int(settings.max_pdf_bytes):
        return f'PDF too large: {file_size} bytes, max allowed {int(settings.max_pdf_bytes)} bytes'
    return None


def _read_annotation_rows(path: Path) -> list[dict[str, Any]]:
    payload = json.loads(path.read_text(encoding='utf-8'))
    if isinstance(payload, dict):
        payload = payload.get('annotations', [])
    if not isinstance(payload, list):
        raise ValueError('annotations file must hold a list or an object with an "annotations" list')
    return [row for row in payload if isinstance(row, dict)]


def _bake_response(output_path: Path, result: BakeResult) -> dict:
    return {
        'status': result.status.value,
        'output_path': str(output_path),
        'page_count': result.page_count,
        'mark_count': len(result.marks),
        'warnings': [item.model_dump(mode='json') for item in result.warnings],
    }


def _session_snapshot(session: AnnotationSession) -> dict:
    return {
        'session_id': str(session.id),
        'document_name': session.document_name,
        'document_fingerprint': session.document_fingerprint,
        'annotation_count': len(session.annotations),
        'annotations': [annotation_to_payload(item) for item in session.annotations],
        'created_at': session.created_at.isoformat(),
        'updated_at': session.updated_at.isoformat(),
    }


def _run_bake(pdf_path: Path, rows: list, output: str | None) -> int:
    output_path = Path(output).expanduser().resolve() if output else None
    try:
        written, result = bake_pdf_file(pdf_path, rows, output_path=output_path)
    except DocumentLoadError as exc:
        return _error(str(exc))
    _print_json(_bake_response(written, result))
    return 0


def cmd_bake(args: argparse.Namespace) -> int:
    pdf_path = Path(args.pdf).expanduser().resolve()
    problem = _check_pdf_path(pdf_path)
    if problem:
        return _error(problem)

    annotations_path = Path(args.annotations).expanduser().resolve()
    if not annotations_path.exists():
        return _error(f'Annotations file not found: {annotations_path}')
    try:
        rows = _read_annotation_rows(annotations_path)
    except (ValueError, json.JSONDecodeError) as exc:
        return _error(f'Invalid annotations file: {exc}')

    return _run_bake(pdf_path, rows, args.output)


def _require_session(session_id: str) -> AnnotationSession | None:
    session = load_session(session_id)
    if session is None:
        _error(f'Session not found: {session_id}')
    return session


def cmd_session_new(args: argparse.Namespace) -> int:
    pdf_path = Path(args.pdf).expanduser().resolve()
    problem = _check_pdf_path(pdf_path)
    if problem:
        return _error(problem)

    session = AnnotationSession.for_document(args.name or pdf_path.name, pdf_path.read_bytes())
    save_session(session)
    record_event(session, 'created', document_name=session.document_name)
    _print_json(_session_snapshot(session))
    return 0


def cmd_session_list(args: argparse.Namespace) -> int:
    _print_json(
        {
            'sessions': [
                {
                    'session_id': str(item.id),
                    'document_name': item.document_name,
                    'annotation_count': len(item.annotations),
                    'updated_at': item.updated_at.isoformat(),
                }
                for item in list_sessions()
            ]
        }
    )
    return 0


def cmd_session_show(args: argparse.Namespace) -> int:
    session = _require_session(args.session_id)
    if session is None:
        return 2
    _print_json(_session_snapshot(session))
    return 0


def cmd_session_add(args: argparse.Namespace) -> int:
    session = _require_session(args.session_id)
    if session is None:
        return 2
    try:
        raw = json.loads(args.json)
        if not isinstance(raw, dict):
            return _error('annotation must be a JSON object')
        annotation = session.add(raw)
    except (json.JSONDecodeError, ValidationError, AnnobakeError) as exc:
        return _error(f'Invalid annotation: {exc}')

    save_session(session)
    record_event(session, 'annotation_added', annotation_id=annotation.id, type=annotation.type)
    _print_json(annotation_to_payload(annotation))
    return 0


def cmd_session_comment(args: argparse.Namespace) -> int:
    session = _require_session(args.session_id)
    if session is None:
        return 2
    comment = session.upsert_comment(
        page_number=args.page,
        x=args.x,
        y=args.y,
        content=args.text,
    )
    save_session(session)
    record_event(session, 'comment_saved', annotation_id=comment.id)
    _print_json(annotation_to_payload(comment))
    return 0


def cmd_session_undo(args: argparse.Namespace) -> int:
    session = _require_session(args.session_id)
    if session is None:
        return 2
    removed = session.undo()
    save_session(session)
    record_event(session, 'undo', annotation_id=removed.id if removed else None)
    _print_json(
        {
            'removed': annotation_to_payload(removed) if removed else None,
            'annotation_count': len(session.annotations),
        }
    )
    return 0


def cmd_session_clear(args: argparse.Namespace) -> int:
    session = _require_session(args.session_id)
    if session is None:
        return 2
    removed = session.clear()
    save_session(session)
    record_event(session, 'cleared', removed=removed)
    _print_json({'removed_count': removed, 'annotation_count': 0})
    return 0


def cmd_session_export(args: argparse.Namespace) -> int:
    session = _require_session(args.session_id)
    if session is None:
        return 2

    pdf_path = Path(args.pdf).expanduser().resolve()
    problem = _check_pdf_path(pdf_path)
    if problem:
        return _error(problem)
    if session.document_fingerprint and fingerprint_document(pdf_path.read_bytes()) != session.document_fingerprint:
        return _error(f'PDF does not match the document of session {session.id}')

    output = args.output
    if output is None:
        output = str(pdf_path.with_name(export_filename(session.document_name)))
    code = _run_bake(pdf_path, list(session.annotations), output)
    if code == 0:
        record_event(session, 'exported', output_path=output)
    return code


def cmd_session_events(args: argparse.Namespace) -> int:
    session = _require_session(args.session_id)
    if session is None:
        return 2
    _print_json({'session_id': str(session.id), 'events': read_events(session.id)})
    return 0


def cmd_session_delete(args: argparse.Namespace) -> int:
    try:
        deleted = delete_session(args.session_id)
    except ValueError as exc:
        return _error(str(exc))
    if not deleted:
        return _error(f'Session not found: {args.session_id}')
    _print_json({'deleted': args.session_id})
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Bake highlights, comments and signatures into PDF files')
    sub = parser.add_subparsers(dest='command', required=True)

    bake = sub.add_parser('bake', help='Bake an annotations JSON file into a PDF')
    bake.add_argument('--pdf', required=True, help='Path to source PDF')
    bake.add_argument('--annotations', required=True, help='Path to annotations JSON')
    bake.add_argument('--output', required=False, help='Output path (default: annotated-<name> next to source)')
    bake.set_defaults(func=cmd_bake)

    session = sub.add_parser('session', help='Manage persisted annotation sessions')
    session_sub = session.add_subparsers(dest='session_command', required=True)

    new = session_sub.add_parser('new', help='Start a session for a PDF')
    new.add_argument('--pdf', required=True, help='Path to PDF file')
    new.add_argument('--name', required=False, help='Document name override')
    new.set_defaults(func=cmd_session_new)

    list_cmd = session_sub.add_parser('list', help='List stored sessions')
    list_cmd.set_defaults(func=cmd_session_list)

    show = session_sub.add_parser('show', help='Show a session')
    show.add_argument('--session-id', required=True)
    show.set_defaults(func=cmd_session_show)

    add = session_sub.add_parser('add', help='Append an annotation record')
    add.add_argument('--session-id', required=True)
    add.add_argument('--json', required=True, help='Annotation record as a JSON object')
    add.set_defaults(func=cmd_session_add)

    comment = session_sub.add_parser('comment', help='Add or edit the comment near a point')
    comment.add_argument('--session-id', required=True)
    comment.add_argument('--page', type=int, required=True, help='Zero-based page number')
    comment.add_argument('--x', type=float, required=True)
    comment.add_argument('--y', type=float, required=True)
    comment.add_argument('--text', required=True)
    comment.set_defaults(func=cmd_session_comment)

    undo = session_sub.add_parser('undo', help='Remove the most recent annotation')
    undo.add_argument('--session-id', required=True)
    undo.set_defaults(func=cmd_session_undo)

    clear = session_sub.add_parser('clear', help='Remove every annotation')
    clear.add_argument('--session-id', required=True)
    clear.set_defaults(func=cmd_session_clear)

    export = session_sub.add_parser('export', help='Bake the session into its PDF')
    export.add_argument('--session-id', required=True)
    export.add_argument('--pdf', required=True, help='Path to the session PDF')
    export.add_argument('--output', required=False)
    export.set_defaults(func=cmd_session_export)

    events = session_sub.add_parser('events', help='Show the event journal of a session')
    events.add_argument('--session-id', required=True)
    events.set_defaults(func=cmd_session_events)

    delete = session_sub.add_parser('delete', help='Delete a stored session')
    delete.add_argument('--session-id', required=True)
    delete.set_defaults(func=cmd_session_delete)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging()
    return int(args.func(args))


if __name__ == '__main__':
    raise SystemExit(main())
