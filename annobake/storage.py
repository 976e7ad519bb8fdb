from __future__ import annotations

import json
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from uuid import UUID

from .config import get_settings


def sessions_root() -> Path:
    root = get_settings().data_dir / 'sessions'
    root.mkdir(parents=True, exist_ok=True)
    return root


def _safe_session_id(session_id: UUID | str) -> str:
    if isinstance(session_id, UUID):
        return str(session_id)
    token = str(session_id or '').strip()
    if not token:
        raise ValueError('session_id is required')
    try:
        return str(UUID(token))
    except Exception as exc:
        raise ValueError(f'invalid session_id: {session_id}') from exc


def session_dir(session_id: UUID | str, *, create: bool = True) -> Path:
    path = sessions_root() / _safe_session_id(session_id)
    if create:
        path.mkdir(parents=True, exist_ok=True)
    return path


def session_path(session_id: UUID | str) -> Path:
    return session_dir(session_id, create=False) / 'session.json'


def events_path(session_id: UUID | str) -> Path:
    return session_dir(session_id) / 'events.jsonl'


def list_session_ids() -> list[str]:
    ids: list[str] = []
    for child in sorted(sessions_root().iterdir()):
        if not child.is_dir() or not (child / 'session.json').exists():
            continue
        try:
            ids.append(_safe_session_id(child.name))
        except ValueError:
            continue
    return ids


def remove_session_dir(session_id: UUID | str) -> bool:
    path = session_dir(session_id, create=False)
    if not path.exists():
        return False
    shutil.rmtree(path)
    return True


def write_json_atomic(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + '.tmp')
    tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding='utf-8')
    tmp.replace(path)


def read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding='utf-8'))


def append_event(session_id: UUID | str, event: str, **extra: Any) -> None:
    now = datetime.now(timezone.utc).isoformat()
    row = {
        'ts': now,
        'event': event,
        **extra,
    }
    events_file = events_path(session_id)
    events_file.parent.mkdir(parents=True, exist_ok=True)
    with events_file.open('a', encoding='utf-8') as f:
        f.write(json.dumps(row, ensure_ascii=False) + '\n')


def read_events(session_id: UUID | str) -> list[dict[str, Any]]:
    path = session_dir(session_id, create=False) / 'events.jsonl'
    if not path.exists():
        return []
    rows: list[dict[str, Any]] = []
    for line in path.read_text(encoding='utf-8').splitlines():
        if line.strip():
            rows.append(json.loads(line))
    return rows
