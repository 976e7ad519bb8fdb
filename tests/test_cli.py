"""CLI commands, driven through ``main.main``."""

import json

from main import main
from conftest import make_pdf


def _run(capsys, argv):
    code = main(argv)
    out = capsys.readouterr().out
    return code, json.loads(out) if out.strip() else None


def test_bake_command_writes_output_and_reports_warnings(tmp_path, capsys, viewer_metadata):
    pdf = tmp_path / 'form.pdf'
    pdf.write_bytes(make_pdf(2))
    annotations = tmp_path / 'annotations.json'
    annotations.write_text(
        json.dumps(
            {
                'annotations': [
                    {'id': 'h', 'type': 'highlight', 'x': 50, 'y': 100, 'width': 120, 'height': 18,
                     'pageNumber': 0, 'metadata': viewer_metadata},
                    {'id': 's', 'type': 'signature', 'x': 5, 'y': 5, 'pageNumber': 1, 'content': 'nope'},
                ]
            }
        ),
        encoding='utf-8',
    )

    code, payload = _run(capsys, ['bake', '--pdf', str(pdf), '--annotations', str(annotations)])

    assert code == 0
    assert payload['status'] == 'partial'
    assert payload['output_path'] == str(tmp_path / 'annotated-form.pdf')
    assert payload['mark_count'] == 1
    assert [item['annotation_id'] for item in payload['warnings']] == ['s']
    assert (tmp_path / 'annotated-form.pdf').exists()


def test_bake_command_fails_on_unreadable_pdf(tmp_path, capsys):
    pdf = tmp_path / 'broken.pdf'
    pdf.write_bytes(b'this is not a pdf')
    annotations = tmp_path / 'annotations.json'
    annotations.write_text('[]', encoding='utf-8')

    code, payload = _run(capsys, ['bake', '--pdf', str(pdf), '--annotations', str(annotations)])

    assert code == 2
    assert payload['status'] == 'error'
    assert not (tmp_path / 'annotated-broken.pdf').exists()


def test_session_flow(tmp_path, capsys):
    pdf = tmp_path / 'lease.pdf'
    pdf.write_bytes(make_pdf(1))

    code, created = _run(capsys, ['session', 'new', '--pdf', str(pdf)])
    assert code == 0
    session_id = created['session_id']

    record = {'type': 'underline', 'x': 10, 'y': 20, 'width': 60, 'height': 10, 'pageNumber': 0}
    code, _ = _run(capsys, ['session', 'add', '--session-id', session_id, '--json', json.dumps(record)])
    assert code == 0
    code, _ = _run(
        capsys,
        ['session', 'comment', '--session-id', session_id, '--page', '0', '--x', '40', '--y', '40', '--text', 'ok'],
    )
    assert code == 0

    code, undone = _run(capsys, ['session', 'undo', '--session-id', session_id])
    assert undone['removed']['type'] == 'comment'
    assert undone['annotation_count'] == 1

    code, exported = _run(capsys, ['session', 'export', '--session-id', session_id, '--pdf', str(pdf)])
    assert code == 0
    assert exported['status'] == 'success'
    assert exported['mark_count'] == 1
    assert (tmp_path / 'annotated-lease.pdf').exists()

    code, shown = _run(capsys, ['session', 'show', '--session-id', session_id])
    assert shown['annotation_count'] == 1


def test_session_export_rejects_other_document(tmp_path, capsys):
    pdf = tmp_path / 'one.pdf'
    pdf.write_bytes(make_pdf(1))
    other = tmp_path / 'two.pdf'
    other.write_bytes(make_pdf(3))

    _, created = _run(capsys, ['session', 'new', '--pdf', str(pdf)])
    code, payload = _run(capsys, ['session', 'export', '--session-id', created['session_id'], '--pdf', str(other)])

    assert code == 2
    assert 'does not match' in payload['message']


def test_unknown_session_is_an_error(capsys):
    code, payload = _run(capsys, ['session', 'show', '--session-id', '00000000-0000-0000-0000-000000000000'])

    assert code == 2
    assert payload['status'] == 'error'


def test_session_events_lists_journal(tmp_path, capsys):
    pdf = tmp_path / 'memo.pdf'
    pdf.write_bytes(make_pdf(1))

    _, created = _run(capsys, ['session', 'new', '--pdf', str(pdf)])
    session_id = created['session_id']
    _run(capsys, ['session', 'comment', '--session-id', session_id, '--page', '0', '--x', '5', '--y', '5', '--text', 'hi'])
    _run(capsys, ['session', 'undo', '--session-id', session_id])

    code, payload = _run(capsys, ['session', 'events', '--session-id', session_id])

    assert code == 0
    assert payload['session_id'] == session_id
    assert [row['event'] for row in payload['events']] == ['created', 'comment_saved', 'undo']
