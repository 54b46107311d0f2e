import json
import re
from click.testing import CliRunner
from notevault.cli.commands import cli


def note_id(output):
    return re.search(r'Added note (\w+)', output).group(1)


def test_cli_add_and_list():
    runner = CliRunner()
    add = runner.invoke(cli, ['add-note'], input='Title\nContent body\n')
    assert add.exit_code == 0
    assert 'Added note' in add.output
    lst = runner.invoke(cli, ['list'])
    assert lst.exit_code == 0
    assert 'Title [Personal]' in lst.output


def test_cli_encrypted_show(tmp_path):
    runner = CliRunner()
    add = runner.invoke(cli, ['add-note', '--encrypt'], input='Secret\nhidden text\nCorrect-Horse-42!\nCorrect-Horse-42!\n')
    assert add.exit_code == 0
    assert '(encrypted)' in add.output
    nid = note_id(add.output)
    ok = runner.invoke(cli, ['show', nid], input='Correct-Horse-42!\n')
    assert ok.exit_code == 0
    assert 'hidden text' in ok.output
    bad = runner.invoke(cli, ['show', nid], input='wrong\n')
    assert 'Error: Invalid key' in bad.output
    assert 'hidden text' not in bad.output


def stored(home, nid):
    notes = json.loads((home / 'notes.json').read_text())['notes']
    return next(v for k, v in notes.items() if k.startswith(nid))


def test_cli_edit_plain_note():
    runner = CliRunner()
    nid = note_id(runner.invoke(cli, ['add-note', '--title', 'Draft', '--content', 'v1']).output)
    res = runner.invoke(cli, ['edit', nid, '--content', 'v2', '--category', 'Work'])
    assert res.exit_code == 0
    assert f'Updated note {nid}.' in res.output
    shown = runner.invoke(cli, ['show', nid]).output
    assert 'Title: Draft' in shown and 'Category: Work' in shown and 'v2' in shown


def test_cli_edit_encrypted_note_with_attachment(tmp_path, isolated_home):
    runner = CliRunner()
    pwd = 'Correct-Horse-42!'
    nid = note_id(runner.invoke(cli, ['add-note', '--title', 'Secret', '--content', 'v1', '--encrypt', '--password', pwd]).output)
    extra = tmp_path / 'plan.txt'
    extra.write_text('meet at noon')
    bad = runner.invoke(cli, ['edit', nid, '--content', 'hacked'], input='wrong\n')
    assert 'Error: Invalid key' in bad.output
    assert 'hacked' not in runner.invoke(cli, ['show', nid, '--password', pwd]).output
    res = runner.invoke(cli, ['edit', nid, '--title', 'Secret 2', '--attach', str(extra)], input=pwd + '\n')
    assert res.exit_code == 0
    assert '(encrypted)' in res.output
    record = stored(isolated_home, nid)
    assert record['is_encrypted'] and len(record['attachments']) == 1
    assert 'v1' not in record['content']
    shown = runner.invoke(cli, ['show', nid, '--password', pwd]).output
    assert 'Title: Secret 2' in shown and 'v1' in shown
    assert '[text] plan.txt' in shown and 'meet at noon' in shown


def test_cli_edit_decrypt_makes_note_and_files_plain(tmp_path, isolated_home):
    runner = CliRunner()
    pwd = 'Correct-Horse-42!'
    att = tmp_path / 'todo.md'
    att.write_text('# list')
    nid = note_id(runner.invoke(cli, ['add-note', '--title', 'T', '--content', 'hidden', '--encrypt',
                                      '--password', pwd, '--attach', str(att)]).output)
    res = runner.invoke(cli, ['edit', nid, '--decrypt', '--password', pwd])
    assert res.exit_code == 0
    assert '(encrypted)' not in res.output
    record = stored(isolated_home, nid)
    assert not record['is_encrypted'] and record['content'] == 'hidden'
    blob = isolated_home / 'objects' / 'attachments' / record['attachments'][0]
    assert blob.read_bytes() == b'# list'


def test_cli_delete_removes_note_and_blobs(tmp_path, isolated_home):
    runner = CliRunner()
    att = tmp_path / 'a.txt'
    att.write_text('data')
    nid = note_id(runner.invoke(cli, ['add-note', '--title', 'Gone', '--content', 'x', '--attach', str(att)]).output)
    blob = isolated_home / 'objects' / 'attachments' / stored(isolated_home, nid)['attachments'][0]
    assert blob.exists()
    kept = runner.invoke(cli, ['delete', nid], input='n\n')
    assert 'Aborted.' in kept.output
    assert 'Gone' in runner.invoke(cli, ['list']).output
    res = runner.invoke(cli, ['delete', nid, '--yes'])
    assert res.exit_code == 0
    assert f'Deleted note {nid}.' in res.output
    assert 'Gone' not in runner.invoke(cli, ['list']).output
    assert not blob.exists()
    assert 'Error: Note not found' in runner.invoke(cli, ['delete', nid, '--yes']).output


def test_cli_preview_encrypted_text(tmp_path, isolated_home):
    runner = CliRunner()
    pwd = 'Correct-Horse-42!'
    att = tmp_path / 'notes.md'
    att.write_text('# heading')
    nid = note_id(runner.invoke(cli, ['add-note', '--title', 'P', '--content', 'x', '--encrypt',
                                      '--password', pwd, '--attach', str(att)]).output)
    path = stored(isolated_home, nid)['attachments'][0]
    res = runner.invoke(cli, ['preview', nid, path], input=pwd + '\n')
    assert res.exit_code == 0
    assert 'notes.md (text/markdown, 9 bytes)' in res.output
    assert '# heading' in res.output
    bad = runner.invoke(cli, ['preview', nid, path, '--password', 'wrong'])
    assert 'Error: Decryption failed' in bad.output
    assert '# heading' not in bad.output
