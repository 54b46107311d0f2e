"""CLI commands implemented with click.

Each command builds the stores and the vault session, runs one coroutine
with asyncio.run and reports vault errors as `Error: ...`.
"""
from __future__ import annotations
import asyncio, click
from dataclasses import dataclass
from pathlib import Path
from notevault.config.settings import DEFAULT_CATEGORY, SORT_FIELDS
from notevault.lib.crypto import CryptoError, check_password_strength, is_weak_password
from notevault.lib.indexer import AttachmentCache, AttachmentIndexer, classify, file_name_from_path
from notevault.lib.logs import setup_logging
from notevault.lib.session import VaultSession
from notevault.lib.storage import LocalObjectStore, TransportError
from notevault.lib.utils import Note, NoteManager, NoteStore, StorageError, ValidationError

VAULT_ERRORS = (ValidationError, StorageError, CryptoError, TransportError)

@dataclass
class App:
	manager: NoteManager
	session: VaultSession
	indexer: AttachmentIndexer

def build_app() -> App:
	objects = LocalObjectStore()
	cache = AttachmentCache()
	indexer = AttachmentIndexer(objects, cache)
	session = VaultSession(indexer=indexer)
	manager = NoteManager(NoteStore(), objects, session=session, cache=cache)
	return App(manager, session, indexer)

async def _resolve(app: App, note_id: str) -> Note:
	note = await app.manager.store.get(note_id)
	if note: return note
	matches = [n for n in await app.manager.store.list() if n.id.startswith(note_id)]
	if len(matches) != 1: raise StorageError('Note not found')
	return matches[0]

def _run(coro) -> None:
	try:
		asyncio.run(coro)
	except VAULT_ERRORS as e:
		click.echo(f'Error: {e}')

@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Log debug output.')
def cli(verbose):
	"""notevault: notes with locally encrypted text and attachments."""
	setup_logging('DEBUG' if verbose else None)

@cli.command('add-note')
@click.option('--title', prompt=True)
@click.option('--content', prompt=True)
@click.option('--category', default=DEFAULT_CATEGORY, show_default=True)
@click.option('--encrypt', is_flag=True, help='Encrypt content and attachments locally.')
@click.option('--password', default='', help='Encryption password (prompted when --encrypt is set).')
@click.option('--attach', 'attach', multiple=True, type=click.Path(exists=True, dir_okay=False, path_type=Path), help='File to attach (repeatable).')
def add_note(title, content, category, encrypt, password, attach):
	"""Create a note, optionally encrypted."""
	if encrypt and not password:
		password = click.prompt('Password', hide_input=True, confirmation_prompt=True)
	if encrypt and is_weak_password(password):
		click.echo(f'Warning: {check_password_strength(password)[1]}')
	files = [(p.name, p.read_bytes()) for p in attach]

	async def go():
		app = build_app()
		note = await app.manager.create_note(title, content, category, encrypt, password, files)
		flag = ' (encrypted)' if note.is_encrypted else ''
		click.echo(f'Added note {note.id[:8]}{flag}.')
	_run(go())

@cli.command('list')
@click.option('--search', 'query', default='', help='Match title, content, file names and indexed attachment text.')
@click.option('--category', default='all', show_default=True)
@click.option('--sort', 'sort_field', type=click.Choice(SORT_FIELDS), default='date', show_default=True)
@click.option('--order', type=click.Choice(['asc', 'desc']), default='desc', show_default=True)
def list_notes(query, category, sort_field, order):
	"""List notes."""
	async def go():
		app = build_app()
		notes = await app.manager.store.list()
		if query:
			# Only plain notes can be indexed without a password
			for n in notes:
				if not n.is_encrypted: await app.indexer.index(n)
		items = app.manager.sort_notes(app.manager.search(notes, query, category), sort_field, order)
		for n in items:
			flag = ' (encrypted)' if n.is_encrypted else ''
			files = f' +{len(n.attachments)} file(s)' if n.attachments else ''
			click.echo(f"{n.id[:8]}: {n.title} [{n.category}]{flag}{files}")
	_run(go())

@cli.command('show')
@click.argument('note_id')
@click.option('--password', default='', help='Password for encrypted notes (prompted if omitted).')
def show_note(note_id, password):
	"""Show a note, unlocking it if it is encrypted."""
	async def go():
		app = build_app()
		async with app.session:
			note = await _resolve(app, note_id)
			await app.session.select_note(note)
			pwd = password
			if note.is_encrypted:
				pwd = pwd or click.prompt('Password', hide_input=True)
				await app.session.unlock(note, pwd)
			await app.session.wait_indexing()
			title, content = app.manager.display(note)
			click.echo(f"ID: {note.id}\nTitle: {title}\nCategory: {note.category}\nCreated: {note.created_at}\n---\n{content}")
			for path in note.attachments:
				name = file_name_from_path(path)
				click.echo(f"[{classify(name).value}] {name} ({path})")
				text = app.manager.cache.text(path)
				if text is not None:
					click.echo('    ' + text[:200].replace('\n', '\n    '))
				elif app.manager.cache.image(path) is not None:
					click.echo('    (image preview indexed)')
	_run(go())

@cli.command('get-file')
@click.argument('note_id')
@click.argument('path')
@click.option('--dest', type=click.Path(file_okay=False, path_type=Path), default=Path('.'), show_default=True)
@click.option('--password', default='', help='Password for encrypted notes (prompted if omitted).')
def get_file(note_id, path, dest, password):
	"""Download an attachment, decrypting it if needed."""
	async def go():
		app = build_app()
		note = await _resolve(app, note_id)
		if path not in note.attachments: raise StorageError('Attachment not found')
		pwd = password
		if note.is_encrypted and not pwd:
			pwd = click.prompt('Password', hide_input=True)
		data = await app.manager.download_attachment(note, path, pwd)
		dest.mkdir(parents=True, exist_ok=True)
		target = dest / file_name_from_path(path)
		target.write_bytes(data)
		click.echo(f'Saved {target}')
	_run(go())

@cli.command('edit')
@click.argument('note_id')
@click.option('--title', default=None, help='New title (unchanged if omitted).')
@click.option('--content', default=None, help='New content (unchanged if omitted).')
@click.option('--category', default=None)
@click.option('--encrypt/--decrypt', 'encrypt', default=None, help='Turn encryption on or off (unchanged if omitted).')
@click.option('--password', default='', help='Note password (prompted when needed).')
@click.option('--attach', 'attach', multiple=True, type=click.Path(exists=True, dir_okay=False, path_type=Path), help='File to attach (repeatable).')
def edit_note(note_id, title, content, category, encrypt, password, attach):
	"""Edit a note; encrypted notes are unlocked with their password first."""
	files = [(p.name, p.read_bytes()) for p in attach]

	async def go():
		app = build_app()
		async with app.session:
			note = await _resolve(app, note_id)
			await app.session.select_note(note)
			pwd = password
			if note.is_encrypted:
				pwd = pwd or click.prompt('Password', hide_input=True)
				await app.session.unlock(note, pwd)
			target = note.is_encrypted if encrypt is None else encrypt
			if target and not pwd:
				pwd = click.prompt('Password', hide_input=True, confirmation_prompt=True)
				if is_weak_password(pwd):
					click.echo(f'Warning: {check_password_strength(pwd)[1]}')
			cur_title, cur_content = app.manager.display(note)
			await app.manager.update_note(
				note, title if title is not None else cur_title,
				content if content is not None else cur_content,
				category, target, pwd, files,
			)
			flag = ' (encrypted)' if note.is_encrypted else ''
			click.echo(f'Updated note {note.id[:8]}{flag}.')
	_run(go())

@cli.command('delete')
@click.argument('note_id')
@click.option('--yes', is_flag=True, help='Do not ask for confirmation.')
def delete_note(note_id, yes):
	"""Delete a note and its attachment blobs."""
	async def go():
		app = build_app()
		note = await _resolve(app, note_id)
		if not yes and not click.confirm(f'Delete "{note.title}" and {len(note.attachments)} attachment(s)?'):
			click.echo('Aborted.')
			return
		await app.manager.delete_note(note)
		click.echo(f'Deleted note {note.id[:8]}.')
	_run(go())

@cli.command('preview')
@click.argument('note_id')
@click.argument('path')
@click.option('--password', default='', help='Password for encrypted notes (prompted if omitted).')
def preview(note_id, path, password):
	"""Print an attachment's type and, for text files, its contents."""
	async def go():
		app = build_app()
		note = await _resolve(app, note_id)
		if path not in note.attachments: raise StorageError('Attachment not found')
		pwd = password
		if note.is_encrypted and not pwd:
			pwd = click.prompt('Password', hide_input=True)
		pv = await app.manager.open_preview(note, path, pwd)
		click.echo(f'{pv.name} ({pv.mime_type}, {len(pv.data)} bytes)')
		if pv.text is not None:
			click.echo('---\n' + pv.text)
	_run(go())

@cli.command('pw-strength')
@click.argument('password')
def pw_strength_cmd(password):
	score, fb = check_password_strength(password)
	click.echo(f"Score: {score} -> {fb}")
