"""Utility layer: note records, record store and note workflows.

- `Note` is the persisted record; encrypted notes carry ciphertext in
  `content` plus hex `iv`/`salt`.
- `NoteStore` is a JSON-file record store standing in for the remote one.
- `NoteManager` implements save/update, attachment download and preview,
  and search/sort over notes using the session and preview caches.
"""
from __future__ import annotations
import asyncio, json, os, logging, uuid
from dataclasses import dataclass, asdict, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Any, Sequence, Tuple, TYPE_CHECKING
from notevault.config.settings import (
	DEFAULT_TITLE, DEFAULT_CATEGORY, MAX_ENTRY_SIZE, MAX_FILE_SIZE, SORT_FIELDS, data_dir
)
from .crypto import VaultCrypto
from .indexer import AttachmentCache, AttachmentKind, classify, file_name_from_path, mime_type_for
from .storage import ObjectStore

if TYPE_CHECKING:
	from .session import VaultSession

log = logging.getLogger(__name__)

class ValidationError(Exception): ...
class StorageError(Exception): ...

@dataclass
class Note:
	id: str
	title: str
	content: str
	is_encrypted: bool = False
	category: str = DEFAULT_CATEGORY
	attachments: List[str] = field(default_factory=list)
	iv: Optional[str] = None
	salt: Optional[str] = None
	created_at: str = field(default_factory=lambda: datetime.now().isoformat())

	def check(self) -> None:
		has_params = bool(self.iv) and bool(self.salt)
		if self.is_encrypted and not has_params:
			raise ValidationError('Encrypted note is missing iv/salt')
		if not self.is_encrypted and (self.iv or self.salt):
			raise ValidationError('Plain note must not carry iv/salt')

	def to_dict(self) -> Dict[str, Any]:
		return asdict(self)

	@classmethod
	def from_dict(cls, raw: Dict[str, Any]) -> 'Note':
		return cls(
			id=str(raw['id']),
			title=raw.get('title') or DEFAULT_TITLE,
			content=raw.get('ciphertext') or raw.get('content') or '',
			is_encrypted=bool(raw.get('is_encrypted')),
			category=raw.get('category') or DEFAULT_CATEGORY,
			attachments=list(raw.get('attachments') or []),
			iv=raw.get('iv'),
			salt=raw.get('salt'),
			created_at=raw.get('created_at') or datetime.now().isoformat(),
		)

@dataclass
class Preview:
	name: str
	mime_type: str
	data: bytes
	text: Optional[str] = None

class NoteStore:
	"""Notes persisted as one JSON document, rewritten atomically."""

	def __init__(self, path: Path | None = None):
		# Resolve path dynamically to honor environment overrides in tests
		self.path = Path(path) if path is not None else data_dir() / 'notes.json'

	def _load(self) -> Dict[str, Dict[str, Any]]:
		if not self.path.exists() or self.path.stat().st_size == 0: return {}
		try:
			return json.loads(self.path.read_text(encoding='utf-8')).get('notes', {})
		except json.JSONDecodeError as e:
			raise StorageError(f'Corrupt note store: {e}') from e

	def _write(self, notes: Dict[str, Dict[str, Any]]) -> None:
		self.path.parent.mkdir(parents=True, exist_ok=True)
		tmp = self.path.with_suffix('.tmp')
		tmp.write_text(json.dumps({'notes': notes}, indent=2), encoding='utf-8')
		os.replace(tmp, self.path)

	async def insert(self, note: Note) -> Note:
		note.check()
		notes = await asyncio.to_thread(self._load)
		notes[note.id] = note.to_dict()
		await asyncio.to_thread(self._write, notes)
		return note

	async def update(self, note: Note) -> Note:
		note.check()
		notes = await asyncio.to_thread(self._load)
		if note.id not in notes: raise StorageError('Note not found')
		notes[note.id] = note.to_dict()
		await asyncio.to_thread(self._write, notes)
		return note

	async def get(self, note_id: str) -> Optional[Note]:
		raw = (await asyncio.to_thread(self._load)).get(note_id)
		return Note.from_dict(raw) if raw else None

	async def list(self) -> List[Note]:
		notes = [Note.from_dict(v) for v in (await asyncio.to_thread(self._load)).values()]
		return sorted(notes, key=lambda n: n.created_at, reverse=True)

	async def delete(self, note_id: str) -> None:
		notes = await asyncio.to_thread(self._load)
		if notes.pop(note_id, None) is None: raise StorageError('Note not found')
		await asyncio.to_thread(self._write, notes)

class NoteManager:
	def __init__(self, store: NoteStore, objects: ObjectStore, session: 'VaultSession | None' = None, cache: AttachmentCache | None = None, crypto: VaultCrypto | None = None):
		self.store = store
		self.objects = objects
		self.session = session
		self.cache = cache if cache is not None else AttachmentCache()
		self.crypto = crypto or VaultCrypto()

	async def create_note(self, title: str, content: str, category: str = DEFAULT_CATEGORY, encrypt: bool = False, password: str = '', files: Sequence[Tuple[str, bytes]] = (), created_at: str | None = None) -> Note:
		if not title.strip(): raise ValidationError('Title required')
		if encrypt and not password: raise ValidationError('Password required for encryption')
		self._check_sizes(content, files)
		note = Note(id=uuid.uuid4().hex, title=title, content=content, category=category or DEFAULT_CATEGORY)
		if created_at: note.created_at = created_at
		note.attachments = await self._upload(files, encrypt, password)
		if encrypt:
			await self._seal(note, content, password)
		await self.store.insert(note)
		log.info("Created note %s (encrypted=%s, attachments=%d)", note.id, note.is_encrypted, len(note.attachments))
		return note

	async def update_note(self, note: Note, title: str, content: str, category: str | None = None, is_encrypted: bool | None = None, password: str = '', files: Sequence[Tuple[str, bytes]] = ()) -> Note:
		encrypt = note.is_encrypted if is_encrypted is None else is_encrypted
		pwd = password or (self.session.password_for(note.id) if self.session else None) or ''
		if encrypt and not pwd: raise ValidationError('Password required to save encrypted note')
		if note.is_encrypted and not encrypt and note.attachments and not pwd: raise ValidationError('Password required to decrypt attachments')
		self._check_sizes(content, files)
		kept = note.attachments
		if encrypt != note.is_encrypted and kept:
			kept = await self._reseal_attachments(kept, encrypt, pwd)
		new_paths = await self._upload(files, encrypt, pwd)
		note.title = title
		note.category = category or note.category
		note.attachments = [*kept, *new_paths]
		if encrypt:
			await self._seal(note, content, pwd)
		else:
			note.content = content; note.is_encrypted = False; note.iv = None; note.salt = None
		await self.store.update(note)
		log.info("Updated note %s (encrypted=%s)", note.id, note.is_encrypted)
		return note

	async def delete_note(self, note: Note) -> None:
		"""Delete the record, then its attachment blobs from every bucket."""
		if self.session and self.session.get(note.id): self.session.lock()
		await self.store.delete(note.id)
		for path in note.attachments:
			await self.objects.remove(path)
		log.info("Deleted note %s (%d attachment(s))", note.id, len(note.attachments))

	async def download_attachment(self, note: Note, path: str, password: str = '') -> bytes:
		data = await self.objects.download(path)
		if not note.is_encrypted: return data
		pwd = password or (self.session.password_for(note.id) if self.session else None)
		if not pwd: raise ValidationError('Vault key required to decrypt file')
		return (await asyncio.to_thread(self.crypto.decrypt_file, data, pwd)).data

	async def open_preview(self, note: Note, path: str, password: str = '') -> Preview:
		name = file_name_from_path(path)
		mime = mime_type_for(name)
		data = await self.download_attachment(note, path, password)
		text = data.decode('utf-8', errors='replace') if classify(name) is AttachmentKind.TEXT else None
		return Preview(name=name, mime_type=mime, data=data, text=text or None)

	def display(self, note: Note) -> Tuple[str, str]:
		"""Title and content as currently visible (decrypted only while unlocked)."""
		unlocked = self.session.get(note.id) if self.session else None
		if unlocked: return unlocked.title, unlocked.content
		return note.title or DEFAULT_TITLE, '' if note.is_encrypted else note.content

	def search(self, notes: Sequence[Note], query: str = '', category: str = 'all') -> List[Note]:
		q = query.lower()
		out = []
		for n in notes:
			if category != 'all' and n.category != category: continue
			if q:
				title, content = self.display(n)
				hit = q in title.lower() or q in content.lower()
				hit = hit or any(q in file_name_from_path(p).lower() for p in n.attachments)
				hit = hit or any(self.cache.text_matches(p, q) for p in n.attachments)
				if not hit: continue
			out.append(n)
		return out

	def sort_notes(self, notes: Sequence[Note], sort_field: str = 'date', order: str = 'desc') -> List[Note]:
		if sort_field not in SORT_FIELDS: raise ValidationError(f'Unknown sort field: {sort_field}')
		keys = {
			'date': lambda n: n.created_at,
			'title': lambda n: self.display(n)[0].lower(),
			'category': lambda n: (n.category or '').lower(),
			'security': lambda n: n.is_encrypted,
			'attachments': lambda n: len(n.attachments),
		}
		return sorted(notes, key=keys[sort_field], reverse=(order == 'desc'))

	async def _seal(self, note: Note, content: str, password: str) -> None:
		enc = await asyncio.to_thread(self.crypto.encrypt_text, content, password)
		note.content = enc.ciphertext; note.iv = enc.iv; note.salt = enc.salt
		note.is_encrypted = True

	async def _reseal_attachments(self, paths: Sequence[str], encrypt: bool, password: str) -> List[str]:
		"""Re-upload existing blobs encrypted (or decrypted) to match the note."""
		out = []
		for path in paths:
			data = await self.objects.download(path)
			if encrypt:
				blob = await asyncio.to_thread(self.crypto.encrypt_file, data, password)
			else:
				blob = (await asyncio.to_thread(self.crypto.decrypt_file, data, password)).data
			out.append(await self.objects.upload(blob, file_name_from_path(path)))
		for path in paths:
			await self.objects.remove(path)
		return out

	async def _upload(self, files: Sequence[Tuple[str, bytes]], encrypt: bool, password: str) -> List[str]:
		paths = []
		for name, data in files:
			blob = await asyncio.to_thread(self.crypto.encrypt_file, data, password) if encrypt else data
			paths.append(await self.objects.upload(blob, name))
		return paths

	@staticmethod
	def _check_sizes(content: str, files: Sequence[Tuple[str, bytes]]) -> None:
		if len(content.encode()) > MAX_ENTRY_SIZE: raise ValidationError('Content too large')
		for name, data in files:
			if len(data) > MAX_FILE_SIZE: raise ValidationError(f'File too large: {name}')
