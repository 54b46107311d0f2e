"""Attachment indexing for previews and search.

Text and image attachments are fetched once, decrypted when the note is
encrypted, and cached by storage path: text as a string, images as a data
URL ready for rendering. PDFs and other files are only listed, never
fetched here.
"""
from __future__ import annotations
import asyncio, base64, logging
from enum import Enum
from typing import Dict, Optional, Set, TYPE_CHECKING
from notevault.config.settings import (
	TEXT_EXTENSIONS, IMAGE_EXTENSIONS, PDF_EXTENSIONS, MIME_TYPES, DEFAULT_MIME_TYPE
)
from .crypto import VaultCrypto, CryptoError
from .storage import ObjectStore, TransportError

if TYPE_CHECKING:
	from .utils import Note

log = logging.getLogger(__name__)

class AttachmentKind(str, Enum):
	TEXT = 'text'
	IMAGE = 'image'
	PDF = 'pdf'
	OTHER = 'other'

def _extension(filename: str) -> str:
	return filename.rsplit('.', 1)[-1].lower() if '.' in filename else ''

def classify(filename: str) -> AttachmentKind:
	ext = _extension(filename)
	if ext in TEXT_EXTENSIONS: return AttachmentKind.TEXT
	if ext in IMAGE_EXTENSIONS: return AttachmentKind.IMAGE
	if ext in PDF_EXTENSIONS: return AttachmentKind.PDF
	return AttachmentKind.OTHER

def mime_type_for(filename: str) -> str:
	return MIME_TYPES.get(_extension(filename), DEFAULT_MIME_TYPE)

def file_name_from_path(path: str) -> str:
	"""Display name of a stored attachment (upload timestamp prefix removed)."""
	name = path.rsplit('/', 1)[-1]
	head, sep, rest = name.partition('_')
	if sep and head.isdigit() and rest:
		return rest
	return name or 'Unknown File'

def to_data_url(data: bytes, mime_type: str) -> str:
	return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"

class AttachmentCache:
	"""Preview cache keyed by storage path. Entries are never overwritten."""

	def __init__(self):
		self.texts: Dict[str, str] = {}
		self.images: Dict[str, str] = {}

	def __contains__(self, path: str) -> bool:
		return path in self.texts or path in self.images

	def __len__(self) -> int:
		return len(self.texts) + len(self.images)

	def put_text(self, path: str, text: str) -> None:
		self.texts.setdefault(path, text)

	def put_image(self, path: str, data_url: str) -> None:
		self.images.setdefault(path, data_url)

	def text(self, path: str) -> Optional[str]:
		return self.texts.get(path)

	def image(self, path: str) -> Optional[str]:
		return self.images.get(path)

	def text_matches(self, path: str, query: str) -> bool:
		text = self.texts.get(path)
		return bool(text) and query.lower() in text.lower()

	def clear(self) -> None:
		self.texts.clear(); self.images.clear()

class AttachmentIndexer:
	def __init__(self, store: ObjectStore, cache: AttachmentCache | None = None, crypto: VaultCrypto | None = None, concurrency: int = 1):
		if concurrency < 1: raise ValueError('concurrency must be >= 1')
		self.store = store
		self.cache = cache if cache is not None else AttachmentCache()
		self.crypto = crypto or VaultCrypto()
		self.concurrency = concurrency
		self._pending: Set[str] = set()

	async def index(self, note: 'Note', password: str | None = None) -> None:
		if not note.attachments: return
		if self.concurrency == 1:
			for path in note.attachments:
				await self._index_one(note, path, password)
			return
		sem = asyncio.Semaphore(self.concurrency)
		async def bounded(path: str):
			async with sem:
				await self._index_one(note, path, password)
		await asyncio.gather(*(bounded(p) for p in note.attachments))

	async def _index_one(self, note: 'Note', path: str, password: str | None) -> None:
		if path in self.cache or path in self._pending: return
		filename = file_name_from_path(path)
		kind = classify(filename)
		if kind not in (AttachmentKind.TEXT, AttachmentKind.IMAGE): return
		if note.is_encrypted and not password:
			log.debug("Skipping %s: note %s is locked", filename, note.id)
			return
		mime = mime_type_for(filename)
		self._pending.add(path)
		try:
			data = await self.store.download(path)
			if note.is_encrypted:
				data = (await asyncio.to_thread(self.crypto.decrypt_file, data, password, mime)).data
			if kind is AttachmentKind.TEXT:
				self.cache.put_text(path, data.decode('utf-8', errors='replace'))
			else:
				self.cache.put_image(path, to_data_url(data, mime))
			log.debug("Indexed %s attachment %s", kind.value, filename)
		except (CryptoError, TransportError) as e:
			log.warning("Failed to index %s %s: %s", kind.value, filename, e)
		except Exception:
			# One bad attachment must not stop the rest of the note
			log.exception("Unexpected error indexing %s", filename)
		finally:
			self._pending.discard(path)
