"""
Vault session management - holds one note's plaintext in memory.

The plaintext is cached on unlock and cleared on lock, on selecting any
note, and when the idle window elapses. The window is started by a
successful unlock and is not extended by reading or editing.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Optional, Set

from notevault.config.settings import auto_lock_timeout

from .crypto import VaultCrypto, DecryptionError
from .indexer import AttachmentIndexer
from .utils import Note, ValidationError

log = logging.getLogger(__name__)


@dataclass
class UnlockedNote:
	"""Decrypted view of the note currently unlocked."""

	note_id: str
	title: str
	content: str
	expires_at: float  # time.monotonic() deadline, same clock as the event loop
	password: str = field(repr=False)


class VaultSession:
	"""Holds at most one unlocked note, with an auto-lock timer."""

	def __init__(
		self,
		crypto: Optional[VaultCrypto] = None,
		indexer: Optional[AttachmentIndexer] = None,
		timeout: Optional[float] = None,
	):
		self.crypto = crypto or VaultCrypto()
		self.indexer = indexer
		self.timeout = auto_lock_timeout() if timeout is None else timeout
		self.selected_id: Optional[str] = None
		self._unlocked: Optional[UnlockedNote] = None
		self._timer: Optional[asyncio.TimerHandle] = None
		self._tasks: Set[asyncio.Task] = set()

	@property
	def is_unlocked(self) -> bool:
		"""Check if a note is currently unlocked."""
		return self.get() is not None

	@property
	def note_id(self) -> Optional[str]:
		"""Id of the unlocked note, if any."""
		current = self.get()
		return current.note_id if current else None

	def get(self, note_id: Optional[str] = None) -> Optional[UnlockedNote]:
		"""Return the unlocked state, optionally only if it belongs to note_id."""
		current = self._unlocked
		if current is None:
			return None
		if time.monotonic() >= current.expires_at:
			log.debug("Session deadline passed, locking note %s", current.note_id)
			self.lock()
			return None
		if note_id is not None and current.note_id != note_id:
			return None
		return current

	def password_for(self, note_id: str) -> Optional[str]:
		"""Password used to unlock note_id, while it stays unlocked."""
		current = self.get(note_id)
		return current.password if current else None

	async def unlock(self, note: Note, password: str) -> UnlockedNote:
		"""Decrypt note and cache its plaintext.

		Raises ValidationError before any decryption if the note is not
		encrypted or no password is given, and DecryptionError if the
		password is wrong or the stored ciphertext is damaged. The session
		stays locked on failure.
		"""
		if not note.is_encrypted:
			raise ValidationError("Note is not encrypted")
		if not password:
			raise ValidationError("Password required to unlock")
		note.check()

		try:
			content = await asyncio.to_thread(
				self.crypto.decrypt_text, note.content, note.iv, note.salt, password
			)
		except DecryptionError:
			log.info("Unlock failed for note %s", note.id)
			raise DecryptionError("Invalid key") from None

		self._cancel_timer()
		loop = asyncio.get_running_loop()
		self._unlocked = UnlockedNote(
			note_id=note.id,
			title=note.title,
			content=content,
			expires_at=time.monotonic() + self.timeout,
			password=password,
		)
		self._timer = loop.call_later(self.timeout, self._expire)
		log.info("Note %s unlocked for %ss", note.id, self.timeout)

		self._spawn_indexing(note, password)
		return self._unlocked

	async def select_note(self, note: Note) -> None:
		"""Switch to note. Always locks first, even for the same note."""
		self.lock()
		self.selected_id = note.id
		if not note.is_encrypted:
			self._spawn_indexing(note, None)

	def lock(self) -> None:
		"""Clear cached plaintext and cancel the auto-lock timer."""
		self._cancel_timer()
		if self._unlocked is not None:
			log.info("Note %s locked", self._unlocked.note_id)
		self._unlocked = None

	async def wait_indexing(self) -> None:
		"""Wait for attachment indexing started by this session."""
		if self._tasks:
			await asyncio.gather(*list(self._tasks), return_exceptions=True)

	async def close(self) -> None:
		"""Tear down: lock and cancel pending timer and indexing tasks."""
		self.lock()
		for task in list(self._tasks):
			task.cancel()
		await self.wait_indexing()
		self._tasks.clear()

	async def __aenter__(self) -> "VaultSession":
		return self

	async def __aexit__(self, *exc) -> None:
		await self.close()

	def _expire(self) -> None:
		self._timer = None
		if self._unlocked is not None:
			log.info("Auto-lock: note %s idle for %ss", self._unlocked.note_id, self.timeout)
		self._unlocked = None

	def _cancel_timer(self) -> None:
		if self._timer is not None:
			self._timer.cancel()
			self._timer = None

	def _spawn_indexing(self, note: Note, password: Optional[str]) -> None:
		if self.indexer is None or not note.attachments:
			return
		task = asyncio.get_running_loop().create_task(self.indexer.index(note, password))
		self._tasks.add(task)
		task.add_done_callback(self._tasks.discard)
