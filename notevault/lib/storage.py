"""Object store for attachment blobs.

The vault layer only ever calls `upload` and `download`. Blobs are opaque:
for encrypted notes they are packed ciphertext, otherwise raw file bytes.
`LocalObjectStore` keeps two buckets on disk and reads from the legacy
bucket when the primary one does not have the object.
"""
from __future__ import annotations
import asyncio, logging, os, re, time, uuid
from pathlib import Path
from notevault.config.settings import PRIMARY_BUCKET, LEGACY_BUCKET, DEFAULT_OWNER, data_dir

log = logging.getLogger(__name__)

class TransportError(Exception): ...
class ObjectNotFound(TransportError): ...

_UNSAFE = re.compile(r'[^A-Za-z0-9._-]+')

class ObjectStore:
	"""Interface consumed by the note workflows and the attachment indexer."""

	async def upload(self, data: bytes, name: str) -> str:
		raise NotImplementedError

	async def download(self, path: str) -> bytes:
		raise NotImplementedError

	async def remove(self, path: str) -> None:
		raise NotImplementedError

class LocalObjectStore(ObjectStore):
	def __init__(self, root: Path | None = None, owner: str = DEFAULT_OWNER):
		self.root = Path(root) if root is not None else data_dir() / 'objects'
		self.owner = owner

	def _bucket_path(self, bucket: str, path: str) -> Path:
		base = (self.root / bucket).resolve()
		target = (base / path).resolve()
		if base not in target.parents:
			raise ObjectNotFound(f"Object not found: {path}")
		return target

	async def upload(self, data: bytes, name: str) -> str:
		safe = _UNSAFE.sub('_', name) or 'file'
		# Random segment keeps same-name uploads in the same millisecond apart
		path = f"{self.owner}/{uuid.uuid4().hex[:8]}/{int(time.time() * 1000)}_{safe}"
		target = self._bucket_path(PRIMARY_BUCKET, path)
		try:
			await asyncio.to_thread(self._write, target, data)
		except OSError as e:
			raise TransportError(f"Upload failed: {e}") from e
		log.debug("Uploaded %d bytes -> %s", len(data), path)
		return path

	async def download(self, path: str) -> bytes:
		try:
			return await self._read(PRIMARY_BUCKET, path)
		except ObjectNotFound as primary_error:
			try:
				data = await self._read(LEGACY_BUCKET, path)
			except TransportError:
				raise primary_error
			log.info("Served %s from legacy bucket", path)
			return data

	async def remove(self, path: str) -> None:
		for bucket in (PRIMARY_BUCKET, LEGACY_BUCKET):
			try:
				target = self._bucket_path(bucket, path)
				await asyncio.to_thread(target.unlink, True)
			except ObjectNotFound:
				continue
			except OSError as e:
				raise TransportError(f"Remove failed: {e}") from e

	async def _read(self, bucket: str, path: str) -> bytes:
		target = self._bucket_path(bucket, path)
		try:
			return await asyncio.to_thread(target.read_bytes)
		except FileNotFoundError:
			raise ObjectNotFound(f"Object not found: {path}") from None
		except OSError as e:
			raise TransportError(f"Download failed: {e}") from e

	@staticmethod
	def _write(target: Path, data: bytes) -> None:
		target.parent.mkdir(parents=True, exist_ok=True)
		if target.exists(): raise FileExistsError(f"Object exists: {target.name}")
		tmp = target.with_name(f".{target.name}.{uuid.uuid4().hex}.tmp")
		tmp.write_bytes(data)
		os.replace(tmp, target)
