"""Cryptographic core: key derivation, text cipher, file cipher.

Every encryption derives its own key from (password, salt) with
PBKDF2-HMAC-SHA256 and seals the payload with AES-256-GCM. Text payloads
are stored as hex fields next to the note; files are packed into a single
blob laid out as salt(16) | iv(12) | ciphertext+tag.
"""
from __future__ import annotations
import secrets
from dataclasses import dataclass
from enum import Enum
from typing import Tuple
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from notevault.config.settings import (
	PBKDF2_ITERATIONS, SALT_LENGTH, KEY_LENGTH, IV_LENGTH, AUTH_TAG_LENGTH,
	FILE_HEADER_LENGTH, DEFAULT_MIME_TYPE
)

class CryptoError(Exception):
	pass

class DecryptionError(CryptoError):
	"""Authentication failed: wrong password or corrupted data.

	The two causes are deliberately reported the same way.
	"""

class KeyPurpose(str, Enum):
	ENCRYPT = 'encrypt'
	DECRYPT = 'decrypt'

class VaultKey:
	"""AES-256-GCM key usable for exactly one purpose.

	The derived key material is handed to the AEAD primitive and not kept
	on the object, so a key cannot be exported or printed.
	"""
	__slots__ = ('_aead', 'purpose')

	def __init__(self, material: bytes, purpose: KeyPurpose):
		if len(material) != KEY_LENGTH: raise CryptoError('Bad key length')
		self._aead = AESGCM(material)
		self.purpose = KeyPurpose(purpose)

	def __repr__(self) -> str:
		return f"<VaultKey purpose={self.purpose.value}>"

	def encrypt(self, iv: bytes, data: bytes) -> bytes:
		if self.purpose is not KeyPurpose.ENCRYPT: raise CryptoError('Key not usable for encryption')
		return self._aead.encrypt(iv, data, None)

	def decrypt(self, iv: bytes, data: bytes) -> bytes:
		if self.purpose is not KeyPurpose.DECRYPT: raise CryptoError('Key not usable for decryption')
		try:
			return self._aead.decrypt(iv, data, None)
		except InvalidTag:
			raise DecryptionError('Decryption failed') from None

@dataclass(frozen=True)
class EncryptedText:
	ciphertext: str
	iv: str
	salt: str

@dataclass(frozen=True)
class DecryptedFile:
	data: bytes
	mime_type: str = DEFAULT_MIME_TYPE

def _from_hex(value: str, length: int | None = None) -> bytes:
	try:
		raw = bytes.fromhex(value)
	except (TypeError, ValueError):
		raise DecryptionError('Decryption failed') from None
	if length is not None and len(raw) != length:
		raise DecryptionError('Decryption failed')
	return raw

class VaultCrypto:
	def __init__(self, iterations: int = PBKDF2_ITERATIONS):
		self.iterations = iterations

	def generate_salt(self) -> bytes:
		return secrets.token_bytes(SALT_LENGTH)

	def generate_iv(self) -> bytes:
		return secrets.token_bytes(IV_LENGTH)

	def derive_key(self, password: str, salt: bytes, purpose: KeyPurpose) -> VaultKey:
		if len(salt) != SALT_LENGTH: raise CryptoError(f"Salt must be {SALT_LENGTH} bytes")
		kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=KEY_LENGTH, salt=salt, iterations=self.iterations)
		return VaultKey(kdf.derive(password.encode('utf-8')), purpose)

	def encrypt_text(self, plaintext: str, password: str, salt: bytes | None = None) -> EncryptedText:
		salt = salt if salt is not None else self.generate_salt()
		iv = self.generate_iv()
		key = self.derive_key(password, salt, KeyPurpose.ENCRYPT)
		ct = key.encrypt(iv, plaintext.encode('utf-8'))
		return EncryptedText(ciphertext=ct.hex(), iv=iv.hex(), salt=salt.hex())

	def decrypt_text(self, ciphertext: str, iv: str, salt: str, password: str) -> str:
		data = _from_hex(ciphertext)
		iv_b = _from_hex(iv, IV_LENGTH)
		salt_b = _from_hex(salt, SALT_LENGTH)
		key = self.derive_key(password, salt_b, KeyPurpose.DECRYPT)
		plain = key.decrypt(iv_b, data)
		try:
			return plain.decode('utf-8')
		except UnicodeDecodeError:
			raise DecryptionError('Decryption failed') from None

	def encrypt_file(self, data: bytes, password: str) -> bytes:
		salt = self.generate_salt(); iv = self.generate_iv()
		key = self.derive_key(password, salt, KeyPurpose.ENCRYPT)
		return salt + iv + key.encrypt(iv, data)

	def decrypt_file(self, packed: bytes, password: str, mime_type: str | None = None) -> DecryptedFile:
		if len(packed) < FILE_HEADER_LENGTH + AUTH_TAG_LENGTH: raise DecryptionError('Decryption failed')
		salt = packed[:SALT_LENGTH]; iv = packed[SALT_LENGTH:FILE_HEADER_LENGTH]; ct = packed[FILE_HEADER_LENGTH:]
		key = self.derive_key(password, salt, KeyPurpose.DECRYPT)
		return DecryptedFile(key.decrypt(iv, ct), mime_type or DEFAULT_MIME_TYPE)

_default = VaultCrypto()

def encrypt_data(text: str, password: str, salt: str | None = None) -> EncryptedText:
	"""Encrypt `text`; `salt` is an optional hex salt to reuse."""
	if salt is None:
		return _default.encrypt_text(text, password)
	try:
		raw = bytes.fromhex(salt)
	except (TypeError, ValueError):
		raise CryptoError('Salt must be hex') from None
	return _default.encrypt_text(text, password, raw)

def decrypt_data(ciphertext: str, iv: str, salt: str, password: str) -> str:
	return _default.decrypt_text(ciphertext, iv, salt, password)

def encrypt_file(data: bytes, password: str) -> bytes:
	return _default.encrypt_file(data, password)

def decrypt_file(packed: bytes, password: str, mime_type: str | None = None) -> DecryptedFile:
	return _default.decrypt_file(packed, password, mime_type)

def check_password_strength(password: str) -> Tuple[int, str]:
	score = 0; fb = []
	L = len(password)
	if L >= 12: score += 30
	elif L >= 8: score += 20; fb.append('Use 12+ chars')
	else: fb.append('Too short (min 8)')
	sets = [any(c.islower() for c in password), any(c.isupper() for c in password), any(c.isdigit() for c in password), any(c in '!@#$%^&*()_+-=[]{}|;:,.<>?' for c in password)]
	score += sum(sets)*15
	if sum(sets) < 4: fb.append('Add diverse character sets')
	common = ['password','qwerty','abc','123','111']
	if any(p in password.lower() for p in common):
		score -= 15; fb.append('Avoid common patterns')
	if len(set(password)) < L*0.6:
		score -= 10; fb.append('Too many repeats')
	score = max(0, min(100, score))
	if score >= 80: label='Very Strong'
	elif score >= 60: label='Strong'
	elif score >= 40: label='Moderate'
	elif score >= 20: label='Weak'
	else: label='Very Weak'
	text = f"{label} ({score}/100)"
	if fb: text += ' - ' + ', '.join(fb)
	return score, text

def is_weak_password(password: str) -> bool:
	return check_password_strength(password)[0] < 60
