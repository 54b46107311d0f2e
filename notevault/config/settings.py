"""Project configuration settings.

Constants shared by the crypto core, the session, the indexer and the
local stores. Values that depend on the environment are resolved through
small helpers so tests can override them with monkeypatch.setenv.
"""

from pathlib import Path
import os

# Security / crypto
PBKDF2_ITERATIONS = 100_000
SALT_LENGTH = 16
KEY_LENGTH = 32       # AES-256
IV_LENGTH = 12        # 96-bit GCM nonce
AUTH_TAG_LENGTH = 16  # GCM tag length
FILE_HEADER_LENGTH = SALT_LENGTH + IV_LENGTH

# Session
AUTO_LOCK_TIMEOUT = 60  # seconds

# Object store buckets
PRIMARY_BUCKET = "attachments"
LEGACY_BUCKET = "vault_files"
DEFAULT_OWNER = "local"

# Attachment classification
TEXT_EXTENSIONS = {"txt", "md", "json", "js", "ts", "log", "html", "css", "csv"}
IMAGE_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp", "svg", "bmp"}
PDF_EXTENSIONS = {"pdf"}
MIME_TYPES = {
	"png": "image/png", "jpg": "image/jpeg", "jpeg": "image/jpeg",
	"gif": "image/gif", "webp": "image/webp", "svg": "image/svg+xml",
	"pdf": "application/pdf", "txt": "text/plain", "md": "text/markdown",
}
DEFAULT_MIME_TYPE = "application/octet-stream"

# Notes
DEFAULT_TITLE = "Untitled Note"
DEFAULT_CATEGORY = "Personal"
SORT_FIELDS = ("date", "title", "category", "security", "attachments")

# Limits
MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
MAX_ENTRY_SIZE = 1024 * 1024      # 1MB text entries

# Logging
LOG_LEVEL = "WARNING"
LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def data_dir() -> Path:
	return Path(os.environ.get("NOTEVAULT_HOME", "notevault_data"))


def auto_lock_timeout() -> float:
	return float(os.environ.get("NOTEVAULT_AUTO_LOCK", AUTO_LOCK_TIMEOUT))


def log_level() -> str:
	return os.environ.get("NOTEVAULT_LOG_LEVEL", LOG_LEVEL).upper()


def log_file() -> Path | None:
	value = os.environ.get("NOTEVAULT_LOG_FILE")
	return Path(value) if value else None


__all__ = [
	'PBKDF2_ITERATIONS','SALT_LENGTH','KEY_LENGTH','IV_LENGTH','AUTH_TAG_LENGTH','FILE_HEADER_LENGTH',
	'AUTO_LOCK_TIMEOUT','PRIMARY_BUCKET','LEGACY_BUCKET','DEFAULT_OWNER',
	'TEXT_EXTENSIONS','IMAGE_EXTENSIONS','PDF_EXTENSIONS','MIME_TYPES','DEFAULT_MIME_TYPE',
	'DEFAULT_TITLE','DEFAULT_CATEGORY','SORT_FIELDS',
	'MAX_FILE_SIZE','MAX_ENTRY_SIZE','LOG_LEVEL','LOG_FORMAT',
	'data_dir','auto_lock_timeout','log_level','log_file',
]
