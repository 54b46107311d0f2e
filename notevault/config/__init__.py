"""Configuration settings and constants for notevault.

The constants live in `settings`; this package re-exports them so callers
can write `from notevault.config import AUTO_LOCK_TIMEOUT`.
"""

from .settings import *  # noqa: F401,F403
from .settings import __all__  # noqa: F401
