"""Logging setup for the command line.

Library modules only call logging.getLogger(__name__); handlers are
installed once here by the entry point.
"""
from __future__ import annotations
import logging
from pathlib import Path
from notevault.config.settings import LOG_FORMAT, log_level, log_file

def setup_logging(level: str | None = None, file: Path | None = None) -> logging.Logger:
	root = logging.getLogger('notevault')
	root.setLevel(level or log_level())
	root.handlers.clear()
	console = logging.StreamHandler()
	console.setFormatter(logging.Formatter(LOG_FORMAT, datefmt='%H:%M:%S'))
	root.addHandler(console)
	target = file or log_file()
	if target is not None:
		target.parent.mkdir(parents=True, exist_ok=True)
		fh = logging.FileHandler(target, encoding='utf-8')
		fh.setLevel(logging.DEBUG)
		fh.setFormatter(logging.Formatter(LOG_FORMAT))
		root.addHandler(fh)
	root.propagate = False
	return root
