import logging
import pytest
from notevault.lib.storage import ObjectStore, ObjectNotFound, TransportError


class MemoryObjectStore(ObjectStore):
    """In-memory object store that records every download."""

    def __init__(self, objects=None, broken=()):
        self.objects = dict(objects or {})
        self.broken = set(broken)
        self.downloads = []
        self._n = 0

    async def upload(self, data, name):
        self._n += 1
        path = f"test/{self._n}_{name}"
        self.objects[path] = bytes(data)
        return path

    async def download(self, path):
        self.downloads.append(path)
        if path in self.broken:
            raise TransportError(f"network down: {path}")
        if path not in self.objects:
            raise ObjectNotFound(f"Object not found: {path}")
        return self.objects[path]

    async def remove(self, path):
        self.objects.pop(path, None)


@pytest.fixture
def memory_store():
    return MemoryObjectStore()


@pytest.fixture(autouse=True)
def isolated_home(monkeypatch, tmp_path):
    monkeypatch.setenv('NOTEVAULT_HOME', str(tmp_path / 'home'))
    return tmp_path / 'home'


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    logger = logging.getLogger('notevault')
    logger.handlers.clear()
    logger.propagate = True
