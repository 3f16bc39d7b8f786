"""Cache storage backends.

Keys are '/'-separated strings relative to the cache root. Reads of missing or
unreadable entries return None; failed writes raise CacheIOError.
"""

import logging
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from litpress.core.errors import CacheIOError


logger = logging.getLogger(__name__)


class CacheStorage(ABC):
    """Abstract key/value store for cached block modules and execution records"""

    @abstractmethod
    def read(self, key: str) -> Optional[str]:
        """Return stored text, or None if missing."""
        ...

    @abstractmethod
    def write(self, key: str, data: str) -> None:
        """Store text under key, replacing any existing value."""
        ...

    @abstractmethod
    def exists(self, key: str) -> bool:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove key; missing keys are ignored."""
        ...

    @abstractmethod
    def keys(self, prefix: str = "") -> list[str]:
        """Sorted keys starting with prefix."""
        ...

    @abstractmethod
    def clear(self) -> None:
        ...

    @abstractmethod
    def locate(self, key: str) -> str:
        """Where a key lives, in a form a module loader can import from."""
        ...


class FileStorage(CacheStorage):
    """One plain file per key under root"""

    def __init__(self, root: Path | str):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        return self.root / key

    def read(self, key: str) -> Optional[str]:
        try:
            return self._path(key).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            return None

    def write(self, key: str, data: str) -> None:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(data, encoding="utf-8")
        except OSError as e:
            raise CacheIOError(f"Failed to write cache entry {path}: {e}") from e

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def keys(self, prefix: str = "") -> list[str]:
        if not self.root.exists():
            return []
        found = (p.relative_to(self.root).as_posix() for p in self.root.rglob("*") if p.is_file())
        return sorted(k for k in found if k.startswith(prefix))

    def clear(self) -> None:
        if self.root.exists():
            shutil.rmtree(self.root)

    def locate(self, key: str) -> str:
        return str(self._path(key).resolve())


class MemoryStorage(CacheStorage):
    """Dict-backed storage for tests and throwaway builds"""

    def __init__(self):
        self._data: dict[str, str] = {}

    def read(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def write(self, key: str, data: str) -> None:
        self._data[key] = data

    def exists(self, key: str) -> bool:
        return key in self._data

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._data if k.startswith(prefix))

    def clear(self) -> None:
        self._data.clear()

    def locate(self, key: str) -> str:
        return f"memory://{key}"
