"""
Intrinsic-size lookup cache.

Maps a source key (its path) to ``{"width", "height", "mtime"}`` so the
pixel size of a source does not have to be re-read from its header on every
request. An entry is trusted only while the recorded mtime matches the file.

The JSON file store is safe across threads and processes: readers hold a
shared ``flock`` on a ``.lock`` sidecar, writers an exclusive one, and the
data file itself is only ever replaced atomically.
"""
import fcntl
import json
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Union

from imgopt.config import logger
from imgopt.errors import CacheIOError
from imgopt.utils.source import Size, is_vector, read_dimensions, source_mtime
from imgopt.utils.storage import atomic_write

SizeEntry = Dict[str, Any]


class SizeStore:
    def load(self) -> Dict[str, SizeEntry]:
        raise NotImplementedError

    def get(self, key: str) -> Optional[SizeEntry]:
        return self.load().get(key)

    def put(self, key: str, entry: SizeEntry) -> None:
        raise NotImplementedError


class MemorySizeStore(SizeStore):
    def __init__(self):
        self._data: Dict[str, SizeEntry] = {}
        self._lock = threading.Lock()

    def load(self) -> Dict[str, SizeEntry]:
        with self._lock:
            return dict(self._data)

    def put(self, key: str, entry: SizeEntry) -> None:
        with self._lock:
            self._data[key] = dict(entry)


class JsonFileSizeStore(SizeStore):
    def __init__(self, path: Union[str, Path]):
        self.path      = Path(path)
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        self._mutex    = threading.Lock()

    @contextmanager
    def _flock(self, operation: int) -> Iterator[None]:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fh = self.lock_path.open("a+b")
        except OSError as exc:
            raise CacheIOError(self.lock_path, "Cannot open size cache lock", exc) from exc
        with fh:
            fcntl.flock(fh.fileno(), operation)
            try:
                yield
            finally:
                fcntl.flock(fh.fileno(), fcntl.LOCK_UN)

    def _read(self) -> Dict[str, SizeEntry]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            logger.warning("Cannot read size cache %s: %s", self.path, exc)
            return {}
        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except ValueError as exc:
            logger.warning("Ignoring corrupt size cache %s: %s", self.path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def load(self) -> Dict[str, SizeEntry]:
        with self._flock(fcntl.LOCK_SH):
            return self._read()

    def put(self, key: str, entry: SizeEntry) -> None:
        with self._mutex, self._flock(fcntl.LOCK_EX):
            data = self._read()
            data[key] = dict(entry)
            payload = json.dumps(data, separators=(",", ":"), sort_keys=True)
            with atomic_write(self.path, mode=0o664) as fh:
                fh.write(payload.encode("utf-8"))


class SourceSizeLookup:
    def __init__(self, store: SizeStore):
        self.store = store

    def size_of(self, path: Union[str, Path]) -> Optional[Size]:
        if is_vector(path):
            return None

        key   = str(path)
        mtime = source_mtime(path)
        entry = self.store.get(key)
        if entry is not None and entry.get("mtime") == mtime:
            return _entry_size(entry)

        size  = read_dimensions(path)
        entry = {
            "width":  size[0] if size else None,
            "height": size[1] if size else None,
            "mtime":  mtime,
        }
        try:
            self.store.put(key, entry)
        except CacheIOError as exc:
            logger.warning("Size cache update failed for %s: %s", key, exc)
        return size


def _entry_size(entry: SizeEntry) -> Optional[Size]:
    width, height = entry.get("width"), entry.get("height")
    if width and height:
        return int(width), int(height)
    return None
