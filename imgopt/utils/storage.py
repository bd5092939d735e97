import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterator, Union

from imgopt.config import CACHE_ROOT, logger
from imgopt.errors import CacheIOError


@contextmanager
def atomic_write(target: Union[str, Path], mode: int = 0o644) -> Iterator[IO[bytes]]:
    """
    Yield a temp file next to *target*; it is renamed over *target* only if
    the block finishes without raising. Readers never see a partial file.
    """
    target = Path(target)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{target.stem}.", suffix=".tmp", dir=target.parent
        )
    except OSError as exc:
        raise CacheIOError(target, "Cannot open temp file", exc) from exc

    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as fh:
            yield fh
        logger.debug("Renaming %s → %s", tmp.name, target.name)
        try:
            os.chmod(tmp, mode)
            os.replace(tmp, target)
        except OSError as exc:
            raise CacheIOError(target, "Cannot move file into place", exc) from exc
    finally:
        if tmp.exists():
            try:
                tmp.unlink()
            except OSError as exc:
                logger.warning("Failed removing temp file %s: %s", tmp, exc)


class VariantStore:
    """Flat directory of generated variants. Files only ever appear whole."""

    def __init__(self, cache_root: Union[str, Path] = CACHE_ROOT):
        self.cache_root = Path(cache_root)

    def ensure_directory(self) -> None:
        try:
            self.cache_root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CacheIOError(self.cache_root, "Cannot create cache directory", exc) from exc

    def exists(self, path: Union[str, Path]) -> bool:
        return Path(path).is_file()

    def atomic_write(self, target: Union[str, Path]):
        return atomic_write(target)

    def write_bytes(self, target: Union[str, Path], data: bytes) -> Path:
        with self.atomic_write(target) as fh:
            fh.write(data)
        return Path(target)
