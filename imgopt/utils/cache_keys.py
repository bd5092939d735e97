import hashlib
import re
from pathlib import Path, PurePosixPath
from typing import Union

from imgopt.utils.formats import normalize_format
from imgopt.utils.source import source_mtime

DIGEST_LENGTH = 16
_UNSAFE       = re.compile(r"[^a-z0-9._-]+")


def variant_digest(source: str, mtime: int, width: int, fmt: str, quality: int) -> str:
    payload = "|".join([source, str(mtime), str(width), fmt.lower(), str(quality)])
    return hashlib.sha1(payload.encode("utf-8")).hexdigest()[:DIGEST_LENGTH]


def readable_name(source: str) -> str:
    """``/img/blog/Hero Shot.JPG`` → ``blog-hero-shot``."""
    clean  = re.split(r"[?#]", source, maxsplit=1)[0]
    path   = PurePosixPath(clean.replace("\\", "/"))
    parent = path.parent.name
    base   = path.stem
    ext    = path.suffix.lstrip(".").lower()

    parts = [parent] if parent not in ("", ".", "/") else []
    parts.append(base or ext or "image")

    name = _UNSAFE.sub("-", "-".join(parts).lower()).strip("-.")
    return name or "image"


class CacheKeyResolver:
    def __init__(self, cache_root: Union[str, Path]):
        self.cache_root = Path(cache_root)

    def resolve(self, source: Union[str, Path], width: int, fmt: str, quality: int) -> Path:
        """
        Deterministic cache path for one variant.

        The source mtime is part of the key, so editing the source yields a
        new path and the previous file is simply never looked up again.
        """
        src    = str(source)
        ext    = normalize_format(fmt)
        digest = variant_digest(src, source_mtime(src), width, ext, quality)
        return self.cache_root / f"{readable_name(src)}-w{width}-q{quality}-{digest}.{ext}"
