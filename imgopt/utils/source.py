from pathlib import Path
from typing import Optional, Tuple, Union

from PIL import Image

VECTOR_EXTENSIONS = {"svg", "svgz"}

Size = Tuple[int, int]


def source_mtime(path: Union[str, Path]) -> int:
    """Modification time in nanoseconds, 0 when the file cannot be stat'ed."""
    try:
        return Path(path).stat().st_mtime_ns
    except OSError:
        return 0


def extension_of(path: Union[str, Path]) -> str:
    return Path(str(path).split("?", 1)[0]).suffix.lstrip(".").lower()


def is_vector(path: Union[str, Path]) -> bool:
    return extension_of(path) in VECTOR_EXTENSIONS


def read_dimensions(path: Union[str, Path]) -> Optional[Size]:
    # Pillow only parses the header here; pixel data is never decoded.
    try:
        with Image.open(path) as img:
            return img.size
    except (OSError, ValueError, Image.DecompressionBombError):
        return None


class SourceImage:
    """A source file as observed on disk; never modified by the cache."""

    def __init__(self, path: Union[str, Path]):
        self.path = str(path)

    def __repr__(self) -> str:
        return f"SourceImage({self.path!r})"

    @property
    def extension(self) -> str:
        return extension_of(self.path)

    @property
    def is_vector(self) -> bool:
        return self.extension in VECTOR_EXTENSIONS
